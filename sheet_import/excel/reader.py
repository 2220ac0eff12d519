from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd

"""Spreadsheet reader (pandas + openpyxl).

1行目をヘッダ行、2行目以降をデータ行として扱う (行番号 = index + 2)。
セルの値は型変換しない (検証は validator 側)。NaN / NaT は None に置換。
完全に空の行は読み飛ばす。同名ヘッダには連番を付ける ("Sales", "Sales_1")。
"""

__all__ = [
    "SheetHeaderError",
    "SheetNotFoundError",
    "SheetData",
    "list_sheets",
    "read_sheet",
]


class SheetHeaderError(Exception):
    """Raised when the header row (1st line) is missing."""


class SheetNotFoundError(Exception):
    """Raised when the requested sheet does not exist in the workbook."""


@dataclass
class SheetData:
    sheet_name: str
    headers: list[str]
    records: list[dict[str, Any]]  # ヘッダ名→セル値 (未変換)


def _na_options(keep_na_strings: list[str] | None) -> tuple[list[str] | None, bool]:
    # pandas._libs.parsers.STR_NA_VALUES には既定のNA文字列集合が格納されている
    import pandas._libs.parsers as parsers

    if keep_na_strings:
        custom_na = parsers.STR_NA_VALUES.copy() - set(keep_na_strings)
        return list(custom_na), False
    return None, True


def list_sheets(path: Path) -> list[str]:
    with pd.ExcelFile(path) as xls:
        return [str(name) for name in xls.sheet_names]


def _header_names(header_row: list[Any]) -> list[str]:
    """Header names for each column; repeated names get a suffix ("Sales", "Sales_1")."""
    raw: list[str] = []
    for i, cell in enumerate(header_row):
        if cell is None or (not isinstance(cell, str) and pd.isna(cell)):
            raw.append(f"Unnamed: {i}")
        else:
            raw.append(str(cell).strip())

    headers: list[str] = []
    seen = set(raw)
    counts: dict[str, int] = {}
    for name in raw:
        if name not in counts:
            counts[name] = 0
            headers.append(name)
            continue
        # 同名ヘッダは後勝ちで値が潰れるため連番を付ける
        n = counts[name] + 1
        while f"{name}_{n}" in seen:
            n += 1
        counts[name] = n
        unique = f"{name}_{n}"
        seen.add(unique)
        headers.append(unique)
    return headers


def read_sheet(
    path: Path,
    sheet_name: str | None = None,
    keep_na_strings: list[str] | None = None,
) -> SheetData:
    """Read one sheet into header list + raw records.

    Parameters
    ----------
    path: Excel ファイルパス
    sheet_name: 対象シート (None なら先頭シート)
    keep_na_strings: Pandasの既定NaN変換から除外する文字列リスト (例: ['NA'])
    """
    na_values, keep_default_na = _na_options(keep_na_strings)
    with pd.ExcelFile(path) as xls:
        names = [str(n) for n in xls.sheet_names]
        if sheet_name is None:
            if not names:
                raise SheetNotFoundError(f"workbook has no sheets: {path}")
            sheet_name = names[0]
        elif sheet_name not in names:
            raise SheetNotFoundError(f"sheet '{sheet_name}' not found (available: {names})")
        df = xls.parse(sheet_name, header=None, keep_default_na=keep_default_na, na_values=na_values)

    if df.shape[0] < 1:
        raise SheetHeaderError(f"sheet '{sheet_name}' has no header row")

    headers = _header_names(df.iloc[0].tolist())
    records: list[dict[str, Any]] = []
    for _, raw in df.iloc[1:].iterrows():
        if raw.isna().all():
            continue
        record: dict[str, Any] = {}
        for col, val in zip(headers, raw.tolist(), strict=False):
            record[col] = None if (not isinstance(val, str) and pd.isna(val)) else val
        records.append(record)

    return SheetData(sheet_name=sheet_name, headers=headers, records=records)
