from __future__ import annotations

import re
from collections.abc import Mapping, Sequence

from ..models.column_spec import ColumnSpec
from ..schema.registry import TABLE_COLUMNS

"""Column mapping helpers: destination column -> source header.

suggest_mapping: ヘッダ名の正規化一致による自動マッピング
check_mapping: マッピングの整合性チェック (未知列 / identity 列 / 存在しないヘッダ)
merge_mapping: 明示マッピング優先で自動マッピングと合成
"""

__all__ = [
    "MappingError",
    "normalize_header",
    "suggest_mapping",
    "check_mapping",
    "merge_mapping",
]

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


class MappingError(Exception):
    """Raised when a column mapping cannot be used for this sheet."""


def normalize_header(name: str) -> str:
    """Lowercase and keep alphanumerics only ("Sales Date" -> "salesdate")."""
    return _NON_ALNUM_RE.sub("", str(name).lower())


def suggest_mapping(
    headers: Sequence[str],
    columns: Sequence[ColumnSpec] = TABLE_COLUMNS,
) -> dict[str, str | None]:
    """Map every writable column to the first header with the same normalized name.

    Columns without a matching header are present with value None.
    """
    normalized: dict[str, str] = {}
    for header in headers:
        normalized.setdefault(normalize_header(header), header)
    return {
        c.name: normalized.get(normalize_header(c.name))
        for c in columns
        if not c.is_identity
    }


def check_mapping(
    mapping: Mapping[str, str | None],
    headers: Sequence[str],
    columns: Sequence[ColumnSpec] = TABLE_COLUMNS,
) -> list[str]:
    """Validate ``mapping`` against the sheet headers.

    Returns:
        names of required columns that are left unmapped (registry order)

    Raises:
        MappingError: unknown destination column, identity column as key, or a
            source header that does not exist in the sheet
    """
    by_name = {c.name: c for c in columns}
    header_set = set(headers)
    for column, header in mapping.items():
        spec = by_name.get(column)
        if spec is None:
            raise MappingError(f"unknown destination column: {column}")
        if spec.is_identity:
            raise MappingError(f"identity column cannot be mapped: {column}")
        if header is not None and header not in header_set:
            raise MappingError(f"column {column}: header '{header}' not found in sheet")
    return [
        c.name
        for c in columns
        if c.is_required and not c.is_identity and not mapping.get(c.name)
    ]


def merge_mapping(
    explicit: Mapping[str, str | None],
    suggested: Mapping[str, str | None],
) -> dict[str, str | None]:
    """Explicit entries win (an explicit None stays unmapped); others come from ``suggested``."""
    merged = dict(suggested)
    merged.update(explicit)
    return merged
