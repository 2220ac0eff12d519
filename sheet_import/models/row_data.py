from __future__ import annotations

from dataclasses import dataclass
from typing import Any

"""RowData model: one validated (typed) row ready for parameter binding.

``values`` is the TypedRow: destination column name -> coerced value. Only
non-identity columns appear; unmapped optional columns carry their empty default.
"""

__all__ = [
    "RowData",
]


@dataclass(frozen=True)
class RowData:
    """Typed row produced by the row validator.

    ``row_number`` is the spreadsheet row it came from (data index + 2) so that
    write failures can be reported against the source row.
    """
    row_number: int
    values: dict[str, Any]  # 列名 -> 変換済み値 (int / 'yyyy-MM-dd' / float / str / None)
    raw_values: dict[str, Any] | None = None  # 元セル値 (デバッグ用)

    def get(self, column: str) -> Any:
        return self.values.get(column)
