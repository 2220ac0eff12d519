from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

"""FieldError model for validation and load error reporting.

A FieldError points at one cell (or one row / batch for write failures):
- row_number: spreadsheet row number (data index + 2). 0 for batch/job level errors
- column_name: destination column, or "Batch" / "Global" for non-cell errors
- raw_value_display: the offending value as text for the report
- message: human readable reason

The JSON Lines form (error log) uses the reporting keys row/column/value/error.
"""

__all__ = [
    "FieldError",
    "BATCH_COLUMN",
    "GLOBAL_COLUMN",
]

BATCH_COLUMN = "Batch"
GLOBAL_COLUMN = "Global"


@dataclass(frozen=True)
class FieldError:
    row_number: int  # 0 はバッチ/ジョブ単位のエラー
    column_name: str
    raw_value_display: str
    message: str

    @staticmethod
    def batch(first_row: int, last_row: int, message: str) -> FieldError:
        """Error attributed to a whole batch (bulk insert / transaction failure)."""
        return FieldError(
            row_number=0,
            column_name=BATCH_COLUMN,
            raw_value_display=f"rows {first_row}-{last_row}",
            message=message,
        )

    @staticmethod
    def global_(message: str) -> FieldError:
        """Error that stopped the job outside of any batch."""
        return FieldError(
            row_number=0,
            column_name=GLOBAL_COLUMN,
            raw_value_display="N/A",
            message=message,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "row": self.row_number,
            "column": self.column_name,
            "value": self.raw_value_display,
            "error": self.message,
        }

    def to_json_line(self) -> str:
        """Serialize to a single JSON Lines record (fixed key set)."""
        return json.dumps(self.to_dict(), ensure_ascii=False)
