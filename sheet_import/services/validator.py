from __future__ import annotations

import math
import numbers
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

import pandas as pd

from ..models.column_spec import ColumnSpec, SemanticType, TypeKind
from ..models.field_error import FieldError
from ..models.row_data import RowData
from ..schema.registry import TABLE_COLUMNS

"""Row validation and type coercion.

Each raw record (source header -> untyped cell) is checked against every
non-identity column of the destination table, in registry order:

1. missing value: required -> "Required value is missing."; optional -> column default
2. otherwise the value is coerced by the column's semantic type (dispatch on TypeKind)

Validation never stops at the first failing column; all field errors of a row are
collected. A row with at least one error is excluded from the valid set.
"""

__all__ = [
    "Coercion",
    "RowValidation",
    "ValidationReport",
    "coerce_value",
    "is_absent",
    "validate_row",
    "validate_records",
    "DATE_FORMATS",
    "VALIDATION_CHUNK_SIZE",
]

VALIDATION_CHUNK_SIZE = 500
HEADER_ROW_OFFSET = 2  # 1始まり + ヘッダ行
PREVIEW_LENGTH = 20
# 格納先は SQL int (32bit)
INT32_MIN = -2_147_483_648
INT32_MAX = 2_147_483_647
EXCEL_UNIX_EPOCH_OFFSET_DAYS = 25569  # 1970-01-01 の Excel シリアル値
UNIX_EPOCH = datetime(1970, 1, 1)

MSG_REQUIRED = "Required value is missing."
MSG_INTEGER = "Must be a valid integer."
MSG_INTEGER_RANGE = "Integer out of range."
MSG_NUMBER = "Must be a valid number."
MSG_EXCEL_SERIAL = "Invalid Excel date serial number."
MSG_DATE_FORMAT = "Invalid or unsupported date format."
MSG_STRING = "Must be a valid string."

# First matching format wins. Only the date part of a match is kept.
DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
    "%m/%d/%Y",
)

_INTEGER_RE = re.compile(r"^[+-]?\d+$")
_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_CURRENCY_CHARS_RE = re.compile(r"[$,]")


@dataclass(frozen=True)
class Coercion:
    """Outcome of coercing one cell: a value, or an error message (+ optional display)."""
    value: Any = None
    error: str | None = None
    display: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class RowValidation:
    row: RowData | None
    errors: tuple[FieldError, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class ValidationReport:
    """Result of validating a whole record sequence."""
    total_rows: int
    valid_rows: tuple[RowData, ...]
    errors: tuple[FieldError, ...]
    invalid_row_count: int

    @property
    def valid_count(self) -> int:
        return len(self.valid_rows)


def is_absent(value: Any) -> bool:
    """None, empty / whitespace-only strings and NaN / NaT are all "absent"."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if pd.api.types.is_scalar(value):
        return bool(pd.isna(value))
    return False


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _int_in_range(value: int) -> Coercion:
    if INT32_MIN <= value <= INT32_MAX:
        return Coercion(value)
    return Coercion(error=MSG_INTEGER_RANGE)


def _coerce_integer(value: Any, semantic_type: SemanticType) -> Coercion:
    if isinstance(value, numbers.Integral) and not isinstance(value, bool):
        return _int_in_range(int(value))
    if _is_number(value):
        # 数値セルは pandas で float になることがある (12 -> 12.0)
        f = float(value)
        if math.isfinite(f) and f.is_integer():
            return _int_in_range(int(f))
        return Coercion(error=MSG_INTEGER)
    if isinstance(value, str):
        text = value.strip()
        if _INTEGER_RE.match(text):
            return _int_in_range(int(text))
    return Coercion(error=MSG_INTEGER)


def _coerce_decimal(value: Any, semantic_type: SemanticType) -> Coercion:
    if _is_number(value):
        f = float(value)
        if math.isfinite(f):
            return Coercion(f)
        return Coercion(error=MSG_NUMBER)
    if isinstance(value, str):
        text = _CURRENCY_CHARS_RE.sub("", value).strip()
        if _NUMBER_RE.match(text):
            f = float(text)
            if math.isfinite(f):
                return Coercion(f)
    return Coercion(error=MSG_NUMBER)


def _excel_serial_to_date(serial: float) -> date | None:
    if not math.isfinite(serial):
        return None
    try:
        millis = round((serial - EXCEL_UNIX_EPOCH_OFFSET_DAYS) * 86400 * 1000)
        return (UNIX_EPOCH + timedelta(milliseconds=millis)).date()
    except OverflowError:
        return None


def _parse_date_string(text: str) -> date | None:
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _coerce_date(value: Any, semantic_type: SemanticType) -> Coercion:
    # datetime は date のサブクラスなので先に判定 (pd.Timestamp も datetime)
    if isinstance(value, datetime):
        return Coercion(value.date().isoformat())
    if isinstance(value, date):
        return Coercion(value.isoformat())
    if _is_number(value):
        parsed = _excel_serial_to_date(float(value))
        if parsed is None:
            return Coercion(error=MSG_EXCEL_SERIAL)
        return Coercion(parsed.isoformat())
    if isinstance(value, str):
        parsed = _parse_date_string(value.strip())
        if parsed is not None:
            return Coercion(parsed.isoformat())
    return Coercion(error=MSG_DATE_FORMAT)


def _stringify(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, numbers.Integral) and not isinstance(value, bool):
        return str(int(value))
    if _is_number(value):
        f = float(value)
        return str(int(f)) if f.is_integer() else str(f)
    return None


def _coerce_text(value: Any, semantic_type: SemanticType) -> Coercion:
    text = _stringify(value)
    if text is None:
        return Coercion(error=MSG_STRING)
    max_length = semantic_type.max_length
    if max_length is not None and len(text) > max_length:
        return Coercion(
            error=f"Exceeds max length of {max_length} characters.",
            display=f'"{text[:PREVIEW_LENGTH]}..."',
        )
    return Coercion(text)


_COERCERS: dict[TypeKind, Callable[[Any, SemanticType], Coercion]] = {
    TypeKind.INTEGER: _coerce_integer,
    TypeKind.DECIMAL: _coerce_decimal,
    TypeKind.DATE_ONLY: _coerce_date,
    TypeKind.BOUNDED_TEXT: _coerce_text,
}


def coerce_value(value: Any, semantic_type: SemanticType) -> Coercion:
    """Coerce a present (non-absent) cell value to ``semantic_type``."""
    return _COERCERS[semantic_type.kind](value, semantic_type)


def _display(value: Any) -> str:
    if not isinstance(value, str) and is_absent(value):
        return "NULL"
    return str(value)


def validate_row(
    raw: Mapping[str, Any],
    mapping: Mapping[str, str | None],
    row_number: int,
    columns: Sequence[ColumnSpec] = TABLE_COLUMNS,
) -> RowValidation:
    """Validate one raw record.

    Parameters
    ----------
    raw: source header -> cell value
    mapping: destination column -> source header (None / missing = unmapped)
    row_number: spreadsheet row number used in FieldErrors
    columns: destination schema (registry order)

    Returns
    -------
    RowValidation with the typed row, or every FieldError found in the row.
    """
    values: dict[str, Any] = {}
    errors: list[FieldError] = []

    for col in columns:
        if col.is_identity:
            continue
        header = mapping.get(col.name)
        raw_value = raw.get(header) if header else None

        if is_absent(raw_value):
            if col.is_required:
                errors.append(FieldError(row_number, col.name, _display(raw_value), MSG_REQUIRED))
            else:
                values[col.name] = col.empty_value
            continue

        result = coerce_value(raw_value, col.semantic_type)
        if result.ok:
            values[col.name] = result.value
        else:
            display = result.display if result.display is not None else _display(raw_value)
            errors.append(FieldError(row_number, col.name, display, result.error or ""))

    if errors:
        return RowValidation(row=None, errors=tuple(errors))
    return RowValidation(row=RowData(row_number=row_number, values=values, raw_values=dict(raw)))


def validate_records(
    records: Sequence[Mapping[str, Any]],
    mapping: Mapping[str, str | None],
    *,
    columns: Sequence[ColumnSpec] = TABLE_COLUMNS,
    chunk_size: int = VALIDATION_CHUNK_SIZE,
    progress: Callable[[int, int], None] | None = None,
) -> ValidationReport:
    """Validate every record in order, chunk by chunk.

    Chunking exists only for progress reporting: ``progress(processed, total)`` is
    called after each chunk. Row numbers are ``index + 2``.
    """
    total = len(records)
    step = chunk_size if chunk_size > 0 else max(total, 1)
    valid: list[RowData] = []
    errors: list[FieldError] = []
    invalid_rows = 0

    for start in range(0, total, step):
        chunk = records[start:start + step]
        for offset, raw in enumerate(chunk):
            outcome = validate_row(raw, mapping, start + offset + HEADER_ROW_OFFSET, columns)
            if outcome.ok and outcome.row is not None:
                valid.append(outcome.row)
            else:
                invalid_rows += 1
                errors.extend(outcome.errors)
        if progress is not None:
            progress(min(start + step, total), total)

    return ValidationReport(
        total_rows=total,
        valid_rows=tuple(valid),
        errors=tuple(errors),
        invalid_row_count=invalid_rows,
    )
