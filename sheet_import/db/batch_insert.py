from __future__ import annotations

import decimal
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any

from psycopg2.extras import execute_values

from ..models.column_spec import ColumnSpec, TypeKind
from ..models.row_data import RowData

"""SQL statements for the load path.

Bulk path: psycopg2.extras.execute_values で1バッチを1文の INSERT にまとめる。
Row path: 1行ずつのパラメータ付き INSERT / 存在確認 SELECT / UPDATE。

Values are bound by the destination column's semantic type; date-only values are
bound as ``datetime.date`` (DATE), never as a timestamp.
"""

__all__ = [
    "BatchInsertError",
    "InsertResult",
    "quote_ident",
    "to_db_param",
    "row_params",
    "batch_insert",
    "insert_row",
    "row_exists",
    "update_row",
    "delete_all",
]


class BatchInsertError(Exception):
    pass


@dataclass(frozen=True)
class InsertResult:
    inserted_rows: int


def quote_ident(name: str) -> str:
    """Quote a table/column identifier for PostgreSQL."""
    return '"' + name.replace('"', '""') + '"'


def to_db_param(column: ColumnSpec, value: Any) -> Any:
    """Convert a typed-row value to the driver parameter for ``column``."""
    if value is None:
        return None
    kind = column.semantic_type.kind
    if kind is TypeKind.DATE_ONLY:
        if isinstance(value, date):
            return value
        return date.fromisoformat(str(value))
    if kind is TypeKind.DECIMAL:
        # float の2進誤差を避けるため文字列経由で Decimal 化
        return decimal.Decimal(str(value))
    if kind is TypeKind.INTEGER:
        return int(value)
    return str(value)


def row_params(row: RowData, columns: Sequence[ColumnSpec]) -> tuple[Any, ...]:
    return tuple(to_db_param(c, row.get(c.name)) for c in columns)


def batch_insert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    page_size: int | None = None,
) -> InsertResult:
    """Insert ``rows`` with a single multi-row INSERT via execute_values.

    Parameters
    ----------
    cursor: DB-API cursor (psycopg2)
    table: 対象テーブル名 (未クオート)
    columns: 挿入列 (identity 列除外済み)
    rows: parameter tuples in ``columns`` order
    page_size: rows per statement; defaults to all rows in one statement
    """
    rows_list = list(rows)
    if not rows_list:
        return InsertResult(inserted_rows=0)

    cols_sql = ",".join(quote_ident(c) for c in columns)
    base_sql = f"INSERT INTO {quote_ident(table)} ({cols_sql}) VALUES %s"
    try:
        execute_values(cursor, base_sql, rows_list, page_size=page_size or len(rows_list))
    except Exception as e:
        raise BatchInsertError(str(e)) from e
    return InsertResult(inserted_rows=len(rows_list))


def insert_row(cursor: Any, table: str, columns: Sequence[str], params: Sequence[Any]) -> int:
    cols_sql = ",".join(quote_ident(c) for c in columns)
    placeholders = ",".join(["%s"] * len(columns))
    cursor.execute(
        f"INSERT INTO {quote_ident(table)} ({cols_sql}) VALUES ({placeholders})",
        tuple(params),
    )
    return cursor.rowcount


def row_exists(cursor: Any, table: str, key_column: str, key_value: Any) -> bool:
    cursor.execute(
        f"SELECT 1 FROM {quote_ident(table)} WHERE {quote_ident(key_column)} = %s LIMIT 1",
        (key_value,),
    )
    return cursor.fetchone() is not None


def update_row(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    params: Sequence[Any],
    key_column: str,
    key_value: Any,
) -> int:
    """UPDATE the row(s) matching ``key_column = key_value``; returns affected rows."""
    if not columns:
        return 0
    assignments = ",".join(f"{quote_ident(c)} = %s" for c in columns)
    cursor.execute(
        f"UPDATE {quote_ident(table)} SET {assignments} WHERE {quote_ident(key_column)} = %s",
        (*params, key_value),
    )
    return cursor.rowcount


def delete_all(cursor: Any, table: str) -> None:
    cursor.execute(f"TRUNCATE TABLE {quote_ident(table)}")
