from __future__ import annotations

import logging
import os
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

import psycopg2

from ..config.loader import DatabaseConfig
from . import batch_insert as sql

"""Database client for the load path.

DatabaseClient は呼び出し側が生成・所有し、ジョブへ注入する (モジュールグローバルな
接続は持たない)。接続は autocommit=True で開き、トランザクション境界は
BEGIN / COMMIT / ROLLBACK を明示的に発行して制御する。

Connection parameter resolution (highest first):
    1. DATABASE_URL / PGDSN (environment, usually loaded from .env)
    2. PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
    3. the ``database`` section of the config file
"""

__all__ = [
    "DatabaseClient",
    "resolve_dsn",
    "open_client",
    "check_connection",
]

logger = logging.getLogger(__name__)

SAVEPOINT_NAME = "sheet_import_row"


class DatabaseClient:
    """Transaction-aware wrapper around one DB-API connection + cursor.

    Only one transaction is open at a time; nested BEGINs are a programming error.
    """

    def __init__(self, connection: Any, cursor: Any | None = None) -> None:
        self.connection = connection
        self.cursor = cursor if cursor is not None else connection.cursor()
        self._in_transaction = False

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    def begin(self) -> None:
        if self._in_transaction:
            raise RuntimeError("transaction already open")
        self.cursor.execute("BEGIN")
        self._in_transaction = True

    def commit(self) -> None:
        self.cursor.execute("COMMIT")
        self._in_transaction = False

    def rollback(self) -> None:
        # ROLLBACK が失敗しても状態はクローズ扱い (接続側で破棄される)
        try:
            self.cursor.execute("ROLLBACK")
        finally:
            self._in_transaction = False

    @contextmanager
    def savepoint(self) -> Iterator[None]:
        """Scope one row's statements; undo them (only them) when the block raises."""
        self.cursor.execute(f"SAVEPOINT {SAVEPOINT_NAME}")
        try:
            yield
        except Exception:
            self.cursor.execute(f"ROLLBACK TO SAVEPOINT {SAVEPOINT_NAME}")
            raise
        else:
            self.cursor.execute(f"RELEASE SAVEPOINT {SAVEPOINT_NAME}")

    def delete_all(self, table: str) -> None:
        sql.delete_all(self.cursor, table)

    def bulk_insert(self, table: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> int:
        return sql.batch_insert(self.cursor, table, columns, rows).inserted_rows

    def insert_row(self, table: str, columns: Sequence[str], params: Sequence[Any]) -> int:
        return sql.insert_row(self.cursor, table, columns, params)

    def row_exists(self, table: str, key_column: str, key_value: Any) -> bool:
        return sql.row_exists(self.cursor, table, key_column, key_value)

    def update_row(
        self,
        table: str,
        columns: Sequence[str],
        params: Sequence[Any],
        key_column: str,
        key_value: Any,
    ) -> int:
        return sql.update_row(self.cursor, table, columns, params, key_column, key_value)

    def close(self) -> None:
        if self._in_transaction:
            try:
                self.rollback()
            except Exception:  # pragma: no cover - connection already broken
                logger.warning("rollback on close failed", exc_info=True)
        try:
            self.cursor.close()
        finally:
            self.connection.close()


def resolve_dsn(db_cfg: DatabaseConfig) -> str:
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def open_client(dsn: str) -> Iterator[DatabaseClient]:
    """Open a connection for one job and release it on every exit path."""
    conn = psycopg2.connect(dsn)
    conn.autocommit = True
    client = DatabaseClient(conn)
    try:
        yield client
    finally:
        client.close()


def check_connection(dsn: str) -> tuple[bool, str | None]:
    """Try to connect once. Returns (ok, user-facing reason).

    Driver messages are not passed through; they may contain host or user details.
    """
    try:
        conn = psycopg2.connect(dsn, connect_timeout=10)
    except psycopg2.Error as e:
        # DSN 不正 (ProgrammingError) 等も含め、ドライバ文言は返さない
        logger.debug("connection test failed: %s", type(e).__name__)
        if not isinstance(e, psycopg2.OperationalError):
            return False, "Connection failed. Check credentials and network."
        text = str(e).lower()
        if "authentication" in text or "password" in text:
            return False, "Login failed. Please check your username and password."
        if "could not translate host name" in text or "connection refused" in text or "timeout" in text:
            return False, "Cannot connect to server. Check host, port, and network access."
        return False, "Connection failed. Check credentials and network."
    conn.close()
    return True, None
