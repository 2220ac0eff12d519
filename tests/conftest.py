# Shared pytest fixtures
from __future__ import annotations

import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from sheet_import.db.client import DatabaseClient
from sheet_import.models.row_data import RowData
from sheet_import.schema.registry import TABLE_COLUMNS


class FakeDbError(Exception):
    """Stands in for a driver error (constraint violation etc.)."""


class FakeCursor:
    """Records statements and simulates one table with BEGIN/COMMIT/ROLLBACK + savepoints.

    committed: rows (parameter tuples) visible after COMMIT
    fail_when: predicate over an inserted parameter tuple; True -> the INSERT raises
    existing_keys: key values for which ``SELECT 1 ... WHERE key = %s`` finds a row
    fail_on: statement prefix that raises (e.g. "BEGIN", "COMMIT")
    """

    def __init__(
        self,
        fail_when: Callable[[tuple], bool] | None = None,
        existing_keys: set[Any] | None = None,
        fail_on: str | None = None,
    ) -> None:
        self.statements: list[str] = []
        self.committed: list[tuple] = []
        self.updated: list[tuple] = []
        self.truncate_count = 0
        self.fail_when = fail_when
        self.existing_keys = set(existing_keys or ())
        self.fail_on = fail_on
        self.rowcount = 0
        self.closed = False
        self._fetch: tuple | None = None
        self._pending: list[tuple] = []
        self._pending_updates: list[tuple] = []
        self._pending_truncate = False
        self._mark: tuple[int, int] = (0, 0)

    def execute(self, sql: str, params: Any = None) -> None:
        self.statements.append(sql)
        if self.fail_on and sql.startswith(self.fail_on):
            raise FakeDbError(f"{self.fail_on} failed")
        if sql == "BEGIN":
            self._pending, self._pending_updates, self._pending_truncate = [], [], False
        elif sql == "COMMIT":
            if self._pending_truncate:
                self.committed.clear()
                self.truncate_count += 1
            self.committed.extend(self._pending)
            self.updated.extend(self._pending_updates)
            self._pending, self._pending_updates, self._pending_truncate = [], [], False
        elif sql == "ROLLBACK":
            self._pending, self._pending_updates, self._pending_truncate = [], [], False
        elif sql.startswith("SAVEPOINT"):
            self._mark = (len(self._pending), len(self._pending_updates))
        elif sql.startswith("ROLLBACK TO SAVEPOINT"):
            del self._pending[self._mark[0]:]
            del self._pending_updates[self._mark[1]:]
        elif sql.startswith("RELEASE"):
            pass
        elif sql.startswith("TRUNCATE"):
            self._pending_truncate = True
        elif sql.startswith("SELECT 1"):
            self._fetch = (1,) if params[0] in self.existing_keys else None
        elif sql.startswith("INSERT"):
            self.insert_rows([tuple(params)])
        elif sql.startswith("UPDATE"):
            self._pending_updates.append(tuple(params))
            self.rowcount = 1

    def insert_rows(self, rows: list[tuple]) -> None:
        for r in rows:
            if self.fail_when is not None and self.fail_when(r):
                raise FakeDbError(f"constraint violation: {r!r}")
        self._pending.extend(rows)
        self.rowcount = len(rows)

    def fetchone(self) -> tuple | None:
        return self._fetch

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    def __init__(self, cursor: FakeCursor) -> None:
        self._cursor = cursor
        self.closed = False
        self.autocommit = False

    def cursor(self) -> FakeCursor:
        return self._cursor

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def patch_execute_values(monkeypatch):
    # psycopg2 の実接続なしで bulk 経路を通すため execute_values を差し替え
    import sheet_import.db.batch_insert as bi

    def fake_execute_values(cursor, sql, rows, page_size=100, template=None):
        cursor.statements.append(sql)
        cursor.page_size = page_size
        cursor.insert_rows([tuple(r) for r in rows])

    monkeypatch.setattr(bi, "execute_values", fake_execute_values)
    return fake_execute_values


@pytest.fixture()
def fake_cursor() -> FakeCursor:
    return FakeCursor()


@pytest.fixture()
def make_client() -> Callable[..., tuple[DatabaseClient, FakeCursor]]:
    def _make(**kwargs: Any) -> tuple[DatabaseClient, FakeCursor]:
        cur = FakeCursor(**kwargs)
        return DatabaseClient(FakeConnection(cur)), cur
    return _make


@pytest.fixture()
def full_mapping() -> dict[str, str | None]:
    """Every writable column mapped to a header of the same name."""
    return {c.name: c.name for c in TABLE_COLUMNS if not c.is_identity}


def _typed_values(**overrides: Any) -> dict[str, Any]:
    values: dict[str, Any] = {
        c.name: c.empty_value for c in TABLE_COLUMNS if not c.is_identity
    }
    values.update(
        SalesDate="2024-07-20",
        MeraLocationId=10,
        MeraRevenueCenterName="Bar",
        Sales=1500.0,
        MeraRevenueCenterId=7,
    )
    values.update(overrides)
    return values


def _make_rows(count: int, start_row: int = 2, **overrides: Any) -> list[RowData]:
    return [
        RowData(row_number=start_row + i, values=_typed_values(MeraLocationId=100 + i, **overrides))
        for i in range(count)
    ]


@pytest.fixture()
def raw_record() -> dict[str, Any]:
    """One valid source record keyed by human headers (as a sheet would deliver)."""
    return {
        "Sales Date": "2024-07-20",
        "Mera Location Id": 12,
        "Mera Revenue Center Name": "Dining Room",
        "Mera Area Id": None,
        "Sales": "$1,234.50",
        "Voids": 3.0,
        "Pax Count": "40",
        "Mera Revenue Center Id": 5,
    }


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """source_file: ./data/sales.xlsx
sheet: Sales
auto_map: true
column_mapping:
  SalesDate: Business Date
settings:
  duplicate_strategy: insert_only
  strict_mode: tolerant
  batch_size: 2
  delete_all: false
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def typed_values() -> Callable[..., dict[str, Any]]:
    return _typed_values


@pytest.fixture()
def make_rows() -> Callable[..., list[RowData]]:
    return _make_rows


@pytest.fixture()
def seven_records() -> list[dict[str, Any]]:
    """7 source records keyed by column name; rows 4 (bad date) and 7 (bad ID) are invalid."""
    records = [
        {
            "SalesDate": "2024-07-20",
            "MeraLocationId": 100 + i,
            "MeraRevenueCenterName": f"Center {i}",
            "Sales": "$1,000.00",
            "MeraRevenueCenterId": 5,
        }
        for i in range(7)
    ]
    records[2]["SalesDate"] = "not a date"
    records[5]["MeraLocationId"] = "abc"
    return records
