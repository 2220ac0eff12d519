from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from typing import Any

from ..db.batch_insert import row_params, to_db_param
from ..db.client import DatabaseClient
from ..models.column_spec import ColumnSpec
from ..models.field_error import FieldError
from ..models.job_settings import DuplicateStrategy, JobConfigurationError, JobSettings
from ..models.processing_result import BatchOutcome
from ..models.row_data import RowData
from ..schema.registry import TABLE_NAME

logger = logging.getLogger(__name__)

"""Load executor: one transaction per batch.

Statement order for a batch:
    BEGIN
    TRUNCATE TABLE ...        (first batch of the job only, when delete_all is set)
    bulk INSERT | per-row SAVEPOINT / SELECT / INSERT|UPDATE / RELEASE
    COMMIT                    (ROLLBACK on any failure)

A rolled-back batch is attributed to errors as a whole. In strict mode the failure
is re-raised as BatchAbortedError so that the orchestrator stops issuing batches.
"""

__all__ = [
    "BatchAbortedError",
    "RowWriteError",
    "execute_batch",
    "mapped_write_columns",
]


class RowWriteError(Exception):
    """A single row failed in the row-by-row path (strict mode escalation)."""

    def __init__(self, error: FieldError) -> None:
        super().__init__(error.message)
        self.error = error


class BatchAbortedError(Exception):
    """Strict mode: the batch was rolled back and the job must stop."""

    def __init__(self, outcome: BatchOutcome) -> None:
        message = outcome.errors[0].message if outcome.errors else "batch aborted"
        super().__init__(message)
        self.outcome = outcome


def mapped_write_columns(
    mapping: Mapping[str, str | None], columns: Sequence[ColumnSpec]
) -> list[ColumnSpec]:
    """Columns written by the load: mapped, non-identity, in registry order."""
    return [c for c in columns if not c.is_identity and mapping.get(c.name)]


def _rollback_quietly(client: DatabaseClient) -> None:
    try:
        client.rollback()
    except Exception:
        # 元の例外を優先する。ROLLBACK 失敗はログのみ
        logger.error("rollback failed", exc_info=True)


def _key_display(value: Any) -> str:
    return "NULL" if value is None else str(value)


def _write_bulk(
    client: DatabaseClient,
    batch: Sequence[RowData],
    columns: Sequence[ColumnSpec],
    table: str,
    outcome: BatchOutcome,
) -> None:
    params = [row_params(row, columns) for row in batch]
    outcome.inserted_count += client.bulk_insert(table, [c.name for c in columns], params)


def _write_rows(
    client: DatabaseClient,
    batch: Sequence[RowData],
    settings: JobSettings,
    columns: Sequence[ColumnSpec],
    key_spec: ColumnSpec,
    table: str,
    outcome: BatchOutcome,
) -> None:
    names = [c.name for c in columns]
    update_columns = [c for c in columns if c.name != key_spec.name]
    update_names = [c.name for c in update_columns]

    for row in batch:
        key_value = to_db_param(key_spec, row.get(key_spec.name))
        try:
            with client.savepoint():
                if client.row_exists(table, key_spec.name, key_value):
                    if settings.duplicate_strategy is DuplicateStrategy.UPSERT:
                        client.update_row(
                            table, update_names, row_params(row, update_columns),
                            key_spec.name, key_value,
                        )
                        action = "updated"
                    else:
                        action = "skipped"
                else:
                    client.insert_row(table, names, row_params(row, columns))
                    action = "inserted"
        except Exception as e:
            error = FieldError(row.row_number, key_spec.name, _key_display(key_value), str(e))
            outcome.error_count += 1
            outcome.errors.append(error)
            logger.warning("row=%d write failed: %s", row.row_number, e)
            if settings.is_strict:
                raise RowWriteError(error) from e
            continue

        if action == "inserted":
            outcome.inserted_count += 1
        elif action == "updated":
            outcome.updated_count += 1
        else:
            outcome.skipped_count += 1


def execute_batch(
    client: DatabaseClient,
    batch: Sequence[RowData],
    settings: JobSettings,
    is_first_batch: bool,
    *,
    write_columns: Sequence[ColumnSpec],
    table: str = TABLE_NAME,
) -> BatchOutcome:
    """Write one batch inside its own transaction.

    Parameters
    ----------
    client: open DatabaseClient (no transaction in progress)
    batch: validated rows, in source order
    settings: duplicate strategy / strict mode / delete_all
    is_first_batch: only the first batch may issue the pre-load delete
    write_columns: mapped, non-identity columns (see mapped_write_columns)

    Returns
    -------
    BatchOutcome. On rollback every row of the batch is counted as an error.

    Raises
    ------
    BatchAbortedError: strict mode and the batch failed (already rolled back)
    JobConfigurationError: skip/upsert whose primary key is not a written column
    """
    key_spec: ColumnSpec | None = None
    if settings.duplicate_strategy.needs_primary_key:
        key_spec = next((c for c in write_columns if c.name == settings.primary_key), None)
        if key_spec is None:
            raise JobConfigurationError(
                f"primary key '{settings.primary_key}' is not among the written columns"
            )

    outcome = BatchOutcome()
    start = time.perf_counter()
    try:
        client.begin()
        if is_first_batch and settings.delete_all:
            logger.warning("delete_all: truncating table %s before load", table)
            client.delete_all(table)
        if key_spec is None:
            _write_bulk(client, batch, write_columns, table, outcome)
        else:
            _write_rows(client, batch, settings, write_columns, key_spec, table, outcome)
        client.commit()
    except Exception as e:
        _rollback_quietly(client)
        if isinstance(e, RowWriteError):
            error = e.error
        else:
            first = batch[0].row_number if batch else 0
            last = batch[-1].row_number if batch else 0
            error = FieldError.batch(first, last, str(e))
        failed = BatchOutcome.failed(len(batch), error)
        failed.elapsed_seconds = time.perf_counter() - start
        logger.error("batch rolled back rows=%d: %s", len(batch), e)
        if settings.is_strict:
            raise BatchAbortedError(failed) from e
        return failed

    outcome.elapsed_seconds = time.perf_counter() - start
    logger.debug(
        "batch committed rows=%d inserted=%d updated=%d skipped=%d errors=%d",
        len(batch),
        outcome.inserted_count,
        outcome.updated_count,
        outcome.skipped_count,
        outcome.error_count,
    )
    return outcome
