from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from typing import Any

from ..db.client import DatabaseClient
from ..logging.error_log import ErrorLogBuffer
from ..models.column_spec import ColumnSpec
from ..models.field_error import FieldError
from ..models.job_settings import JobConfigurationError, JobSettings
from ..models.job_status import ALLOWED_TRANSITIONS, JobStateError, JobStatus
from ..models.processing_result import BatchOutcome, BatchStatsAccumulator, JobResult
from ..models.row_data import RowData
from ..schema.registry import TABLE_COLUMNS, TABLE_NAME
from .batching import plan_batches
from .load_executor import BatchAbortedError, execute_batch, mapped_write_columns
from .progress import ProgressTracker
from .validator import VALIDATION_CHUNK_SIZE, ValidationReport, validate_records

logger = logging.getLogger(__name__)

"""Job orchestration for the spreadsheet -> table import.

run_job: 検証済み行をバッチ分割し、バッチごとに load executor を呼び出して集計する。
ImportJob: configuring → validating → (running →) finished の状態機械。
    - 検証は常にロードの前提 (未検証レコードはロードしない)
    - dry run = 検証のみ。inserted には有効行数を入れる
    - 完了済み dry run から start_load() で本ロードへ進める

The caller always receives a JobResult; batch and job failures are reported through
``success`` and ``error_details`` rather than raised.
"""

__all__ = [
    "ImportJob",
    "run_job",
]


def _accumulate(totals: BatchOutcome, outcome: BatchOutcome) -> None:
    totals.inserted_count += outcome.inserted_count
    totals.updated_count += outcome.updated_count
    totals.skipped_count += outcome.skipped_count
    totals.error_count += outcome.error_count


def run_job(
    client: DatabaseClient,
    valid_rows: Sequence[RowData],
    settings: JobSettings,
    mapping: Mapping[str, str | None],
    *,
    columns: Sequence[ColumnSpec] = TABLE_COLUMNS,
    table: str = TABLE_NAME,
    progress: ProgressTracker | None = None,
) -> JobResult:
    """Load already-validated rows batch by batch.

    - batches are planned once from ``valid_rows``; only the first may run the pre-load delete
    - tolerant: failed batches are recorded and the loop continues
    - strict: the first failed batch stops the loop; its error is the sole detail
    - an exception outside any batch yields success=False with one "Global" detail
    """
    start = time.perf_counter()
    totals = BatchOutcome()
    errors: list[FieldError] = []
    stats = BatchStatsAccumulator()
    success = True

    try:
        write_columns = mapped_write_columns(mapping, columns)
        batches = plan_batches(valid_rows, settings.batch_size)
        logger.info("load: rows=%d batches=%d table=%s", len(valid_rows), len(batches), table)

        for index, batch in enumerate(batches):
            try:
                outcome = execute_batch(
                    client,
                    batch,
                    settings,
                    index == 0,
                    write_columns=write_columns,
                    table=table,
                )
            except BatchAbortedError as e:
                _accumulate(totals, e.outcome)
                stats.add_batch_time(e.outcome.elapsed_seconds)
                errors = list(e.outcome.errors[:1])
                success = False
                logger.error(
                    "strict mode: batch %d/%d failed, remaining batches skipped",
                    index + 1,
                    len(batches),
                )
                break

            _accumulate(totals, outcome)
            errors.extend(outcome.errors)
            stats.add_batch_time(outcome.elapsed_seconds)
            if progress is not None:
                progress.advance(len(batch))
                progress.set_postfix(
                    inserted=totals.inserted_count,
                    errors=totals.error_count,
                )
    except Exception as e:
        logger.exception("load aborted: %s", e)
        success = False
        errors = [FieldError.global_(str(e))]
        written = totals.inserted_count + totals.updated_count + totals.skipped_count
        totals.error_count = len(valid_rows) - written

    total_batches, avg_batch, p95_batch = stats.get_stats()
    return JobResult(
        total_rows=len(valid_rows),
        inserted=totals.inserted_count,
        updated=totals.updated_count,
        skipped=totals.skipped_count,
        error_count=totals.error_count,
        error_details=tuple(errors),
        success=success,
        dry_run=False,
        elapsed_seconds=time.perf_counter() - start,
        total_batches=total_batches,
        avg_batch_seconds=avg_batch,
        p95_batch_seconds=p95_batch,
    )


class ImportJob:
    """One import invocation: settings + mapping + (optional) database client.

    Typical use::

        job = ImportJob(settings, mapping, client=client)
        preview = job.dry_run(records)   # validation only
        result = job.start_load()        # load the rows validated above

    or ``job.run(records)`` to validate and load in one step.
    """

    def __init__(
        self,
        settings: JobSettings,
        mapping: Mapping[str, str | None],
        *,
        client: DatabaseClient | None = None,
        columns: Sequence[ColumnSpec] = TABLE_COLUMNS,
        table: str = TABLE_NAME,
        error_log: ErrorLogBuffer | None = None,
        chunk_size: int = VALIDATION_CHUNK_SIZE,
        show_progress: bool = True,
    ) -> None:
        self.settings = settings
        self.mapping = dict(mapping)
        self.client = client
        self.columns = tuple(columns)
        self.table = table
        self.error_log = error_log
        self.chunk_size = chunk_size
        self.show_progress = show_progress
        self.status = JobStatus.CONFIGURING
        self.report: ValidationReport | None = None
        self.result: JobResult | None = None
        self._validation_logged = False

    def _transition(self, new_status: JobStatus) -> None:
        if new_status not in ALLOWED_TRANSITIONS[self.status]:
            raise JobStateError(f"cannot move from {self.status.value} to {new_status.value}")
        logger.debug("job status %s -> %s", self.status.value, new_status.value)
        self.status = new_status

    def check_configuration(self) -> None:
        """Reject a job that cannot run; raises JobConfigurationError."""
        by_name = {c.name: c for c in self.columns}
        for name in self.mapping:
            spec = by_name.get(name)
            if spec is not None and spec.is_identity:
                raise JobConfigurationError(f"identity column cannot be mapped: {name}")
        self.settings.check(self.mapping, self.columns)
        if not mapped_write_columns(self.mapping, self.columns):
            raise JobConfigurationError("no destination column is mapped")

    def _progress(self, total: int, description: str) -> ProgressTracker | None:
        if not self.show_progress:
            return None
        return ProgressTracker(total, description=description, unit="row")

    def validate(self, records: Sequence[Mapping[str, Any]]) -> ValidationReport:
        """configuring → validating: run the row validator over every record."""
        if self.status is not JobStatus.CONFIGURING:
            raise JobStateError(f"validate() is not allowed in status {self.status.value}")
        self.check_configuration()
        self._transition(JobStatus.VALIDATING)

        tracker = self._progress(len(records), "Validating")
        try:
            report = validate_records(
                records,
                self.mapping,
                columns=self.columns,
                chunk_size=self.chunk_size,
                progress=tracker.callback if tracker is not None else None,
            )
        finally:
            if tracker is not None:
                tracker.close()

        logger.info(
            "validation: rows=%d valid=%d invalid=%d",
            report.total_rows,
            report.valid_count,
            report.invalid_row_count,
        )
        self.report = report
        return report

    def dry_run(self, records: Sequence[Mapping[str, Any]]) -> JobResult:
        """Validate only. ``inserted`` reports the number of valid rows."""
        start = time.perf_counter()
        report = self.validate(records)
        result = JobResult(
            total_rows=report.total_rows,
            inserted=report.valid_count,
            updated=0,
            skipped=0,
            error_count=report.invalid_row_count,
            error_details=report.errors,
            success=True,
            dry_run=True,
            elapsed_seconds=time.perf_counter() - start,
        )
        self._transition(JobStatus.FINISHED)
        self._record_errors(report.errors)
        self._validation_logged = True
        self.result = result
        return result

    def run(self, records: Sequence[Mapping[str, Any]]) -> JobResult:
        """Validate every record, then load the valid rows."""
        self._require_client()
        start = time.perf_counter()
        report = self.validate(records)
        return self._load(report, start)

    def start_load(self) -> JobResult:
        """Load the rows of a completed dry run (finished → running → finished)."""
        if self.report is None or self.result is None or not self.result.dry_run:
            raise JobStateError("start_load() requires a completed dry run")
        self._require_client()
        return self._load(self.report, time.perf_counter())

    def _require_client(self) -> DatabaseClient:
        if self.client is None:
            raise JobConfigurationError("a database client is required to load")
        return self.client

    def _load(self, report: ValidationReport, start: float) -> JobResult:
        client = self._require_client()
        self._transition(JobStatus.RUNNING)

        tracker = self._progress(report.valid_count, "Loading")
        try:
            loaded = run_job(
                client,
                report.valid_rows,
                self.settings,
                self.mapping,
                columns=self.columns,
                table=self.table,
                progress=tracker,
            )
        finally:
            if tracker is not None:
                tracker.close()

        result = JobResult(
            total_rows=report.total_rows,
            inserted=loaded.inserted,
            updated=loaded.updated,
            skipped=loaded.skipped,
            error_count=report.invalid_row_count + loaded.error_count,
            error_details=report.errors + loaded.error_details,
            success=loaded.success,
            dry_run=False,
            elapsed_seconds=time.perf_counter() - start,
            total_batches=loaded.total_batches,
            avg_batch_seconds=loaded.avg_batch_seconds,
            p95_batch_seconds=loaded.p95_batch_seconds,
        )
        self._transition(JobStatus.FINISHED)
        if self._validation_logged:
            self._record_errors(loaded.error_details)
        else:
            self._record_errors(result.error_details)
        self.result = result
        return result

    def _record_errors(self, errors: Sequence[FieldError]) -> None:
        if self.error_log is None or not errors:
            return
        self.error_log.extend(errors)
        try:
            path = self.error_log.flush()
        except OSError as e:
            # エラーログ書き込み失敗でジョブ結果は変えない
            logger.error("failed to write error log: %s", e)
            return
        logger.info("error log written: %s (%d records)", path, len(errors))
