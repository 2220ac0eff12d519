from __future__ import annotations

import statistics
from dataclasses import dataclass, field
from typing import Any

from .field_error import FieldError

"""Processing result models for the load pipeline.

BatchOutcome: 1バッチ (1トランザクション) の結果
JobResult: ジョブ全体の最終結果 (生成後は不変)
BatchStatsAccumulator: バッチ処理時間の統計 (平均 / p95)
"""

__all__ = [
    "BatchOutcome",
    "JobResult",
    "BatchStatsAccumulator",
]


@dataclass
class BatchOutcome:
    """Per-batch counters and errors.

    Mutable while the batch runs; the load executor returns it once the batch
    transaction is committed or rolled back.
    """
    inserted_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    errors: list[FieldError] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @classmethod
    def failed(cls, row_count: int, error: FieldError) -> BatchOutcome:
        """Rolled-back batch: every row of the batch counts as an error."""
        return cls(error_count=row_count, errors=[error])


@dataclass(frozen=True)
class JobResult:
    """Terminal artifact of a job invocation.

    For a dry run ``inserted`` is the number of valid rows.
    ``success`` is False when the job was aborted (strict mode or a job-level failure);
    counters still reflect the work completed before termination.
    """
    total_rows: int
    inserted: int
    updated: int
    skipped: int
    error_count: int
    error_details: tuple[FieldError, ...] = ()
    success: bool = True
    dry_run: bool = False
    elapsed_seconds: float = 0.0
    total_batches: int = 0
    avg_batch_seconds: float = 0.0
    p95_batch_seconds: float = 0.0

    @property
    def throughput_rows_per_sec(self) -> float:
        if self.elapsed_seconds <= 0:
            return 0.0
        return (self.inserted + self.updated) / self.elapsed_seconds

    def to_dict(self) -> dict[str, Any]:
        """External result shape consumed by the reporting layer."""
        return {
            "success": self.success,
            "totalRows": self.total_rows,
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "errorCount": self.error_count,
            "errorDetails": [e.to_dict() for e in self.error_details],
        }


class BatchStatsAccumulator:
    """Collects batch timings and summarizes them for JobResult."""

    def __init__(self) -> None:
        self.batch_times: list[float] = []

    def add_batch_time(self, elapsed_seconds: float) -> None:
        self.batch_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Return (total_batches, avg_batch_seconds, p95_batch_seconds)."""
        if not self.batch_times:
            return (0, 0.0, 0.0)

        total_batches = len(self.batch_times)
        avg_batch_seconds = statistics.mean(self.batch_times)

        if total_batches == 1:
            p95_batch_seconds = self.batch_times[0]
        else:
            # 20 分位の 19 番目 = 95 パーセンタイル
            p95_batch_seconds = statistics.quantiles(
                self.batch_times, n=20, method='inclusive'
            )[18]

        return (total_batches, avg_batch_seconds, p95_batch_seconds)
