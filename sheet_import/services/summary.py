from __future__ import annotations

from ..models.processing_result import JobResult

"""Summary line rendering for the import tool.

Format:
SUMMARY mode=<dry_run|load> status=<success|aborted> rows=N inserted=N updated=N
skipped=N errors=N batches=N elapsed_sec=X throughput_rps=Y
"""

__all__ = [
    "render_summary_line",
]


def _format_number(value: float) -> str:
    # 整数値は小数点なし、極小値は指数表記を避ける
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_summary_line(result: JobResult) -> str:
    """Render a SUMMARY line from a JobResult.

    Args:
        result: final JobResult of a dry run or a load

    Returns:
        Single line, space separated ``key=value`` pairs in a fixed order

    Examples:
        >>> r = JobResult(total_rows=7, inserted=5, updated=0, skipped=0, error_count=2,
        ...               dry_run=True, elapsed_seconds=0.5)
        >>> render_summary_line(r)
        'SUMMARY mode=dry_run status=success rows=7 inserted=5 updated=0 skipped=0 errors=2 batches=0 elapsed_sec=0.5 throughput_rps=10'
    """
    mode = "dry_run" if result.dry_run else "load"
    status = "success" if result.success else "aborted"
    return (
        f"SUMMARY mode={mode} "
        f"status={status} "
        f"rows={result.total_rows} "
        f"inserted={result.inserted} "
        f"updated={result.updated} "
        f"skipped={result.skipped} "
        f"errors={result.error_count} "
        f"batches={result.total_batches} "
        f"elapsed_sec={_format_number(result.elapsed_seconds)} "
        f"throughput_rps={_format_number(result.throughput_rows_per_sec)}"
    )
