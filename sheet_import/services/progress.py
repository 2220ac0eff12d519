from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Progress display service with tqdm (TTY only).

- 単一の tqdm インスタンス (非TTY では生成しない)
- validation: チャンク単位で update_to(processed)
- load: バッチ単位で advance(rows)

Non-TTY runs (CI, redirected output) get no progress output at all so that the
log lines and the SUMMARY line stay machine readable.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    """Check if TTY output is enabled.

    Returns:
        True if stdout is a TTY and progress should be displayed, False otherwise
    """
    return sys.stdout.isatty()


class ProgressTracker:
    """Progress tracker over a known number of rows.

    The tracker keeps its own position even when the bar is disabled, so callers
    (and tests) can read ``position`` regardless of the terminal.
    """

    def __init__(self, total: int, *, description: str = "Processing", unit: str = "row") -> None:
        """Initialize progress tracker.

        Args:
            total: Total number of units (rows) to process
            description: Description for the progress bar
            unit: Unit label shown by tqdm
        """
        self.total = total
        self.description = description
        self.position = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total,
                desc=description,
                unit=unit,
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def advance(self, n: int = 1) -> None:
        """Move forward by ``n`` units."""
        self.position += n
        if self.enabled and self.pbar is not None:
            self.pbar.update(n)

    def update_to(self, processed: int) -> None:
        """Jump to an absolute position (validation progress callback)."""
        delta = processed - self.position
        if delta > 0:
            self.advance(delta)

    def callback(self, processed: int, total: int) -> None:
        """``progress(processed, total)`` adapter for validate_records."""
        self.update_to(processed)

    def set_postfix(self, **kwargs: Any) -> None:
        """Set postfix information (stats) on the progress bar."""
        if self.enabled and self.pbar is not None:
            self.pbar.set_postfix(**kwargs)

    def close(self) -> None:
        """Close the progress bar."""
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
