from __future__ import annotations

from collections.abc import Sequence
from typing import TypeVar

"""Batch planning: split rows into contiguous, ordered chunks."""

__all__ = [
    "plan_batches",
]

T = TypeVar("T")


def plan_batches(rows: Sequence[T], batch_size: int) -> list[list[T]]:
    """Split ``rows`` into chunks of at most ``batch_size`` elements.

    Order is preserved and concatenating the chunks gives back ``rows``.
    A non-positive ``batch_size`` yields a single chunk holding everything.
    An empty input yields no chunks.
    """
    if not rows:
        return []
    if batch_size <= 0:
        return [list(rows)]
    return [list(rows[i:i + batch_size]) for i in range(0, len(rows), batch_size)]
