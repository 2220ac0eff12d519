from __future__ import annotations

import math

import pytest

from sheet_import.services.batching import plan_batches


@pytest.mark.parametrize("n,size", [(1, 1), (5, 2), (6, 3), (7, 10), (1000, 1000), (1001, 1000)])
def test_chunks_reassemble_in_order(n, size):
    rows = list(range(n))
    chunks = plan_batches(rows, size)
    assert [x for chunk in chunks for x in chunk] == rows
    assert len(chunks) == math.ceil(n / size)
    assert all(len(c) <= size for c in chunks)


@pytest.mark.parametrize("size", [0, -1])
def test_non_positive_size_is_single_chunk(size):
    assert plan_batches([1, 2, 3], size) == [[1, 2, 3]]


def test_empty_input():
    assert plan_batches([], 10) == []
    assert plan_batches([], 0) == []


def test_chunks_are_independent_lists():
    rows = (1, 2, 3)
    chunks = plan_batches(rows, 2)
    assert chunks == [[1, 2], [3]]
    assert all(isinstance(c, list) for c in chunks)
