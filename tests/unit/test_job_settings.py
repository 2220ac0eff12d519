from __future__ import annotations

import pytest

from sheet_import.models.job_settings import (
    DEFAULT_BATCH_SIZE,
    DuplicateStrategy,
    JobConfigurationError,
    JobSettings,
    StrictMode,
)
from sheet_import.schema.registry import TABLE_COLUMNS


def test_defaults():
    s = JobSettings()
    assert s.duplicate_strategy is DuplicateStrategy.INSERT_ONLY
    assert s.strict_mode is StrictMode.TOLERANT
    assert s.batch_size == DEFAULT_BATCH_SIZE
    assert s.delete_all is False
    assert s.primary_key is None
    assert s.is_strict is False


def test_from_dict():
    s = JobSettings.from_dict(
        {
            "duplicate_strategy": "upsert",
            "strict_mode": "strict",
            "batch_size": 50,
            "delete_all": True,
            "primary_key": "MeraLocationId",
        }
    )
    assert s.duplicate_strategy is DuplicateStrategy.UPSERT
    assert s.is_strict
    assert s.batch_size == 50
    assert s.delete_all is True
    assert s.primary_key == "MeraLocationId"


def test_from_dict_none_gives_defaults():
    assert JobSettings.from_dict(None) == JobSettings()


@pytest.mark.parametrize(
    "data",
    [{"duplicate_strategy": "merge"}, {"strict_mode": "lenient"}, {"batch_size": "10"}, {"batch_size": True}],
)
def test_from_dict_rejects(data):
    with pytest.raises(JobConfigurationError):
        JobSettings.from_dict(data)


def test_check_insert_only_needs_no_key(full_mapping):
    JobSettings().check(full_mapping, TABLE_COLUMNS)


@pytest.mark.parametrize("size", [0, -5])
def test_check_rejects_non_positive_batch_size(full_mapping, size):
    with pytest.raises(JobConfigurationError, match="batch_size"):
        JobSettings(batch_size=size).check(full_mapping, TABLE_COLUMNS)


@pytest.mark.parametrize("strategy", [DuplicateStrategy.SKIP, DuplicateStrategy.UPSERT])
def test_check_requires_primary_key(full_mapping, strategy):
    with pytest.raises(JobConfigurationError, match="primary key is required"):
        JobSettings(duplicate_strategy=strategy).check(full_mapping, TABLE_COLUMNS)


@pytest.mark.parametrize(
    "pk,match",
    [("Nope", "not a table column"), ("Id", "identity"), ("Voids", "not mapped")],
)
def test_check_rejects_bad_primary_key(full_mapping, pk, match):
    mapping = dict(full_mapping)
    mapping["Voids"] = None
    settings = JobSettings(duplicate_strategy=DuplicateStrategy.SKIP, primary_key=pk)
    with pytest.raises(JobConfigurationError, match=match):
        settings.check(mapping, TABLE_COLUMNS)


def test_check_accepts_mapped_primary_key(full_mapping):
    JobSettings(duplicate_strategy=DuplicateStrategy.UPSERT, primary_key="MeraLocationId").check(
        full_mapping, TABLE_COLUMNS
    )
