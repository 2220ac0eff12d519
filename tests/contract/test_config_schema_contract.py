from __future__ import annotations

import json

import jsonschema
import pytest
from jsonschema.exceptions import ValidationError

from sheet_import.config.loader import SCHEMA_PATH


@pytest.fixture(scope="module")
def schema():
    return json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))


def test_minimal_config_accepted(schema):
    jsonschema.validate({}, schema)


def test_full_config_accepted(schema):
    jsonschema.validate(
        {
            "source_file": "./data/sales.xlsx",
            "sheet": "Sales",
            "auto_map": False,
            "keep_na_strings": ["NA"],
            "column_mapping": {"SalesDate": "Business Date", "Voids": None},
            "settings": {
                "duplicate_strategy": "upsert",
                "strict_mode": "strict",
                "batch_size": 500,
                "delete_all": True,
                "primary_key": "MeraLocationId",
            },
            "database": {"host": "db", "port": 5432, "user": "u", "password": "p", "database": "d"},
        },
        schema,
    )


@pytest.mark.parametrize(
    "config",
    [
        {"unknown": 1},
        {"settings": {"batch_size": 0}},
        {"settings": {"duplicate_strategy": "merge"}},
        {"settings": {"strict_mode": "lenient"}},
        {"settings": {"extra": True}},
        {"database": {"port": 70000}},
        {"column_mapping": {"SalesDate": 1}},
    ],
)
def test_invalid_config_rejected(schema, config):
    with pytest.raises(ValidationError):
        jsonschema.validate(config, schema)
