from __future__ import annotations

import json
import re
from pathlib import Path

from sheet_import.logging.error_log import ErrorLogBuffer
from sheet_import.models.field_error import FieldError


def test_flush_writes_json_lines(tmp_path: Path):
    buf = ErrorLogBuffer(logs_dir=tmp_path / "logs")
    buf.append(FieldError(4, "SalesDate", "not a date", "Invalid or unsupported date format."))
    buf.extend([FieldError.batch(2, 6, "duplicate key")])
    assert len(buf) == 2

    path = buf.flush()
    assert path is not None
    assert re.fullmatch(r"errors-\d{8}-\d{6}\.log", path.name)
    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert lines == [
        {"row": 4, "column": "SalesDate", "value": "not a date", "error": "Invalid or unsupported date format."},
        {"row": 0, "column": "Batch", "value": "rows 2-6", "error": "duplicate key"},
    ]
    assert len(buf) == 0


def test_flush_empty_creates_nothing(tmp_path: Path):
    buf = ErrorLogBuffer(logs_dir=tmp_path / "logs")
    assert buf.flush() is None
    assert not (tmp_path / "logs").exists()


def test_flush_appends_to_same_file(tmp_path: Path):
    buf = ErrorLogBuffer(logs_dir=tmp_path)
    buf.append(FieldError.global_("boom"))
    first = buf.flush()
    buf.append(FieldError.global_("again"))
    second = buf.flush()
    assert first == second
    assert len(first.read_text(encoding="utf-8").splitlines()) == 2


def test_non_ascii_kept(tmp_path: Path):
    buf = ErrorLogBuffer(logs_dir=tmp_path)
    buf.append(FieldError(2, "MeraRevenueCenterName", "食堂", "x"))
    text = buf.flush().read_text(encoding="utf-8")
    assert "食堂" in text
