from __future__ import annotations

import logging
from io import StringIO

import pytest

from sheet_import.logging import init as log_init
from sheet_import.logging.init import (
    SUMMARY_LEVEL,
    LabeledFormatter,
    get_logger,
    log_summary,
    reset_logging,
    setup_logging,
)


@pytest.fixture(autouse=True)
def clean_logging():
    reset_logging()
    yield
    reset_logging()


def test_setup_logging_creates_app_logger():
    logger = setup_logging()
    assert logger.name == "sheet_import"
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, LabeledFormatter)
    assert logger.propagate is False


def test_setup_logging_is_idempotent():
    first = setup_logging()
    assert setup_logging() is first
    assert get_logger() is first
    assert len(first.handlers) == 1


def test_debug_level():
    logger = setup_logging(debug=True)
    assert logger.level == logging.DEBUG
    assert logger.handlers[0].level == logging.DEBUG


@pytest.mark.parametrize(
    "level,label",
    [
        (logging.INFO, "INFO"),
        (logging.WARNING, "WARN"),
        (logging.ERROR, "ERROR"),
        (SUMMARY_LEVEL, "SUMMARY"),
        (logging.DEBUG, "DEBUG"),
    ],
)
def test_labeled_formatter(level, label):
    record = logging.LogRecord("x", level, __file__, 1, "hello %s", ("world",), None)
    assert LabeledFormatter().format(record) == f"{label} hello world"


def test_module_loggers_propagate_into_app_logger():
    logger = setup_logging()
    stream = StringIO()
    logger.handlers[0].setStream(stream)

    logging.getLogger("sheet_import.services.orchestrator").warning("batch rolled back")
    log_summary("mode=load status=success")

    assert stream.getvalue().splitlines() == [
        "WARN batch rolled back",
        "SUMMARY mode=load status=success",
    ]


def test_reset_logging_removes_handlers():
    logger = setup_logging()
    reset_logging()
    assert log_init._logger is None
    assert logger.handlers == []
