"""Domain models for the spreadsheet -> table import pipeline."""

from .column_spec import BoundedText, ColumnSpec, DateOnly, Decimal, Integer, SemanticType, TypeKind
from .field_error import FieldError
from .job_settings import DuplicateStrategy, JobConfigurationError, JobSettings, StrictMode
from .job_status import JobStateError, JobStatus
from .processing_result import BatchOutcome, BatchStatsAccumulator, JobResult
from .row_data import RowData

__all__ = [
    # Schema
    "ColumnSpec",
    "SemanticType",
    "TypeKind",
    "Integer",
    "DateOnly",
    "BoundedText",
    "Decimal",
    # Settings
    "JobSettings",
    "DuplicateStrategy",
    "StrictMode",
    "JobConfigurationError",
    # Processing
    "RowData",
    "FieldError",
    "BatchOutcome",
    "JobResult",
    "BatchStatsAccumulator",
    "JobStatus",
    "JobStateError",
]
