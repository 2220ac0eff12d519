from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum

from .column_spec import ColumnSpec

"""Job settings bundle for a load run.

duplicate_strategy / strict_mode / batch_size / delete_all / primary_key.
check() で設定エラーを検出し、ジョブ開始前に拒否する。
"""

__all__ = [
    "DuplicateStrategy",
    "StrictMode",
    "JobSettings",
    "JobConfigurationError",
    "DEFAULT_BATCH_SIZE",
]

DEFAULT_BATCH_SIZE = 1000


class JobConfigurationError(Exception):
    """Raised when settings are inconsistent; the job must not start."""


class DuplicateStrategy(Enum):
    INSERT_ONLY = "insert_only"
    SKIP = "skip"
    UPSERT = "upsert"

    @property
    def needs_primary_key(self) -> bool:
        return self is not DuplicateStrategy.INSERT_ONLY


class StrictMode(Enum):
    """TOLERANT records write errors and continues; STRICT aborts on the first one."""
    TOLERANT = "tolerant"
    STRICT = "strict"


@dataclass(frozen=True)
class JobSettings:
    duplicate_strategy: DuplicateStrategy = DuplicateStrategy.INSERT_ONLY
    strict_mode: StrictMode = StrictMode.TOLERANT
    batch_size: int = DEFAULT_BATCH_SIZE
    delete_all: bool = False
    primary_key: str | None = None

    @property
    def is_strict(self) -> bool:
        return self.strict_mode is StrictMode.STRICT

    @classmethod
    def from_dict(cls, data: Mapping[str, object] | None) -> JobSettings:
        """Build settings from the config ``settings`` section (already schema-checked)."""
        data = data or {}
        try:
            strategy = DuplicateStrategy(data.get("duplicate_strategy", "insert_only"))
            strict = StrictMode(data.get("strict_mode", "tolerant"))
        except ValueError as e:
            raise JobConfigurationError(str(e)) from e
        batch_size = data.get("batch_size", DEFAULT_BATCH_SIZE)
        if not isinstance(batch_size, int) or isinstance(batch_size, bool):
            raise JobConfigurationError(f"batch_size must be an integer, got {batch_size!r}")
        pk = data.get("primary_key")
        return cls(
            duplicate_strategy=strategy,
            strict_mode=strict,
            batch_size=batch_size,
            delete_all=bool(data.get("delete_all", False)),
            primary_key=str(pk) if pk else None,
        )

    def check(
        self,
        mapping: Mapping[str, str | None],
        columns: Sequence[ColumnSpec],
    ) -> None:
        """Reject settings that cannot run against ``mapping``.

        Raises:
            JobConfigurationError: skip/upsert without a primary key, or a primary key
                that is unknown, an identity column, or not mapped to a source header.
        """
        if self.batch_size <= 0:
            raise JobConfigurationError(f"batch_size must be positive, got {self.batch_size}")
        if not self.duplicate_strategy.needs_primary_key:
            return
        if not self.primary_key:
            raise JobConfigurationError(
                f"a primary key is required for the '{self.duplicate_strategy.value}' strategy"
            )
        by_name = {c.name: c for c in columns}
        spec = by_name.get(self.primary_key)
        if spec is None:
            raise JobConfigurationError(f"primary key '{self.primary_key}' is not a table column")
        if spec.is_identity:
            raise JobConfigurationError(
                f"primary key '{self.primary_key}' is an identity column and cannot be matched"
            )
        if not mapping.get(self.primary_key):
            raise JobConfigurationError(f"primary key '{self.primary_key}' is not mapped")
