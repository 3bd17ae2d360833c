"""
Configuration schema (``recordflow_config.schema``).

Frozen dataclasses describing one engine configuration.  Defaults match a
local run against SQLite with a four-way partition grid.

Invariants enforced
-------------------
* Every instance is immutable after construction.
* Numeric bounds are validated in ``__post_init__`` and reported as
  ``ConfigurationError`` naming the offending setting.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from recordflow_kernel.exceptions import ConfigurationError

from recordflow_batch.domain.types import RetryPolicy


@dataclass(frozen=True)
class RetrySettings:
    """Retry/backoff settings for chunk attempts."""

    max_attempts: int = 3
    base_delay_seconds: float = 0.1
    backoff_multiplier: float = 2.0
    max_delay_seconds: float = 30.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError("retry.max_attempts", "must be >= 1")
        if self.base_delay_seconds < 0:
            raise ConfigurationError("retry.base_delay_seconds", "must be >= 0")
        if self.max_delay_seconds < 0:
            raise ConfigurationError("retry.max_delay_seconds", "must be >= 0")
        if self.backoff_multiplier < 1:
            raise ConfigurationError("retry.backoff_multiplier", "must be >= 1")

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay_seconds,
            backoff_multiplier=self.backoff_multiplier,
            max_delay=self.max_delay_seconds,
        )


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection settings for the write sink and job repository."""

    url: str = "sqlite:///recordflow.db"
    echo: bool = False
    pool_size: int = 10
    create_schema: bool = False

    def __post_init__(self) -> None:
        if not self.url:
            raise ConfigurationError("database.url", "must not be empty")
        if self.pool_size < 1:
            raise ConfigurationError("database.pool_size", "must be >= 1")


@dataclass(frozen=True)
class BatchSettings:
    """Root engine settings."""

    job_name: str = "recordJob"
    chunk_size: int = 100
    grid_size: int = 4
    per_chunk_timeout_seconds: float | None = None
    encoding: str = "utf-8"
    retry: RetrySettings = field(default_factory=RetrySettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)

    def __post_init__(self) -> None:
        if not self.job_name:
            raise ConfigurationError("job_name", "must not be empty")
        if self.chunk_size < 1:
            raise ConfigurationError("chunk_size", "must be >= 1")
        if self.grid_size < 1:
            raise ConfigurationError("grid_size", "must be >= 1")
        if (
            self.per_chunk_timeout_seconds is not None
            and self.per_chunk_timeout_seconds <= 0
        ):
            raise ConfigurationError(
                "per_chunk_timeout_seconds", "must be > 0 or null",
            )
