"""
recordflow_batch.domain.types -- Pure frozen dataclasses for the engine.

ZERO I/O.

Frozen dataclasses with enum status fields and tuples for immutable
collections.  Workers hand results back by value, so nothing here is ever
shared mutably between partitions.

Invariants enforced:
    - PartitionDescriptor: start_offset >= 0, item_count > 0.
    - JobResult.status is COMPLETED iff every partition is COMPLETED and
      the job was not aborted.
    - RetryPolicy: max_attempts >= 1, delays non-negative, multiplier >= 1.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import UUID


# =============================================================================
# Status enums
# =============================================================================


class PartitionStatus(str, Enum):
    """Final status of one partition."""

    COMPLETED = "completed"
    FAILED = "failed"


class JobStatus(str, Enum):
    """Job-level lifecycle status."""

    STARTING = "starting"  # Partitioned, workers not yet running
    RUNNING = "running"
    COMPLETED = "completed"  # Every partition completed
    FAILED = "failed"  # At least one partition failed, or aborted


class ChunkState(str, Enum):
    """Per-chunk state machine of the fault-tolerant executor."""

    PENDING = "pending"
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    COMMITTED = "committed"  # Terminal success
    FAILED_TERMINAL = "failed_terminal"  # Terminal failure


# =============================================================================
# Records and chunks
# =============================================================================


@dataclass(frozen=True)
class Record:
    """One input row.

    Any field may be absent when parsing failed; absence is validated
    downstream (the writer rejects an absent ``id``).
    """

    id: int | None = None
    payload: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class PartitionDescriptor:
    """A contiguous range of input lines owned by exactly one worker."""

    partition_id: str
    start_offset: int  # Lines to skip from the start of the source
    item_count: int  # Lines covered by this partition
    source: Path

    def __post_init__(self) -> None:
        if self.start_offset < 0:
            raise ValueError(
                f"start_offset must be >= 0, got {self.start_offset}"
            )
        if self.item_count <= 0:
            raise ValueError(f"item_count must be > 0, got {self.item_count}")

    @property
    def end_offset(self) -> int:
        """Exclusive end of the covered offset range."""
        return self.start_offset + self.item_count

    def to_context(self) -> dict[str, Any]:
        """Transfer form used in logs and the job repository."""
        return {
            "startAt": self.start_offset,
            "itemCount": self.item_count,
            "inputFile": str(self.source),
            "partitionId": self.partition_id,
        }


@dataclass(frozen=True)
class Chunk:
    """Up to ``chunk_size`` records read contiguously from one partition."""

    partition_id: str
    index: int  # 0-based position within the partition
    records: tuple[Record, ...] = ()

    def __len__(self) -> int:
        return len(self.records)


# =============================================================================
# Retry policy
# =============================================================================


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff.

    ``delay_for(n)`` is the wait after the n-th failed attempt:
    ``base_delay * backoff_multiplier ** (n - 1)``, capped at ``max_delay``.
    """

    max_attempts: int = 3
    base_delay: float = 0.1  # seconds
    backoff_multiplier: float = 2.0
    max_delay: float = 30.0  # seconds

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(
                f"max_attempts must be >= 1, got {self.max_attempts}"
            )
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must be non-negative")
        if self.backoff_multiplier < 1:
            raise ValueError(
                f"backoff_multiplier must be >= 1, got {self.backoff_multiplier}"
            )

    def delay_for(self, attempt: int) -> float:
        if attempt < 1:
            return 0.0
        delay = self.base_delay * (self.backoff_multiplier ** (attempt - 1))
        return min(delay, self.max_delay)


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class ChunkOutcome:
    """Result of driving one chunk through the executor state machine."""

    chunk_index: int
    state: ChunkState
    attempts: int
    read_count: int = 0
    write_count: int = 0
    failure_count: int = 0  # Failed attempts, including ones later retried
    error_code: str | None = None
    error_message: str | None = None

    @property
    def committed(self) -> bool:
        return self.state == ChunkState.COMMITTED


@dataclass(frozen=True)
class PartitionResult:
    """Immutable result of one partition worker.

    Returned by value from ``PartitionWorker.run()``.
    """

    partition_id: str
    status: PartitionStatus
    read_count: int = 0
    write_count: int = 0
    failure_count: int = 0
    start_offset: int = 0
    item_count: int = 0
    chunks_committed: int = 0
    error_code: str | None = None
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0


@dataclass(frozen=True)
class JobParameters:
    """Launcher-supplied invocation parameters.

    ``timestamp`` only distinguishes repeated invocations over the same
    input; it plays no part in partitioning.
    """

    input_file: Path
    timestamp: int

    @property
    def idempotency_key(self) -> str:
        return f"{self.input_file}:{self.timestamp}"


@dataclass(frozen=True)
class JobResult:
    """Immutable aggregate of all partition results.

    Returned by ``PartitionedJobExecutor.execute()``.
    """

    job_id: UUID
    job_name: str
    status: JobStatus
    partitions: tuple[PartitionResult, ...] = ()
    aborted: bool = False
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0
    error_code: str | None = None
    error_message: str | None = None
    parameters: dict[str, Any] = field(default_factory=dict)

    @property
    def read_count(self) -> int:
        return sum(p.read_count for p in self.partitions)

    @property
    def write_count(self) -> int:
        return sum(p.write_count for p in self.partitions)

    @property
    def failure_count(self) -> int:
        return sum(p.failure_count for p in self.partitions)

    @property
    def failed_partitions(self) -> tuple[PartitionResult, ...]:
        return tuple(
            p for p in self.partitions if p.status == PartitionStatus.FAILED
        )

    def partition(self, partition_id: str) -> PartitionResult:
        """Look up one partition's result by id.

        Raises:
            KeyError: If no partition has the given id.
        """
        for p in self.partitions:
            if p.partition_id == partition_id:
                return p
        raise KeyError(partition_id)


def job_status_for(
    partitions: tuple[PartitionResult, ...], aborted: bool,
) -> JobStatus:
    """COMPLETED iff not aborted and every partition completed."""
    if aborted:
        return JobStatus.FAILED
    if all(p.status == PartitionStatus.COMPLETED for p in partitions):
        return JobStatus.COMPLETED
    return JobStatus.FAILED
