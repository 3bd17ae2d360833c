"""
recordflow_batch.domain -- Pure types and value objects for the engine.

ZERO I/O.  All types are frozen dataclasses.
"""

from recordflow_batch.domain.types import (
    Chunk,
    ChunkOutcome,
    ChunkState,
    JobParameters,
    JobResult,
    JobStatus,
    PartitionDescriptor,
    PartitionResult,
    PartitionStatus,
    Record,
    RetryPolicy,
)

__all__ = [
    "Chunk",
    "ChunkOutcome",
    "ChunkState",
    "JobParameters",
    "JobResult",
    "JobStatus",
    "PartitionDescriptor",
    "PartitionResult",
    "PartitionStatus",
    "Record",
    "RetryPolicy",
]
