"""
MetricsObserver -- Feeds job and step durations into BatchMetrics.

Record and failure counters are incremented where they happen (writer and
chunk executor); this observer only times the job and its partitions.
"""

from __future__ import annotations

from typing import Sequence
from uuid import UUID

from recordflow_kernel.metrics import BatchMetrics

from recordflow_batch.domain.types import (
    JobParameters,
    JobResult,
    PartitionDescriptor,
    PartitionResult,
)


class MetricsObserver:

    def __init__(self, metrics: BatchMetrics) -> None:
        self._metrics = metrics

    def on_job_start(
        self,
        job_id: UUID,
        parameters: JobParameters | None,
        descriptors: Sequence[PartitionDescriptor],
    ) -> None:
        pass

    def on_job_end(self, result: JobResult) -> None:
        self._metrics.observe_job(result.duration_ms / 1000.0)

    def on_partition_start(
        self, job_id: UUID, descriptor: PartitionDescriptor,
    ) -> None:
        pass

    def on_partition_end(self, job_id: UUID, result: PartitionResult) -> None:
        self._metrics.observe_step(result.duration_ms / 1000.0)
