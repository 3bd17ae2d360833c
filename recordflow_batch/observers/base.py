"""
Job observers -- lifecycle hooks around a job and its partitions.

Contract:
    ``on_job_start`` runs on the launching thread before any partition.
    ``on_partition_start`` / ``on_partition_end`` run on the partition's
    worker thread, so implementations must be thread-safe.
    ``on_job_end`` runs once, after every partition has finished.

Failure policy (CompositeObserver):
    - A failing ``on_job_start`` propagates and the job does not run.
      This is how the job repository refuses a duplicate run.
    - Failures in the other hooks are logged (``observer_failed``) and the
      remaining observers still run.  Observers never change a result.
"""

from __future__ import annotations

from typing import Iterable, Protocol, Sequence, runtime_checkable
from uuid import UUID

from recordflow_kernel.logging_config import get_logger

from recordflow_batch.domain.types import (
    JobParameters,
    JobResult,
    PartitionDescriptor,
    PartitionResult,
)

logger = get_logger("batch.observers")


@runtime_checkable
class JobObserver(Protocol):
    """Protocol for job lifecycle listeners."""

    def on_job_start(
        self,
        job_id: UUID,
        parameters: JobParameters | None,
        descriptors: Sequence[PartitionDescriptor],
    ) -> None: ...

    def on_job_end(self, result: JobResult) -> None: ...

    def on_partition_start(
        self, job_id: UUID, descriptor: PartitionDescriptor,
    ) -> None: ...

    def on_partition_end(self, job_id: UUID, result: PartitionResult) -> None: ...


class CompositeObserver:
    """Fans each hook out to a list of observers, in registration order."""

    def __init__(self, observers: Iterable[JobObserver] = ()) -> None:
        self._observers: list[JobObserver] = list(observers)

    @property
    def observers(self) -> tuple[JobObserver, ...]:
        return tuple(self._observers)

    def add(self, observer: JobObserver) -> None:
        self._observers.append(observer)

    def on_job_start(
        self,
        job_id: UUID,
        parameters: JobParameters | None,
        descriptors: Sequence[PartitionDescriptor],
    ) -> None:
        for observer in self._observers:
            observer.on_job_start(job_id, parameters, descriptors)

    def on_job_end(self, result: JobResult) -> None:
        for observer in self._observers:
            try:
                observer.on_job_end(result)
            except Exception:
                self._log_failure(observer, "on_job_end")

    def on_partition_start(
        self, job_id: UUID, descriptor: PartitionDescriptor,
    ) -> None:
        for observer in self._observers:
            try:
                observer.on_partition_start(job_id, descriptor)
            except Exception:
                self._log_failure(observer, "on_partition_start")

    def on_partition_end(self, job_id: UUID, result: PartitionResult) -> None:
        for observer in self._observers:
            try:
                observer.on_partition_end(job_id, result)
            except Exception:
                self._log_failure(observer, "on_partition_end")

    @staticmethod
    def _log_failure(observer: JobObserver, hook: str) -> None:
        logger.exception(
            "observer_failed",
            extra={"observer": type(observer).__name__, "hook": hook},
        )
