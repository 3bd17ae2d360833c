"""
PartitionedJobExecutor -- Bounded-concurrency fan-out of partition workers.

Contract:
    ``execute(descriptors, parameters)`` runs one PartitionWorker per
    descriptor on a thread pool, waits for every worker, and returns the
    aggregated JobResult.  ``abort()`` raises the job-level abort signal.

Architecture: recordflow_batch/services.  Imports from recordflow_batch.domain,
    recordflow_batch.observers and the partition worker.

Invariants enforced:
    - At most ``grid_size`` partitions run at once (BoundedSemaphore), even
      though the pool is sized to the partition count.
    - A failing or crashing partition never cancels its siblings.
    - Results are collected in completion order and reported in
      descriptor order.
    - Job status is COMPLETED iff every partition completed and no abort
      was requested.

Cancellation:
    After ``abort()`` no new chunk attempt starts.  Attempts already in
    flight finish; partitions that never started report JOB_ABORTED.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Sequence
from uuid import UUID, uuid4

from recordflow_kernel.domain.clock import Clock, SystemClock
from recordflow_kernel.exceptions import JobAbortedError
from recordflow_kernel.logging_config import LogContext, get_logger

from recordflow_batch.domain.types import (
    JobParameters,
    JobResult,
    PartitionDescriptor,
    PartitionResult,
    PartitionStatus,
    job_status_for,
)
from recordflow_batch.observers.base import CompositeObserver, JobObserver
from recordflow_batch.services.partition_worker import PartitionWorker

logger = get_logger("batch.job_executor")

WORKER_CRASHED = "WORKER_CRASHED"
PARTITION_FAILED = "PARTITION_FAILED"


class PartitionedJobExecutor:
    """Runs all partitions of a job and aggregates their results."""

    def __init__(
        self,
        worker: PartitionWorker,
        grid_size: int,
        observer: JobObserver | None = None,
        clock: Clock | None = None,
        job_name: str = "recordJob",
    ) -> None:
        if grid_size < 1:
            raise ValueError(f"grid_size must be >= 1, got {grid_size}")
        self._worker = worker
        self._grid_size = grid_size
        self._observer = observer or CompositeObserver()
        self._clock = clock or SystemClock()
        self._job_name = job_name

    @property
    def grid_size(self) -> int:
        return self._grid_size

    @property
    def abort_event(self) -> threading.Event:
        return self._worker.abort_event

    def abort(self) -> None:
        """Request a job-level abort; in-flight attempts finish first."""
        if not self.abort_event.is_set():
            logger.warning("job_abort_requested")
        self.abort_event.set()

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def execute(
        self,
        descriptors: Sequence[PartitionDescriptor],
        parameters: JobParameters | None = None,
        job_id: UUID | None = None,
    ) -> JobResult:
        job_id = job_id or uuid4()
        descriptors = tuple(descriptors)

        with LogContext.bind(job_id=str(job_id), job_name=self._job_name):
            started_at = self._clock.now_utc()
            start = time.monotonic()

            self._observer.on_job_start(job_id, parameters, descriptors)
            results = self._run_all(job_id, descriptors)

            aborted = self.abort_event.is_set()
            status = job_status_for(results, aborted)
            error_code, error_message = self._job_error(results, aborted)

            result = JobResult(
                job_id=job_id,
                job_name=self._job_name,
                status=status,
                partitions=results,
                aborted=aborted,
                started_at=started_at,
                completed_at=self._clock.now_utc(),
                duration_ms=int((time.monotonic() - start) * 1000),
                error_code=error_code,
                error_message=error_message,
                parameters=self._parameters_dict(parameters),
            )
            self._observer.on_job_end(result)
            return result

    def _run_all(
        self, job_id: UUID, descriptors: tuple[PartitionDescriptor, ...],
    ) -> tuple[PartitionResult, ...]:
        if not descriptors:
            return ()

        gate = threading.BoundedSemaphore(self._grid_size)
        by_id: dict[str, PartitionResult] = {}

        with ThreadPoolExecutor(
            max_workers=len(descriptors), thread_name_prefix="partition",
        ) as pool:
            futures = {
                pool.submit(self._run_partition, job_id, descriptor, gate): descriptor
                for descriptor in descriptors
            }
            for future in as_completed(futures):
                result = future.result()
                by_id[result.partition_id] = result
                logger.debug(
                    "partition_collected",
                    extra={
                        "partition_id": result.partition_id,
                        "status": result.status.value,
                        "collected": len(by_id),
                        "total": len(descriptors),
                    },
                )

        return tuple(by_id[d.partition_id] for d in descriptors)

    def _run_partition(
        self,
        job_id: UUID,
        descriptor: PartitionDescriptor,
        gate: threading.BoundedSemaphore,
    ) -> PartitionResult:
        # Pool threads do not inherit the caller's context variables.
        with LogContext.bind(
            job_id=str(job_id),
            job_name=self._job_name,
            partition_id=descriptor.partition_id,
        ), gate:
            if self.abort_event.is_set():
                result = self._not_started(descriptor)
            else:
                self._observer.on_partition_start(job_id, descriptor)
                try:
                    result = self._worker.run(descriptor)
                except Exception as exc:
                    logger.exception(
                        "partition_crashed",
                        extra={"error": str(exc)},
                    )
                    result = self._failed(descriptor, WORKER_CRASHED, str(exc))
            self._observer.on_partition_end(job_id, result)
            return result

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _not_started(self, descriptor: PartitionDescriptor) -> PartitionResult:
        logger.warning("partition_skipped_after_abort")
        return self._failed(
            descriptor, JobAbortedError.code, "job aborted before partition started",
        )

    def _failed(
        self, descriptor: PartitionDescriptor, code: str, message: str,
    ) -> PartitionResult:
        now = self._clock.now_utc()
        return PartitionResult(
            partition_id=descriptor.partition_id,
            status=PartitionStatus.FAILED,
            start_offset=descriptor.start_offset,
            item_count=descriptor.item_count,
            error_code=code,
            error_message=message,
            started_at=now,
            completed_at=now,
        )

    @staticmethod
    def _job_error(
        results: tuple[PartitionResult, ...], aborted: bool,
    ) -> tuple[str | None, str | None]:
        if aborted:
            return JobAbortedError.code, "job abort requested"
        failed = [r for r in results if r.status == PartitionStatus.FAILED]
        if not failed:
            return None, None
        return (
            PARTITION_FAILED,
            f"{len(failed)} of {len(results)} partition(s) failed: "
            + ", ".join(f"{r.partition_id}={r.error_code}" for r in failed),
        )

    @staticmethod
    def _parameters_dict(parameters: JobParameters | None) -> dict[str, object]:
        if parameters is None:
            return {}
        return {
            "inputFile": str(parameters.input_file),
            "timestamp": parameters.timestamp,
        }

