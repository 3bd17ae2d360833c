"""
LoggingObserver -- Job and partition lifecycle events as structured logs.
"""

from __future__ import annotations

from typing import Sequence
from uuid import UUID

from recordflow_kernel.logging_config import get_logger

from recordflow_batch.domain.types import (
    JobParameters,
    JobResult,
    JobStatus,
    PartitionDescriptor,
    PartitionResult,
    PartitionStatus,
)

logger = get_logger("batch.lifecycle")


class LoggingObserver:
    """Emits ``job_started`` / ``job_finished`` and per-step events."""

    def on_job_start(
        self,
        job_id: UUID,
        parameters: JobParameters | None,
        descriptors: Sequence[PartitionDescriptor],
    ) -> None:
        logger.info(
            "job_started",
            extra={
                "job_id": str(job_id),
                "input_file": (
                    str(parameters.input_file) if parameters is not None else None
                ),
                "run_timestamp": (
                    parameters.timestamp if parameters is not None else None
                ),
                "partition_count": len(descriptors),
            },
        )

    def on_job_end(self, result: JobResult) -> None:
        extra = {
            "job_id": str(result.job_id),
            "status": result.status.value,
            "read_count": result.read_count,
            "write_count": result.write_count,
            "failure_count": result.failure_count,
            "aborted": result.aborted,
            "duration_ms": result.duration_ms,
        }
        if result.status == JobStatus.COMPLETED:
            logger.info("job_finished", extra=extra)
            return

        extra["error_code"] = result.error_code
        extra["failed_partitions"] = [
            p.partition_id for p in result.failed_partitions
        ]
        logger.error("job_finished", extra=extra)

    def on_partition_start(
        self, job_id: UUID, descriptor: PartitionDescriptor,
    ) -> None:
        logger.info(
            "step_started",
            extra={
                "job_id": str(job_id),
                "partition_id": descriptor.partition_id,
                "start_at": descriptor.start_offset,
                "item_count": descriptor.item_count,
            },
        )

    def on_partition_end(self, job_id: UUID, result: PartitionResult) -> None:
        extra = {
            "job_id": str(job_id),
            "partition_id": result.partition_id,
            "status": result.status.value,
            "read_count": result.read_count,
            "write_count": result.write_count,
            "failure_count": result.failure_count,
            "duration_ms": result.duration_ms,
        }
        if result.status == PartitionStatus.COMPLETED:
            logger.info("step_finished", extra=extra)
        else:
            extra["error_code"] = result.error_code
            extra["error_message"] = result.error_message
            logger.warning("step_finished", extra=extra)
