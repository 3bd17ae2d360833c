"""
PartitionWorker -- Runs one partition's chunk loop to completion.

Contract:
    ``run(descriptor)`` reads the partition chunk by chunk, hands each chunk
    to the FaultTolerantExecutor, and returns a PartitionResult by value.

Architecture: recordflow_batch/services.  Imports from recordflow_batch.domain,
    recordflow_batch.readers and the chunk executor.

Invariants enforced:
    - Chunks are executed strictly in offset order.
    - Fail-fast: the first FAILED_TERMINAL chunk stops the partition.
    - Read failures are retried under the executor's RetryPolicy by
      restarting the reader at the next uncommitted chunk.

Non-goals:
    - Does NOT manage threads; PartitionedJobExecutor does.
    - Does NOT catch programming errors; they surface as WORKER_CRASHED.
"""

from __future__ import annotations

import threading
import time

from recordflow_kernel.domain.clock import Clock, SystemClock
from recordflow_kernel.exceptions import (
    ChunkFailureError,
    InputSourceError,
    JobAbortedError,
)
from recordflow_kernel.logging_config import LogContext, get_logger

from recordflow_batch.domain.types import (
    PartitionDescriptor,
    PartitionResult,
    PartitionStatus,
)
from recordflow_batch.readers.chunk_reader import ChunkReader
from recordflow_batch.services.chunk_executor import FaultTolerantExecutor

logger = get_logger("batch.worker")


def _abort_error() -> JobAbortedError:
    return JobAbortedError(LogContext.get_all().get("job_id", "unknown"))


class _Tally:
    """Mutable per-run counters, turned into a PartitionResult at the end."""

    def __init__(self) -> None:
        self.read_count = 0
        self.write_count = 0
        self.failure_count = 0
        self.chunks_committed = 0
        self.next_chunk = 0


class PartitionWorker:
    """Drives reader -> executor for one PartitionDescriptor at a time.

    Stateless between runs; one instance serves every partition of a job.
    """

    def __init__(
        self,
        reader: ChunkReader,
        executor: FaultTolerantExecutor,
        clock: Clock | None = None,
    ) -> None:
        self._reader = reader
        self._executor = executor
        self._clock = clock or SystemClock()

    @property
    def abort_event(self) -> threading.Event:
        return self._executor.abort_event

    def run(self, descriptor: PartitionDescriptor) -> PartitionResult:
        with LogContext.bind(
            partition_id=descriptor.partition_id,
            input_file=str(descriptor.source),
        ):
            return self._run(descriptor)

    def _run(self, descriptor: PartitionDescriptor) -> PartitionResult:
        started_at = self._clock.now_utc()
        start = time.monotonic()
        tally = _Tally()
        policy = self._executor.retry_policy
        read_failures = 0

        logger.info("partition_started", extra=descriptor.to_context())

        while True:
            try:
                error = self._process_chunks(descriptor, tally)
                break
            except (OSError, UnicodeDecodeError) as exc:
                read_failures += 1
                tally.failure_count += 1
                source_error = InputSourceError(descriptor.source, str(exc))
                if read_failures >= policy.max_attempts:
                    logger.error(
                        "partition_read_failed",
                        extra={
                            "next_chunk": tally.next_chunk,
                            "attempts": read_failures,
                            "error": str(exc),
                        },
                    )
                    error = source_error
                    break

                delay = policy.delay_for(read_failures)
                logger.warning(
                    "partition_read_retrying",
                    extra={
                        "next_chunk": tally.next_chunk,
                        "attempt": read_failures,
                        "delay_seconds": delay,
                        "error": str(exc),
                    },
                )
                if self.abort_event.wait(delay):
                    error = _abort_error()
                    break

        duration_ms = int((time.monotonic() - start) * 1000)
        result = PartitionResult(
            partition_id=descriptor.partition_id,
            status=PartitionStatus.COMPLETED if error is None else PartitionStatus.FAILED,
            read_count=tally.read_count,
            write_count=tally.write_count,
            failure_count=tally.failure_count,
            start_offset=descriptor.start_offset,
            item_count=descriptor.item_count,
            chunks_committed=tally.chunks_committed,
            error_code=None if error is None else self._code_for(error),
            error_message=None if error is None else str(error),
            started_at=started_at,
            completed_at=self._clock.now_utc(),
            duration_ms=duration_ms,
        )

        logger.info(
            "partition_finished",
            extra={
                "status": result.status.value,
                "read_count": result.read_count,
                "write_count": result.write_count,
                "failure_count": result.failure_count,
                "chunks_committed": result.chunks_committed,
                "error_code": result.error_code,
                "duration_ms": duration_ms,
            },
        )
        return result

    def _process_chunks(
        self, descriptor: PartitionDescriptor, tally: _Tally,
    ) -> ChunkFailureError | JobAbortedError | None:
        """Run chunks from ``tally.next_chunk`` on; return the stopping error."""
        for chunk in self._reader.iter_chunks(descriptor, start_chunk=tally.next_chunk):
            outcome = self._executor.execute_chunk(chunk)
            tally.failure_count += outcome.failure_count

            if not outcome.committed:
                if outcome.error_code == JobAbortedError.code:
                    return _abort_error()
                return ChunkFailureError(
                    partition_id=descriptor.partition_id,
                    chunk_index=chunk.index,
                    attempts=outcome.attempts,
                    cause_code=outcome.error_code or "UNKNOWN",
                    cause_message=outcome.error_message or "",
                )

            tally.read_count += outcome.read_count
            tally.write_count += outcome.write_count
            tally.chunks_committed += 1
            tally.next_chunk = chunk.index + 1
        return None

    @staticmethod
    def _code_for(error: Exception) -> str:
        if isinstance(error, ChunkFailureError):
            return error.cause_code
        return getattr(error, "code", type(error).__name__)
