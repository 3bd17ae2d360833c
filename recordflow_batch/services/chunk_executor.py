"""
FaultTolerantExecutor -- Transactional retry envelope around one chunk.

Contract:
    ``execute_chunk(chunk)`` drives the chunk through
    ``PENDING -> ATTEMPTING -> {COMMITTED | RETRYING -> ATTEMPTING | FAILED_TERMINAL}``
    and returns a ChunkOutcome.  It never raises for transform/write errors.

Architecture: recordflow_batch/services.  Imports from recordflow_batch.domain,
    recordflow_batch.processors, recordflow_batch.writers and the kernel.

Invariants enforced:
    - One attempt = transform every record + one atomic write.
    - Retry only when ``is_retryable(exc)`` and attempts < max_attempts.
    - COMMITTED counts read/write exactly once, however many attempts ran.
    - Backoff waits on the abort event, never on a lock.
    - After abort, no new attempt begins; the current one may finish.

Timeout:
    ``chunk_timeout`` is cooperative.  The deadline is checked between
    records and before the write; a write already in flight runs to
    completion.  Expiry raises ChunkTimeoutError, which is retryable.
"""

from __future__ import annotations

import threading
import time
from typing import Any

from recordflow_kernel.exceptions import (
    ChunkTimeoutError,
    JobAbortedError,
    error_code_of,
    is_retryable,
)
from recordflow_kernel.logging_config import get_logger
from recordflow_kernel.metrics import BatchMetrics

from recordflow_batch.domain.types import (
    Chunk,
    ChunkOutcome,
    ChunkState,
    Record,
    RetryPolicy,
)
from recordflow_batch.processors.transformer import RecordTransformer
from recordflow_batch.writers.chunk_writer import ChunkWriter

logger = get_logger("batch.chunk_executor")


class FaultTolerantExecutor:
    """Runs chunks with bounded exponential-backoff retries.

    One instance may be shared by every partition worker of a job; it keeps
    no per-chunk state between calls.
    """

    def __init__(
        self,
        transformer: RecordTransformer,
        writer: ChunkWriter,
        retry_policy: RetryPolicy | None = None,
        metrics: BatchMetrics | None = None,
        abort_event: threading.Event | None = None,
        chunk_timeout: float | None = None,
    ) -> None:
        if chunk_timeout is not None and chunk_timeout <= 0:
            raise ValueError(f"chunk_timeout must be > 0, got {chunk_timeout}")
        self._transformer = transformer
        self._writer = writer
        self._policy = retry_policy or RetryPolicy()
        self._metrics = metrics
        self._abort_event = abort_event or threading.Event()
        self._chunk_timeout = chunk_timeout

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._policy

    @property
    def abort_event(self) -> threading.Event:
        return self._abort_event

    def execute_chunk(self, chunk: Chunk) -> ChunkOutcome:
        attempts = 0
        failures = 0
        state = ChunkState.PENDING

        while True:
            if self._abort_event.is_set():
                return self._aborted(chunk, attempts, failures)

            attempts += 1
            state = ChunkState.ATTEMPTING
            try:
                written = self._attempt(chunk)
            except Exception as exc:
                failures += 1
                if self._metrics is not None:
                    self._metrics.record_failure()

                retryable = is_retryable(exc)
                if not retryable or attempts >= self._policy.max_attempts:
                    logger.error(
                        "chunk_failed",
                        extra={
                            "partition_id": chunk.partition_id,
                            "chunk_index": chunk.index,
                            "attempts": attempts,
                            "retryable": retryable,
                            "error_code": error_code_of(exc),
                            "error": str(exc),
                        },
                    )
                    return ChunkOutcome(
                        chunk_index=chunk.index,
                        state=ChunkState.FAILED_TERMINAL,
                        attempts=attempts,
                        failure_count=failures,
                        error_code=error_code_of(exc),
                        error_message=str(exc),
                    )

                state = ChunkState.RETRYING
                delay = self._policy.delay_for(attempts)
                logger.warning(
                    "chunk_retrying",
                    extra={
                        "partition_id": chunk.partition_id,
                        "chunk_index": chunk.index,
                        "attempt": attempts,
                        "max_attempts": self._policy.max_attempts,
                        "delay_seconds": delay,
                        "state": state.value,
                        "error_code": error_code_of(exc),
                        "error": str(exc),
                    },
                )
                if self._abort_event.wait(delay):
                    return self._aborted(chunk, attempts, failures)
                continue

            state = ChunkState.COMMITTED
            logger.info(
                "chunk_committed",
                extra={
                    "partition_id": chunk.partition_id,
                    "chunk_index": chunk.index,
                    "attempts": attempts,
                    "read_count": len(chunk),
                    "write_count": written,
                },
            )
            return ChunkOutcome(
                chunk_index=chunk.index,
                state=state,
                attempts=attempts,
                read_count=len(chunk),
                write_count=written,
                failure_count=failures,
            )

    # -------------------------------------------------------------------------
    # Attempt
    # -------------------------------------------------------------------------

    def _attempt(self, chunk: Chunk) -> int:
        deadline = self._deadline()

        transformed: list[Record] = []
        for record in chunk.records:
            self._check_deadline(chunk, deadline)
            output = self._transformer.transform(record)
            if output is not None:
                transformed.append(output)

        self._check_deadline(chunk, deadline)
        return self._writer.write(
            Chunk(
                partition_id=chunk.partition_id,
                index=chunk.index,
                records=tuple(transformed),
            )
        )

    def _deadline(self) -> float | None:
        if self._chunk_timeout is None:
            return None
        return time.monotonic() + self._chunk_timeout

    def _check_deadline(self, chunk: Chunk, deadline: float | None) -> None:
        if deadline is not None and time.monotonic() > deadline:
            raise ChunkTimeoutError(chunk.index, self._chunk_timeout)

    def _aborted(self, chunk: Chunk, attempts: int, failures: int) -> ChunkOutcome:
        extra: dict[str, Any] = {
            "partition_id": chunk.partition_id,
            "chunk_index": chunk.index,
            "attempts": attempts,
        }
        logger.warning("chunk_aborted", extra=extra)
        return ChunkOutcome(
            chunk_index=chunk.index,
            state=ChunkState.FAILED_TERMINAL,
            attempts=attempts,
            failure_count=failures,
            error_code=JobAbortedError.code,
            error_message="job abort requested",
        )
