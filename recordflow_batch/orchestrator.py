"""
BatchOrchestrator -- Composition root for the record-processing engine.

Contract:
    Wires partitioner, reader, transformer, writer, executor, workers and
    observers from one BatchSettings.  ``run_job(parameters)`` partitions
    the input and runs every partition; ``abort()`` stops the running job.

Architecture: recordflow_batch (top-level).  The canonical entry point for
    configuring and running a job.

Invariants enforced:
    - Every component receives the same Clock and BatchMetrics.
    - Each ``run_job`` gets a fresh abort signal.
    - Partitioning errors (EmptyOrInvalidInputError, InputSourceError)
      propagate before any partition runs.
"""

from __future__ import annotations

import threading
from typing import Iterable
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from recordflow_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
)
from recordflow_kernel.domain.clock import Clock, SystemClock
from recordflow_kernel.logging_config import LogContext, get_logger
from recordflow_kernel.metrics import BatchMetrics

from recordflow_batch.domain.types import JobParameters, JobResult
from recordflow_batch.observers.base import CompositeObserver, JobObserver
from recordflow_batch.observers.logging_observer import LoggingObserver
from recordflow_batch.observers.metrics_observer import MetricsObserver
from recordflow_batch.observers.repository_observer import JobRepositoryObserver
from recordflow_batch.processors.transformer import (
    MetadataTransformer,
    RecordTransformer,
)
from recordflow_batch.readers.chunk_reader import ChunkReader, FileChunkReader
from recordflow_batch.services.chunk_executor import FaultTolerantExecutor
from recordflow_batch.services.job_executor import PartitionedJobExecutor
from recordflow_batch.services.partition_worker import PartitionWorker
from recordflow_batch.services.partitioner import RangePartitioner
from recordflow_batch.writers.chunk_writer import ChunkWriter, SqlChunkWriter
from recordflow_config.schema import BatchSettings

logger = get_logger("batch.orchestrator")


class BatchOrchestrator:
    """DI container for the engine.

    Contract:
        - ``from_settings()`` creates a fully wired orchestrator.
        - ``run_job()`` runs one job synchronously and returns its JobResult.
        - ``abort()`` is safe to call from any thread while a job runs.

    Non-goals:
        - Does NOT create tables or own the engine; the caller does.
        - Does NOT parse command lines.
    """

    def __init__(
        self,
        settings: BatchSettings,
        partitioner: RangePartitioner,
        reader: ChunkReader,
        transformer: RecordTransformer,
        writer: ChunkWriter,
        clock: Clock | None = None,
        metrics: BatchMetrics | None = None,
        observers: Iterable[JobObserver] = (),
    ) -> None:
        self._settings = settings
        self._partitioner = partitioner
        self._reader = reader
        self._transformer = transformer
        self._writer = writer
        self._clock = clock or SystemClock()
        self._metrics = metrics or BatchMetrics()
        self._observer = CompositeObserver(observers)
        self._lock = threading.Lock()
        self._current: PartitionedJobExecutor | None = None

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_settings(
        cls,
        settings: BatchSettings,
        session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
        metrics: BatchMetrics | None = None,
        transformer: RecordTransformer | None = None,
        writer: ChunkWriter | None = None,
        extra_observers: Iterable[JobObserver] = (),
        record_runs: bool = True,
    ) -> BatchOrchestrator:
        """Create a fully wired BatchOrchestrator.

        Args:
            settings: Engine settings.
            session_factory: Sessions for the write sink and job repository.
                If omitted, the module-level engine is initialized from
                ``settings.database``.  Tables are created there when
                ``database.create_schema`` is set and must exist otherwise.
            clock: Optional clock for deterministic testing.
            metrics: Optional shared metrics; a private registry otherwise.
            transformer: Optional override of the MetadataTransformer.
            writer: Optional override of the SqlChunkWriter.
            extra_observers: Appended after the built-in observers.
            record_runs: If False, job runs are not persisted.
        """
        if session_factory is None:
            init_engine_from_url(
                settings.database.url,
                echo=settings.database.echo,
                pool_size=settings.database.pool_size,
            )
            if settings.database.create_schema:
                create_tables()
            session_factory = get_session_factory()

        effective_clock = clock or SystemClock()
        effective_metrics = metrics or BatchMetrics()

        observers: list[JobObserver] = []
        if record_runs:
            observers.append(JobRepositoryObserver(
                session_factory, clock=effective_clock, job_name=settings.job_name,
            ))
        observers.append(LoggingObserver())
        observers.append(MetricsObserver(effective_metrics))
        observers.extend(extra_observers)

        return cls(
            settings=settings,
            partitioner=RangePartitioner(encoding=settings.encoding),
            reader=FileChunkReader(
                chunk_size=settings.chunk_size, encoding=settings.encoding,
            ),
            transformer=transformer or MetadataTransformer(clock=effective_clock),
            writer=writer or SqlChunkWriter(
                session_factory, clock=effective_clock, metrics=effective_metrics,
            ),
            clock=effective_clock,
            metrics=effective_metrics,
            observers=observers,
        )

    # -------------------------------------------------------------------------
    # Running
    # -------------------------------------------------------------------------

    def run_job(
        self, parameters: JobParameters, job_id: UUID | None = None,
    ) -> JobResult:
        """Partition ``parameters.input_file`` and run every partition.

        An abort received while the input is still being scanned fails the
        job with every partition reported as not started (JOB_ABORTED).

        Raises:
            EmptyOrInvalidInputError: If the input holds no valid key.
            InputSourceError: If the input cannot be read.
            JobRunAlreadyExistsError: If these parameters already ran.
        """
        job_id = job_id or uuid4()
        with LogContext.bind(
            job_id=str(job_id),
            job_name=self._settings.job_name,
            input_file=str(parameters.input_file),
        ):
            # abort() reaches the job from the start of the input scan.
            job_executor = self.create_job_executor()
            with self._lock:
                self._current = job_executor
            try:
                descriptors = self._partitioner.partition(
                    parameters.input_file, self._settings.grid_size,
                )
                return job_executor.execute(descriptors, parameters, job_id=job_id)
            finally:
                with self._lock:
                    self._current = None

    def abort(self) -> bool:
        """Abort the running job.  Returns False if no job is running."""
        with self._lock:
            current = self._current
        if current is None:
            return False
        current.abort()
        return True

    def create_job_executor(
        self, abort_event: threading.Event | None = None,
    ) -> PartitionedJobExecutor:
        """Create a PartitionedJobExecutor with its own abort signal."""
        executor = FaultTolerantExecutor(
            transformer=self._transformer,
            writer=self._writer,
            retry_policy=self._settings.retry.to_policy(),
            metrics=self._metrics,
            abort_event=abort_event or threading.Event(),
            chunk_timeout=self._settings.per_chunk_timeout_seconds,
        )
        worker = PartitionWorker(self._reader, executor, clock=self._clock)
        return PartitionedJobExecutor(
            worker=worker,
            grid_size=self._settings.grid_size,
            observer=self._observer,
            clock=self._clock,
            job_name=self._settings.job_name,
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def settings(self) -> BatchSettings:
        return self._settings

    @property
    def metrics(self) -> BatchMetrics:
        return self._metrics

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def observers(self) -> tuple[JobObserver, ...]:
        return self._observer.observers

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._current is not None
