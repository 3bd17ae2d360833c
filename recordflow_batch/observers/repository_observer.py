"""
JobRepositoryObserver -- Persists job runs and partition results.

Contract:
    ``on_job_start`` inserts a JobRunModel keyed by the parameters'
    idempotency key; ``on_partition_end`` inserts a PartitionRunModel;
    ``on_job_end`` stamps the final status and totals.  Each hook uses its
    own session and transaction.

Invariants enforced:
    - One job run per (input_file, timestamp): a second start raises
      JobRunAlreadyExistsError before any partition runs.

Non-goals:
    - Does NOT resume a failed run; restart means a new timestamp.
    - Runs launched without JobParameters are not recorded.
"""

from __future__ import annotations

import threading
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from recordflow_kernel.domain.clock import Clock, SystemClock
from recordflow_kernel.exceptions import JobRunAlreadyExistsError
from recordflow_kernel.logging_config import get_logger

from recordflow_batch.domain.types import (
    JobParameters,
    JobResult,
    JobStatus,
    PartitionDescriptor,
    PartitionResult,
)
from recordflow_batch.models.records import JobRunModel, PartitionRunModel

logger = get_logger("batch.repository")


class JobRepositoryObserver:
    """Job repository backed by the ``job_runs`` / ``partition_runs`` tables."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        job_name: str = "recordJob",
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._job_name = job_name
        self._lock = threading.Lock()
        self._input_files: dict[UUID, str] = {}

    # -------------------------------------------------------------------------
    # Hooks
    # -------------------------------------------------------------------------

    def on_job_start(
        self,
        job_id: UUID,
        parameters: JobParameters | None,
        descriptors: Sequence[PartitionDescriptor],
    ) -> None:
        if parameters is None:
            logger.debug("job_run_not_recorded", extra={"job_id": str(job_id)})
            return

        key = parameters.idempotency_key
        existing = self.find_job_id(key)
        if existing is not None:
            logger.warning(
                "job_run_duplicate",
                extra={"idempotency_key": key, "existing_job_id": str(existing)},
            )
            raise JobRunAlreadyExistsError(key, str(existing))

        try:
            with self._session_factory() as session, session.begin():
                session.add(JobRunModel(
                    id=job_id,
                    job_name=self._job_name,
                    idempotency_key=key,
                    input_file=str(parameters.input_file),
                    run_timestamp=parameters.timestamp,
                    status=JobStatus.RUNNING.value,
                    partition_count=len(descriptors),
                    started_at=self._clock.now_utc(),
                ))
        except IntegrityError as exc:
            # Lost a race with a concurrent launcher.
            existing = self.find_job_id(key)
            raise JobRunAlreadyExistsError(key, str(existing)) from exc

        with self._lock:
            self._input_files[job_id] = str(parameters.input_file)

        logger.info(
            "job_run_recorded",
            extra={"job_id": str(job_id), "idempotency_key": key},
        )

    def on_job_end(self, result: JobResult) -> None:
        with self._lock:
            recorded = self._input_files.pop(result.job_id, None) is not None
        if not recorded:
            return

        with self._session_factory() as session, session.begin():
            job = session.get(JobRunModel, result.job_id)
            if job is None:
                return
            job.job_name = result.job_name
            job.status = result.status.value
            job.read_count = result.read_count
            job.write_count = result.write_count
            job.failure_count = result.failure_count
            job.completed_at = result.completed_at
            job.duration_ms = result.duration_ms
            job.error_summary = result.error_message

    def on_partition_start(
        self, job_id: UUID, descriptor: PartitionDescriptor,
    ) -> None:
        pass

    def on_partition_end(self, job_id: UUID, result: PartitionResult) -> None:
        with self._lock:
            input_file = self._input_files.get(job_id)
        if input_file is None:
            return

        with self._session_factory() as session, session.begin():
            session.add(PartitionRunModel.from_dto(result, job_id, input_file))

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def find_job_id(self, idempotency_key: str) -> UUID | None:
        with self._session_factory() as session:
            return session.execute(
                select(JobRunModel.id).where(
                    JobRunModel.idempotency_key == idempotency_key,
                )
            ).scalar_one_or_none()

    def get_job_status(self, job_id: UUID) -> JobStatus | None:
        with self._session_factory() as session:
            job = session.get(JobRunModel, job_id)
            return None if job is None else JobStatus(job.status)

    def get_partition_results(self, job_id: UUID) -> tuple[PartitionResult, ...]:
        with self._session_factory() as session:
            rows = session.execute(
                select(PartitionRunModel)
                .where(PartitionRunModel.job_id == job_id)
                .order_by(PartitionRunModel.partition_id)
            ).scalars().all()
            return tuple(row.to_dto() for row in rows)
