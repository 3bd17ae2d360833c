"""
Chunk writer -- idempotent upsert of one chunk in one transaction.

Contract:
    ``write(chunk)`` persists every record of the chunk into
    ``processed_record`` and returns the number of records written.
    Either the whole chunk commits or none of it does.

Invariants enforced:
    - Upsert keyed on ``id``: re-delivering a chunk after a retry leaves
      exactly one row per id, with the latest payload.
    - A chunk that repeats an id writes a single row for it, taken from the
      last such record.  The returned count still covers every record.
    - A chunk containing a record with an absent id is rejected before any
      database work (WriterRejectionError, never retried).

Failure modes:
    - WriterRejectionError: absent id.
    - TransientProcessingError: any SQLAlchemyError (transaction rolled back).

Metrics:
    Increments ``records_processed`` after commit.  Failed attempts are
    counted by the executor, which sees every failure.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from recordflow_kernel.domain.clock import Clock, SystemClock
from recordflow_kernel.exceptions import TransientProcessingError, WriterRejectionError
from recordflow_kernel.logging_config import get_logger
from recordflow_kernel.metrics import BatchMetrics

from recordflow_batch.domain.types import Chunk
from recordflow_batch.models.records import (
    RECORD_STATUS_PROCESSED,
    ProcessedRecordModel,
)

logger = get_logger("batch.writer")

_UPSERT_INSERTS = {
    "postgresql": postgresql_insert,
    "sqlite": sqlite_insert,
}


@runtime_checkable
class ChunkWriter(Protocol):
    """Protocol for the write sink."""

    def write(self, chunk: Chunk) -> int:
        """Persist the chunk atomically and return the number written."""
        ...


class SqlChunkWriter:
    """Writes chunks to ``processed_record`` through a session factory.

    Safe to share between partition workers: each ``write`` opens its own
    session and transaction.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        metrics: BatchMetrics | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._metrics = metrics

    def write(self, chunk: Chunk) -> int:
        if not chunk.records:
            return 0

        rows = self._rows_for(chunk)
        written = len(chunk.records)

        try:
            with self._session_factory() as session, session.begin():
                self._upsert(session, rows)
        except SQLAlchemyError as exc:
            logger.warning(
                "chunk_write_failed",
                extra={
                    "partition_id": chunk.partition_id,
                    "chunk_index": chunk.index,
                    "records": written,
                    "error": str(exc),
                },
            )
            raise TransientProcessingError(
                f"Write of chunk {chunk.index} failed: {exc}",
                chunk_index=chunk.index,
            ) from exc

        if self._metrics is not None:
            self._metrics.record_written(written)

        logger.debug(
            "chunk_written",
            extra={
                "partition_id": chunk.partition_id,
                "chunk_index": chunk.index,
                "records": written,
                "rows": len(rows),
            },
        )
        return written

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _rows_for(self, chunk: Chunk) -> list[dict[str, Any]]:
        """One row per distinct id; a later record replaces an earlier one."""
        processed_at = self._clock.now_utc()
        rows: dict[int, dict[str, Any]] = {}
        for position, record in enumerate(chunk.records):
            if record is None or record.id is None:
                raise WriterRejectionError(
                    f"record at position {position} of chunk {chunk.index} "
                    f"has no id",
                    record_index=position,
                )
            rows[record.id] = {
                "id": record.id,
                "payload": record.payload,
                "processed_at": processed_at,
                "status": RECORD_STATUS_PROCESSED,
            }
        return list(rows.values())

    def _upsert(self, session: Session, rows: list[dict[str, Any]]) -> None:
        dialect = session.get_bind().dialect.name
        insert_fn = _UPSERT_INSERTS.get(dialect)

        if insert_fn is None:
            for row in rows:
                session.merge(ProcessedRecordModel(**row))
            return

        stmt = insert_fn(ProcessedRecordModel.__table__)
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={
                "payload": stmt.excluded.payload,
                "processed_at": stmt.excluded.processed_at,
                "status": stmt.excluded.status,
            },
        )
        session.execute(stmt, rows)
