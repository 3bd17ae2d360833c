"""
ORM models for the record store and the job repository.

Contract:
    ProcessedRecordModel is the write sink: one row per record ``id``,
    overwritten on re-delivery (idempotent upsert).
    JobRunModel / PartitionRunModel persist job runs and per-partition
    results; each has ``from_dto()`` / ``to_dto()`` round-trip helpers.

Architecture: recordflow_batch/models. Imports from recordflow_kernel.db.base only.

Invariants enforced:
    - ``processed_record.id`` is the primary key (upsert target).
    - ``job_runs.idempotency_key`` is UNIQUE (one run per parameters).
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from recordflow_kernel.db.base import Base, TrackedBase, UUIDString

if TYPE_CHECKING:
    from recordflow_batch.domain.types import PartitionResult

_JSON = JSON().with_variant(JSONB(), "postgresql")

RECORD_STATUS_PROCESSED = "processed"


class ProcessedRecordModel(Base):
    """One processed input record, keyed by its business id."""

    __tablename__ = "processed_record"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    payload: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    status: Mapped[str] = mapped_column(String(50), nullable=False)


class JobRunModel(TrackedBase):
    """Persistent job run (unique per launcher parameters)."""

    __tablename__ = "job_runs"

    __table_args__ = (
        Index("ix_job_runs_status", "status"),
        Index("ix_job_runs_created_at", "created_at"),
    )

    job_name: Mapped[str] = mapped_column(String(200), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(
        String(500), nullable=False, unique=True,
    )
    input_file: Mapped[str] = mapped_column(Text, nullable=False)
    run_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    partition_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    read_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    write_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failure_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    duration_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    partitions: Mapped[list["PartitionRunModel"]] = relationship(
        "PartitionRunModel",
        back_populates="job",
        foreign_keys="PartitionRunModel.job_id",
    )


class PartitionRunModel(TrackedBase):
    """Per-partition result within a job run."""

    __tablename__ = "partition_runs"

    __table_args__ = (
        Index("ix_partition_runs_job_status", "job_id", "status"),
    )

    job_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("job_runs.id", ondelete="CASCADE"),
        nullable=False,
    )
    partition_id: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    execution_context: Mapped[dict | None] = mapped_column(_JSON, nullable=True)
    read_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    write_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failure_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    chunks_committed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    duration_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    job: Mapped["JobRunModel"] = relationship(
        "JobRunModel",
        back_populates="partitions",
        foreign_keys=[job_id],
    )

    def to_dto(self) -> PartitionResult:
        from recordflow_batch.domain.types import PartitionResult, PartitionStatus

        context = self.execution_context or {}
        return PartitionResult(
            partition_id=self.partition_id,
            status=PartitionStatus(self.status),
            read_count=self.read_count,
            write_count=self.write_count,
            failure_count=self.failure_count,
            start_offset=int(context.get("startAt", 0)),
            item_count=int(context.get("itemCount", 0)),
            chunks_committed=self.chunks_committed,
            error_code=self.error_code,
            error_message=self.error_message,
            started_at=self.started_at,
            completed_at=self.completed_at,
            duration_ms=self.duration_ms,
        )

    @classmethod
    def from_dto(
        cls, dto: PartitionResult, job_id: UUID, input_file: str,
    ) -> PartitionRunModel:
        return cls(
            job_id=job_id,
            partition_id=dto.partition_id,
            status=dto.status.value,
            execution_context={
                "startAt": dto.start_offset,
                "itemCount": dto.item_count,
                "inputFile": input_file,
                "partitionId": dto.partition_id,
            },
            read_count=dto.read_count,
            write_count=dto.write_count,
            failure_count=dto.failure_count,
            chunks_committed=dto.chunks_committed,
            error_code=dto.error_code,
            error_message=dto.error_message,
            started_at=dto.started_at,
            completed_at=dto.completed_at,
            duration_ms=dto.duration_ms,
        )
