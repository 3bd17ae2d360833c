"""
Declarative base for the engine's tables.

Two kinds of table share this base:

* the record store, keyed by the integer ``id`` read from the input
  (``int`` maps to BigInteger);
* run bookkeeping (job and partition runs), keyed by UUID and stamped with
  insert/update times via ``TrackedBase``.

Architecture: recordflow_kernel/db.  Never imports from recordflow_batch.
"""

from datetime import datetime
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, String, func
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID held as its 36-character text form, on every backend."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value: UUID | str | None, dialect: Dialect) -> str | None:
        return None if value is None else str(value)

    def process_result_value(self, value: str | None, dialect: Dialect) -> UUID | None:
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    # Timestamps are always stored timezone-aware.
    type_annotation_map: ClassVar[dict] = {
        int: BigInteger,
        UUID: UUIDString(),
        datetime: DateTime(timezone=True),
    }


class TrackedBase(Base):
    """Abstract bookkeeping table: UUID key plus created/updated stamps."""

    __abstract__ = True

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(),
    )
