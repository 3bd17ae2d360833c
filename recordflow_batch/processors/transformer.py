"""
Record transformers.

Contract:
    ``transform(record)`` is a pure mapping ``Record | None -> Record | None``.
    ``None`` maps to ``None``.  Implementations must be safe to call again on
    the same input: the executor re-runs the whole chunk on retry.
"""

from __future__ import annotations

import json
from typing import Any, Protocol, runtime_checkable

from recordflow_kernel.domain.clock import Clock, SystemClock

from recordflow_batch.domain.types import Record


@runtime_checkable
class RecordTransformer(Protocol):
    """Protocol for per-record processing."""

    def transform(self, record: Record | None) -> Record | None: ...


def _embed(payload: str | None) -> Any:
    """Embed JSON objects and arrays as structure, anything else verbatim.

    Scalars stay strings so ``"1e5"`` or ``"NaN"`` keep their original text.
    """
    if payload is None:
        return None
    try:
        parsed = json.loads(payload)
    except ValueError:
        return payload
    return parsed if isinstance(parsed, (dict, list)) else payload


class MetadataTransformer:
    """Wraps each payload with processing metadata.

    Output payload (JSON text)::

        {"original": <payload>, "processed": true, "timestamp": "<ISO-8601>"}

    ``id`` and ``created_at`` are carried over unchanged.  The timestamp comes
    from the injected clock, so a retried transform differs only there.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()

    def transform(self, record: Record | None) -> Record | None:
        if record is None:
            return None

        wrapped = {
            "original": _embed(record.payload),
            "processed": True,
            "timestamp": self._clock.now_utc().isoformat(),
        }
        return Record(
            id=record.id,
            payload=json.dumps(wrapped),
            created_at=record.created_at,
        )


class PassThroughTransformer:
    """Identity transformer, for benchmarking the read/write path."""

    def transform(self, record: Record | None) -> Record | None:
        return record
