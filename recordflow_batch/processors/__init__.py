"""Per-record processors (pure, retry-safe)."""

from recordflow_batch.processors.transformer import (
    MetadataTransformer,
    PassThroughTransformer,
    RecordTransformer,
)

__all__ = [
    "MetadataTransformer",
    "PassThroughTransformer",
    "RecordTransformer",
]
