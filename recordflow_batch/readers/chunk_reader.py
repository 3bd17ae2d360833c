"""
Chunk reader (lazy, restartable, per partition).

Contract:
    ``iter_chunks(descriptor, start_chunk)`` yields Chunks of up to
    ``chunk_size`` records.  It skips ``start_offset`` physical lines, then
    consumes up to ``item_count`` physical lines (or until EOF).

Leniency:
    - Blank lines are ignored.
    - Lines without an integer leading key are skipped with a warning,
      matching the partitioner's key rule.
    - Unparseable payload/createdAt fields become absent (debug log).

Restartability:
    The source is static for the duration of a job, so the same descriptor
    and ``start_chunk`` always reproduce the same chunk sequence.
"""

from __future__ import annotations

from itertools import islice
from pathlib import Path
from typing import Iterator, Protocol, runtime_checkable

from recordflow_kernel.exceptions import MalformedInputLineError
from recordflow_kernel.logging_config import get_logger

from recordflow_batch.domain.parsing import parse_leading_key, parse_record
from recordflow_batch.domain.types import Chunk, PartitionDescriptor, Record

logger = get_logger("batch.reader")


@runtime_checkable
class ChunkReader(Protocol):
    """Protocol for producing a partition's chunks."""

    def iter_chunks(
        self, descriptor: PartitionDescriptor, start_chunk: int = 0,
    ) -> Iterator[Chunk]:
        """Yield the partition's chunks in offset order, from ``start_chunk``."""
        ...


def _open_and_skip(source_path: Path, encoding: str, skip_lines: int) -> Iterator[str]:
    """Open file and skip the first ``skip_lines`` lines."""
    with source_path.open("r", encoding=encoding, newline="") as f:
        for _ in range(skip_lines):
            if next(f, None) is None:
                return
        yield from f


class FileChunkReader:
    """Reads a partition's line range from a local text file."""

    def __init__(self, chunk_size: int = 100, encoding: str = "utf-8") -> None:
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
        self._chunk_size = chunk_size
        self._encoding = encoding

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    def iter_records(self, descriptor: PartitionDescriptor) -> Iterator[Record]:
        """Yield the partition's records, one per valid line."""
        lines = islice(
            _open_and_skip(descriptor.source, self._encoding, descriptor.start_offset),
            descriptor.item_count,
        )
        for line_number, line in enumerate(lines, start=descriptor.start_offset + 1):
            if not line.strip():
                continue
            try:
                key = parse_leading_key(line, line_number)
            except MalformedInputLineError as exc:
                logger.warning(
                    "malformed_input_line",
                    extra={
                        "partition_id": descriptor.partition_id,
                        "line_number": exc.line_number,
                        "line": exc.line,
                    },
                )
                continue

            record, field_errors = parse_record(line, key)
            for err in field_errors:
                logger.debug(
                    "field_parse_failure",
                    extra={
                        "partition_id": descriptor.partition_id,
                        "line_number": line_number,
                        "record_id": key,
                        "field": err.field_name,
                        "reason": err.reason,
                    },
                )
            yield record

    def iter_chunks(
        self, descriptor: PartitionDescriptor, start_chunk: int = 0,
    ) -> Iterator[Chunk]:
        records = self.iter_records(descriptor)
        index = 0
        while True:
            batch = tuple(islice(records, self._chunk_size))
            if not batch:
                return
            if index >= start_chunk:
                yield Chunk(
                    partition_id=descriptor.partition_id,
                    index=index,
                    records=batch,
                )
            index += 1
