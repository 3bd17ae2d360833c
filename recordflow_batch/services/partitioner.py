"""
RangePartitioner -- Single-scan key-range partitioning of the input file.

Contract:
    ``partition(source, grid_size)`` scans the source once, tracks the
    maximum leading key, and returns contiguous PartitionDescriptors
    covering ``[0, max_key - 1]`` in offset space.

Invariants enforced:
    - Descriptors are contiguous and non-overlapping, and together cover
      ``[0, total)``.
    - Exactly ``grid_size`` descriptors whenever ``total >= grid_size``.

Failure modes:
    - MalformedInputLineError: recovered locally (skipped + warning).
    - EmptyOrInvalidInputError: no valid key at all, fatal.
    - InputSourceError: the file cannot be opened or read.

Known approximation:
    Sizing uses ``max_key`` only, assuming keys are dense, start at 1, and
    equal line position.  Sparse keys give uneven partitions.
"""

from __future__ import annotations

from pathlib import Path

from recordflow_kernel.exceptions import (
    EmptyOrInvalidInputError,
    InputSourceError,
    MalformedInputLineError,
)
from recordflow_kernel.logging_config import get_logger

from recordflow_batch.domain.parsing import parse_leading_key
from recordflow_batch.domain.ranges import MIN_KEY, compute_partitions
from recordflow_batch.domain.types import PartitionDescriptor

logger = get_logger("batch.partitioner")


class RangePartitioner:
    """Computes the partition grid for one input file."""

    def __init__(self, encoding: str = "utf-8") -> None:
        self._encoding = encoding

    def scan_max_key(self, source: Path) -> int | None:
        """Return the largest valid leading key, or None if there is none."""
        max_key: int | None = None
        skipped = 0
        try:
            with source.open("r", encoding=self._encoding, newline="") as f:
                for line_number, line in enumerate(f, start=1):
                    if not line.strip():
                        continue
                    try:
                        key = parse_leading_key(line, line_number)
                    except MalformedInputLineError as exc:
                        skipped += 1
                        logger.warning(
                            "malformed_input_line",
                            extra={
                                "input_file": str(source),
                                "line_number": exc.line_number,
                                "line": exc.line,
                            },
                        )
                        continue
                    if max_key is None or key > max_key:
                        max_key = key
        except (OSError, UnicodeDecodeError) as exc:
            raise InputSourceError(source, str(exc)) from exc

        logger.debug(
            "input_scanned",
            extra={
                "input_file": str(source),
                "max_key": max_key,
                "malformed_lines": skipped,
            },
        )
        return max_key

    def partition(
        self, source: Path | str, grid_size: int,
    ) -> tuple[PartitionDescriptor, ...]:
        """Scan ``source`` and split its key range into partitions.

        Raises:
            ValueError: If ``grid_size < 1``.
            EmptyOrInvalidInputError: If no valid key was found.
            InputSourceError: If the file cannot be read.
        """
        if grid_size < 1:
            raise ValueError(f"grid_size must be >= 1, got {grid_size}")

        source = Path(source)
        max_key = self.scan_max_key(source)
        if max_key is None or max_key < MIN_KEY:
            raise EmptyOrInvalidInputError(source)

        descriptors = compute_partitions(max_key, grid_size, source)

        for descriptor in descriptors:
            logger.info(
                "partition_created",
                extra={
                    "partition_id": descriptor.partition_id,
                    "start_id": descriptor.start_offset + MIN_KEY,
                    "end_id": descriptor.end_offset,
                    "start_at": descriptor.start_offset,
                    "item_count": descriptor.item_count,
                },
            )

        return descriptors
