"""
Pure range-split computation for the partitioner.

ZERO I/O.  The partitioner scans the source for ``max_key`` and delegates
the split to ``compute_partitions()``, which reasons purely in key space:
keys are assumed dense, starting at ``min_key`` and equal to line position.
"""

from __future__ import annotations

from pathlib import Path

from recordflow_batch.domain.types import PartitionDescriptor

MIN_KEY = 1


def target_partition_size(total: int, grid_size: int) -> int:
    """``ceil(total / grid_size)``: the size of the largest partition."""
    return total // grid_size + (0 if total % grid_size == 0 else 1)


def partition_sizes(total: int, grid_size: int) -> list[int]:
    """Split ``total`` keys into at most ``grid_size`` non-empty runs.

    Walks the range in steps of ``target_partition_size``; the last run
    takes the remainder.  When that walk would leave grid slots unused
    although ``total >= grid_size`` (e.g. 9 keys, grid 4: 3, 3, 3), the
    keys are balanced instead: the first ``total % grid_size`` runs get the
    target size and the rest one fewer.
    """
    target = target_partition_size(total, grid_size)
    full, remainder = divmod(total, target)
    walk = [target] * full + ([remainder] if remainder else [])
    if len(walk) >= min(grid_size, total):
        return walk

    base, extra = divmod(total, grid_size)
    return [base + 1] * extra + [base] * (grid_size - extra)


def compute_partitions(
    max_key: int,
    grid_size: int,
    source: Path,
    min_key: int = MIN_KEY,
) -> tuple[PartitionDescriptor, ...]:
    """Split ``[min_key, max_key]`` into contiguous partitions.

    No partition is larger than ``ceil(total / grid_size)``; sizes never
    grow from one partition to the next.

    Raises:
        ValueError: If ``grid_size < 1`` or the key range is empty.
    """
    if grid_size < 1:
        raise ValueError(f"grid_size must be >= 1, got {grid_size}")
    if max_key < min_key:
        raise ValueError(f"empty key range [{min_key}, {max_key}]")

    total = max_key - min_key + 1

    descriptors: list[PartitionDescriptor] = []
    offset = 0
    for number, size in enumerate(partition_sizes(total, grid_size)):
        descriptors.append(
            PartitionDescriptor(
                partition_id=f"partition{number}",
                start_offset=offset,
                item_count=size,
                source=source,
            )
        )
        offset += size

    return tuple(descriptors)
