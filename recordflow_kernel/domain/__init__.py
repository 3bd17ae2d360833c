"""
recordflow_kernel.domain -- Pure infrastructure value objects.

ZERO I/O (SystemClock aside).
"""

from recordflow_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SystemClock,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
]
