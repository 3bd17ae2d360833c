"""
recordflow_batch.services -- Partitioning and execution services.
"""

from recordflow_batch.services.chunk_executor import FaultTolerantExecutor
from recordflow_batch.services.job_executor import (
    PARTITION_FAILED,
    WORKER_CRASHED,
    PartitionedJobExecutor,
)
from recordflow_batch.services.partition_worker import PartitionWorker
from recordflow_batch.services.partitioner import RangePartitioner

__all__ = [
    "PARTITION_FAILED",
    "WORKER_CRASHED",
    "FaultTolerantExecutor",
    "PartitionWorker",
    "PartitionedJobExecutor",
    "RangePartitioner",
]
