"""
recordflow_batch.models -- ORM models for the record store and job repository.

Architecture: recordflow_batch/models. Imports from recordflow_kernel.db.base only.
"""

from recordflow_batch.models.records import (
    RECORD_STATUS_PROCESSED,
    JobRunModel,
    PartitionRunModel,
    ProcessedRecordModel,
)

__all__ = [
    "RECORD_STATUS_PROCESSED",
    "JobRunModel",
    "PartitionRunModel",
    "ProcessedRecordModel",
]
