"""
recordflow_batch.observers -- Job lifecycle listeners.
"""

from recordflow_batch.observers.base import CompositeObserver, JobObserver
from recordflow_batch.observers.logging_observer import LoggingObserver
from recordflow_batch.observers.metrics_observer import MetricsObserver
from recordflow_batch.observers.repository_observer import JobRepositoryObserver

__all__ = [
    "CompositeObserver",
    "JobObserver",
    "JobRepositoryObserver",
    "LoggingObserver",
    "MetricsObserver",
]
