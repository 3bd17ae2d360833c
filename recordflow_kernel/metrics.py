"""
BatchMetrics -- Prometheus counters and timers for the engine.

Contract:
    Owns a ``CollectorRegistry`` (a fresh one unless the caller passes the
    process-wide ``REGISTRY``) so several engines, and the test suite, can
    each keep their own counters without duplicate-registration errors.

    Exposed series:
        records_processed_total   records committed by the writer
        failure_count_total       failed chunk attempts (transform or write)
        job_duration_seconds      histogram, one observation per job
        step_duration_seconds     histogram, one observation per partition

Non-goals:
    - Does NOT start an HTTP exporter; wiring a backend is the launcher's job.
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Histogram

_DURATION_BUCKETS = (0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0, float("inf"))


class BatchMetrics:
    """Thread-safe counters/timers shared by all partition workers."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry if registry is not None else CollectorRegistry()

        self._records_processed = Counter(
            "records_processed",
            "Number of records written by committed chunks",
            registry=self._registry,
        )
        self._failures = Counter(
            "failure_count",
            "Number of failed chunk attempts",
            registry=self._registry,
        )
        self._job_duration = Histogram(
            "job_duration_seconds",
            "Time taken for batch job execution",
            buckets=_DURATION_BUCKETS,
            registry=self._registry,
        )
        self._step_duration = Histogram(
            "step_duration_seconds",
            "Time taken for one partition step",
            buckets=_DURATION_BUCKETS,
            registry=self._registry,
        )

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    def record_written(self, count: int) -> None:
        if count > 0:
            self._records_processed.inc(count)

    def record_failure(self) -> None:
        self._failures.inc()

    def observe_job(self, seconds: float) -> None:
        self._job_duration.observe(max(seconds, 0.0))

    def observe_step(self, seconds: float) -> None:
        self._step_duration.observe(max(seconds, 0.0))

    # -------------------------------------------------------------------------
    # Read-back
    # -------------------------------------------------------------------------

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    @property
    def records_processed_total(self) -> float:
        return self._sample("records_processed_total")

    @property
    def failures_total(self) -> float:
        return self._sample("failure_count_total")

    @property
    def job_observations(self) -> float:
        return self._sample("job_duration_seconds_count")

    @property
    def step_observations(self) -> float:
        return self._sample("step_duration_seconds_count")

    def _sample(self, name: str) -> float:
        value = self._registry.get_sample_value(name)
        return value if value is not None else 0.0
