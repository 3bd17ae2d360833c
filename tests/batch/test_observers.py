"""
Tests for recordflow_batch.observers.
"""

from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

import pytest

from recordflow_kernel.exceptions import JobRunAlreadyExistsError
from recordflow_kernel.metrics import BatchMetrics

from recordflow_batch.domain.types import (
    JobParameters,
    JobResult,
    JobStatus,
    PartitionDescriptor,
    PartitionResult,
    PartitionStatus,
)
from recordflow_batch.observers import (
    CompositeObserver,
    JobObserver,
    JobRepositoryObserver,
    LoggingObserver,
    MetricsObserver,
)

SOURCE = Path("/data/input.csv")
DESCRIPTORS = (
    PartitionDescriptor("partition0", 0, 5, SOURCE),
    PartitionDescriptor("partition1", 5, 5, SOURCE),
)
STARTED = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


def _partition(pid: str, status=PartitionStatus.COMPLETED, **kwargs) -> PartitionResult:
    defaults = dict(
        read_count=5, write_count=5, start_offset=0, item_count=5,
        started_at=STARTED, completed_at=STARTED, duration_ms=250,
    )
    defaults.update(kwargs)
    return PartitionResult(partition_id=pid, status=status, **defaults)


def _job(job_id, partitions, status=JobStatus.COMPLETED, **kwargs) -> JobResult:
    return JobResult(
        job_id=job_id, job_name="recordJob", status=status,
        partitions=tuple(partitions), duration_ms=1500, **kwargs,
    )


class Recorder:
    def __init__(self, name, calls, fail_on=None):
        self.name = name
        self.calls = calls
        self.fail_on = fail_on

    def _hit(self, hook):
        self.calls.append((self.name, hook))
        if hook == self.fail_on:
            raise RuntimeError(f"{self.name} broke in {hook}")

    def on_job_start(self, job_id, parameters, descriptors):
        self._hit("on_job_start")

    def on_job_end(self, result):
        self._hit("on_job_end")

    def on_partition_start(self, job_id, descriptor):
        self._hit("on_partition_start")

    def on_partition_end(self, job_id, result):
        self._hit("on_partition_end")


# =============================================================================
# CompositeObserver
# =============================================================================


class TestCompositeObserver:

    def test_protocol(self):
        for observer in (CompositeObserver(), LoggingObserver(), MetricsObserver(BatchMetrics())):
            assert isinstance(observer, JobObserver)

    def test_calls_in_registration_order(self):
        calls = []
        composite = CompositeObserver([Recorder("a", calls), Recorder("b", calls)])
        composite.on_partition_end(uuid4(), _partition("partition0"))
        assert calls == [("a", "on_partition_end"), ("b", "on_partition_end")]

    def test_failure_in_end_hook_logged_and_others_run(self, captured_logs):
        calls = []
        composite = CompositeObserver([
            Recorder("a", calls, fail_on="on_job_end"),
            Recorder("b", calls),
        ])
        composite.on_job_end(_job(uuid4(), []))

        assert ("b", "on_job_end") in calls
        failures = [r for r in captured_logs() if r["message"] == "observer_failed"]
        assert failures[0]["hook"] == "on_job_end"
        assert failures[0]["observer"] == "Recorder"

    def test_failure_in_start_hook_propagates(self):
        calls = []
        composite = CompositeObserver([
            Recorder("a", calls, fail_on="on_job_start"),
            Recorder("b", calls),
        ])
        with pytest.raises(RuntimeError):
            composite.on_job_start(uuid4(), None, DESCRIPTORS)
        assert ("b", "on_job_start") not in calls

    def test_add(self):
        composite = CompositeObserver()
        observer = LoggingObserver()
        composite.add(observer)
        assert composite.observers == (observer,)


# =============================================================================
# LoggingObserver / MetricsObserver
# =============================================================================


class TestLoggingObserver:

    def test_lifecycle_lines(self, captured_logs):
        observer = LoggingObserver()
        job_id = uuid4()
        params = JobParameters(input_file=SOURCE, timestamp=42)

        observer.on_job_start(job_id, params, DESCRIPTORS)
        observer.on_partition_start(job_id, DESCRIPTORS[0])
        observer.on_partition_end(job_id, _partition("partition0"))
        observer.on_job_end(_job(job_id, [_partition("partition0")]))

        logs = {r["message"]: r for r in captured_logs()}
        assert logs["job_started"]["partition_count"] == 2
        assert logs["job_started"]["run_timestamp"] == 42
        assert logs["step_started"]["item_count"] == 5
        assert logs["step_finished"]["write_count"] == 5
        assert logs["job_finished"]["status"] == "completed"
        assert logs["job_finished"]["level"] == "INFO"

    def test_failed_job_logged_as_error(self, captured_logs):
        failed = _partition("partition1", PartitionStatus.FAILED, error_code="WRITER_REJECTION")
        LoggingObserver().on_job_end(_job(uuid4(), [failed], status=JobStatus.FAILED))

        (line,) = [r for r in captured_logs() if r["message"] == "job_finished"]
        assert line["level"] == "ERROR"
        assert line["failed_partitions"] == ["partition1"]


class TestMetricsObserver:

    def test_observes_durations(self):
        metrics = BatchMetrics()
        observer = MetricsObserver(metrics)
        job_id = uuid4()

        observer.on_partition_end(job_id, _partition("partition0"))
        observer.on_partition_end(job_id, _partition("partition1"))
        observer.on_job_end(_job(job_id, []))

        assert metrics.step_observations == 2
        assert metrics.job_observations == 1
        assert metrics.registry.get_sample_value("job_duration_seconds_sum") == pytest.approx(1.5)


# =============================================================================
# JobRepositoryObserver
# =============================================================================


class TestJobRepositoryObserver:

    def test_records_run_and_partitions(self, memory_session_factory, clock):
        repo = JobRepositoryObserver(memory_session_factory, clock=clock)
        job_id = uuid4()
        params = JobParameters(input_file=SOURCE, timestamp=1)

        repo.on_job_start(job_id, params, DESCRIPTORS)
        assert repo.get_job_status(job_id) == JobStatus.RUNNING

        repo.on_partition_end(job_id, _partition("partition1", start_offset=5))
        repo.on_partition_end(
            job_id,
            _partition("partition0", PartitionStatus.FAILED, error_code="WRITER_REJECTION"),
        )
        repo.on_job_end(_job(job_id, [], status=JobStatus.FAILED))

        assert repo.get_job_status(job_id) == JobStatus.FAILED
        assert repo.find_job_id(params.idempotency_key) == job_id
        stored = repo.get_partition_results(job_id)
        assert [p.partition_id for p in stored] == ["partition0", "partition1"]
        assert stored[0].status == PartitionStatus.FAILED
        assert stored[0].error_code == "WRITER_REJECTION"
        assert stored[1].start_offset == 5
        assert stored[1].write_count == 5

    def test_duplicate_parameters_rejected(self, memory_session_factory, clock):
        repo = JobRepositoryObserver(memory_session_factory, clock=clock)
        params = JobParameters(input_file=SOURCE, timestamp=7)
        first = uuid4()
        repo.on_job_start(first, params, DESCRIPTORS)

        with pytest.raises(JobRunAlreadyExistsError) as exc_info:
            repo.on_job_start(uuid4(), params, DESCRIPTORS)
        assert exc_info.value.existing_job_id == str(first)

    def test_new_timestamp_is_a_new_run(self, memory_session_factory, clock):
        repo = JobRepositoryObserver(memory_session_factory, clock=clock)
        repo.on_job_start(uuid4(), JobParameters(SOURCE, 1), DESCRIPTORS)
        repo.on_job_start(uuid4(), JobParameters(SOURCE, 2), DESCRIPTORS)

    def test_runs_without_parameters_not_recorded(self, memory_session_factory):
        repo = JobRepositoryObserver(memory_session_factory)
        job_id = uuid4()
        repo.on_job_start(job_id, None, DESCRIPTORS)
        repo.on_partition_end(job_id, _partition("partition0"))
        repo.on_job_end(_job(job_id, []))

        assert repo.get_job_status(job_id) is None
        assert repo.get_partition_results(job_id) == ()
