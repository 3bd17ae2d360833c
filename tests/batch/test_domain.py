"""
Tests for the pure domain layer: line parsing, value types, status rules.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import uuid4

import pytest

from recordflow_kernel.domain.clock import DeterministicClock
from recordflow_kernel.exceptions import FieldParseError, MalformedInputLineError

from recordflow_batch.domain.parsing import (
    parse_created_at,
    parse_leading_key,
    parse_record,
    split_fields,
)
from recordflow_batch.domain.types import (
    JobParameters,
    JobResult,
    JobStatus,
    PartitionDescriptor,
    PartitionResult,
    PartitionStatus,
    RetryPolicy,
    job_status_for,
)


def _result(pid: str, status: PartitionStatus, **counts) -> PartitionResult:
    return PartitionResult(partition_id=pid, status=status, **counts)


# =============================================================================
# Parsing
# =============================================================================


class TestLeadingKey:

    @pytest.mark.parametrize("line, key", [
        ("42,payload,2024-01-01T00:00:00", 42),
        ("7", 7),
        ("7\n", 7),
        ("8\r\n", 8),
        ("-3,x,y", -3),
        ("+9,x", 9),
        ("0012,x", 12),
    ])
    def test_valid(self, line, key):
        assert parse_leading_key(line) == key

    @pytest.mark.parametrize("line", [
        "abc,payload",
        ",payload",
        "",
        " 42,payload",
        "4.2,payload",
    ])
    def test_malformed(self, line):
        with pytest.raises(MalformedInputLineError) as exc_info:
            parse_leading_key(line, line_number=5)
        assert exc_info.value.line_number == 5
        assert exc_info.value.code == "MALFORMED_INPUT_LINE"


class TestRecordParsing:

    def test_full_line(self):
        record, errors = parse_record('5,"hello, world",2024-03-01T12:00:00\n', 5)
        assert errors == ()
        assert record.id == 5
        assert record.payload == "hello, world"
        assert record.created_at == datetime(2024, 3, 1, 12, 0, 0)

    def test_doubled_quotes_unescaped(self):
        assert split_fields('1,"say ""hi""",2024-01-01T00:00:00') == [
            "1", 'say "hi"', "2024-01-01T00:00:00",
        ]

    def test_bad_timestamp_leaves_field_absent(self):
        record, errors = parse_record("5,payload,yesterday", 5)
        assert record.payload == "payload"
        assert record.created_at is None
        [error] = errors
        assert isinstance(error, FieldParseError)
        assert error.field_name == "createdAt"

    def test_missing_fields(self):
        record, errors = parse_record("5", 5)
        assert record.id == 5
        assert record.payload is None
        assert record.created_at is None
        assert {e.field_name for e in errors} == {"payload", "createdAt"}

    def test_surplus_fields_ignored(self):
        record, errors = parse_record("5,p,2024-01-01T00:00:00,extra,more", 5)
        assert errors == ()
        assert record.payload == "p"

    def test_created_at_missing_value(self):
        with pytest.raises(FieldParseError, match="missing value"):
            parse_created_at("  ")


# =============================================================================
# Value types
# =============================================================================


class TestPartitionDescriptor:

    def test_end_offset_and_context(self):
        d = PartitionDescriptor("partition1", 25, 25, Path("/data/in.csv"))
        assert d.end_offset == 50
        assert d.to_context() == {
            "startAt": 25,
            "itemCount": 25,
            "inputFile": "/data/in.csv",
            "partitionId": "partition1",
        }

    def test_negative_offset_rejected(self):
        with pytest.raises(ValueError):
            PartitionDescriptor("partition0", -1, 5, Path("x"))

    def test_empty_partition_rejected(self):
        with pytest.raises(ValueError):
            PartitionDescriptor("partition0", 0, 0, Path("x"))


class TestRetryPolicy:

    def test_exponential_backoff_capped(self):
        policy = RetryPolicy(max_attempts=5, base_delay=1.0, backoff_multiplier=2.0, max_delay=5.0)
        assert [policy.delay_for(n) for n in range(0, 6)] == [0.0, 1.0, 2.0, 4.0, 5.0, 5.0]

    @pytest.mark.parametrize("kwargs", [
        {"max_attempts": 0},
        {"base_delay": -1},
        {"max_delay": -1},
        {"backoff_multiplier": 0.5},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)


class TestJobParameters:

    def test_idempotency_key(self):
        params = JobParameters(Path("/data/in.csv"), 1700000000)
        assert params.idempotency_key == "/data/in.csv:1700000000"


class TestJobResult:

    def test_aggregates_partition_counts(self):
        result = JobResult(
            job_id=uuid4(),
            job_name="recordJob",
            status=JobStatus.FAILED,
            partitions=(
                _result("partition0", PartitionStatus.COMPLETED, read_count=10, write_count=10),
                _result("partition1", PartitionStatus.FAILED, read_count=4, write_count=0, failure_count=3),
            ),
        )
        assert result.read_count == 14
        assert result.write_count == 10
        assert result.failure_count == 3
        assert [p.partition_id for p in result.failed_partitions] == ["partition1"]
        assert result.partition("partition1").failure_count == 3

    def test_unknown_partition(self):
        result = JobResult(job_id=uuid4(), job_name="recordJob", status=JobStatus.COMPLETED)
        with pytest.raises(KeyError):
            result.partition("partition9")


class TestJobStatusRule:

    def test_all_completed(self):
        parts = (_result("p0", PartitionStatus.COMPLETED), _result("p1", PartitionStatus.COMPLETED))
        assert job_status_for(parts, aborted=False) == JobStatus.COMPLETED

    def test_any_failed(self):
        parts = (_result("p0", PartitionStatus.COMPLETED), _result("p1", PartitionStatus.FAILED))
        assert job_status_for(parts, aborted=False) == JobStatus.FAILED

    def test_abort_fails_even_when_all_completed(self):
        parts = (_result("p0", PartitionStatus.COMPLETED),)
        assert job_status_for(parts, aborted=True) == JobStatus.FAILED


# =============================================================================
# Clocks
# =============================================================================


class TestClocks:

    def test_deterministic_clock_advances_only_on_request(self):
        start = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
        clock = DeterministicClock(start)
        assert clock.now() == clock.now() == start
        assert clock.tick() == start + timedelta(seconds=1)
        clock.advance(10)
        assert clock.now() == start + timedelta(seconds=11)
