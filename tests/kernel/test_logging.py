"""
Tests for recordflow_kernel.logging_config: JSON line format, bound context
and logger configuration.
"""

import json
import logging
import threading
from io import StringIO
from pathlib import Path
from uuid import uuid4

import pytest

from recordflow_kernel.exceptions import ChunkFailureError, InputSourceError
from recordflow_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)

from recordflow_batch.domain.types import PartitionStatus


@pytest.fixture(autouse=True)
def _fresh_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


@pytest.fixture
def log_stream():
    """Configure logging into a buffer; returns a reader of parsed lines."""
    stream = StringIO()
    configure_logging(stream=stream, level=logging.DEBUG)

    def _lines() -> list[dict]:
        return [json.loads(raw) for raw in stream.getvalue().splitlines() if raw]

    return _lines


# =============================================================================
# Line format
# =============================================================================


class TestLineFormat:

    def test_envelope(self, log_stream):
        get_logger("batch.worker").info("partition_started")

        [line] = log_stream()
        assert line["message"] == "partition_started"
        assert line["level"] == "INFO"
        assert line["logger"] == "recordflow.batch.worker"
        assert line["thread"] == threading.current_thread().name
        assert line["ts"].endswith("+00:00")

    def test_extra_fields_are_top_level(self, log_stream):
        get_logger("t").info("chunk_committed", extra={"chunk_index": 3, "write_count": 100})

        [line] = log_stream()
        assert line["chunk_index"] == 3
        assert line["write_count"] == 100

    def test_non_json_values_rendered(self, log_stream):
        job_id = uuid4()
        get_logger("t").info(
            "typed",
            extra={
                "job_uuid": job_id,
                "source": Path("/data/in.csv"),
                "status": PartitionStatus.FAILED,
            },
        )

        [line] = log_stream()
        assert line["job_uuid"] == str(job_id)
        assert line["source"] == "/data/in.csv"
        assert line["status"] == "failed"

    def test_each_record_is_one_line(self, log_stream):
        log = get_logger("t")
        log.info("a")
        log.warning("b", extra={"text": "multi\nline"})
        log.debug("c")

        assert [line["message"] for line in log_stream()] == ["a", "b", "c"]


class TestExceptionFields:

    def test_plain_exception(self, log_stream):
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("t").exception("failed")

        [line] = log_stream()
        assert line["level"] == "ERROR"
        assert line["exc_type"] == "ValueError"
        assert line["exc_message"] == "boom"
        assert "exc_code" not in line
        assert "ValueError: boom" in line["traceback"]

    def test_engine_exception_attributes(self, log_stream):
        try:
            raise ChunkFailureError("partition1", 7, 3, "WRITER_REJECTION", "no id")
        except ChunkFailureError:
            get_logger("t").error("chunk_error", exc_info=True)

        [line] = log_stream()
        assert line["exc_code"] == "CHUNK_FAILURE"
        assert line["exc_partition_id"] == "partition1"
        assert line["exc_chunk_index"] == 7
        assert line["exc_attempts"] == 3
        assert line["exc_cause_code"] == "WRITER_REJECTION"

    def test_path_attribute_rendered(self, log_stream):
        try:
            raise InputSourceError(Path("/missing.csv"), "not found")
        except InputSourceError:
            get_logger("t").warning("read_failed", exc_info=True)

        [line] = log_stream()
        assert line["exc_source"] == "/missing.csv"
        assert line["exc_code"] == "INPUT_SOURCE_ERROR"


# =============================================================================
# Bound context
# =============================================================================


class TestLogContext:

    def test_context_in_every_line(self, log_stream):
        with LogContext.bind(job_id="job-1", partition_id="partition2"):
            get_logger("t").info("inside")
        get_logger("t").info("outside")

        inside, outside = log_stream()
        assert inside["job_id"] == "job-1"
        assert inside["partition_id"] == "partition2"
        assert "job_id" not in outside

    def test_context_wins_over_extra(self, log_stream):
        with LogContext.bind(partition_id="partition0"):
            get_logger("t").info("m", extra={"partition_id": "other"})

        [line] = log_stream()
        assert line["partition_id"] == "partition0"

    def test_set_ignores_none(self):
        LogContext.set(job_id="j", partition_id=None)
        assert LogContext.get_all() == {"job_id": "j"}

    def test_nested_bind_restores(self):
        LogContext.set(job_name="recordJob")
        with LogContext.bind(partition_id="partition0"):
            with LogContext.bind(partition_id="partition1", input_file="/in.csv"):
                assert LogContext.get_all() == {
                    "job_name": "recordJob",
                    "partition_id": "partition1",
                    "input_file": "/in.csv",
                }
            assert LogContext.get_all() == {
                "job_name": "recordJob", "partition_id": "partition0",
            }
        assert LogContext.get_all() == {"job_name": "recordJob"}

    def test_bind_restores_after_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(job_id="j"):
                raise RuntimeError("x")
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="chunk_index"):
            LogContext.set(chunk_index="3")

    def test_new_thread_starts_empty(self):
        LogContext.set(job_id="main-job")
        seen: list[dict] = []

        def _partition():
            seen.append(LogContext.get_all())
            with LogContext.bind(partition_id="partition3"):
                seen.append(LogContext.get_all())

        worker = threading.Thread(target=_partition)
        worker.start()
        worker.join()

        assert seen == [{}, {"partition_id": "partition3"}]
        assert LogContext.get_all() == {"job_id": "main-job"}


# =============================================================================
# Configuration
# =============================================================================


class TestConfigureLogging:

    def test_second_call_is_ignored(self):
        first, second = logging.NullHandler(), logging.NullHandler()
        configure_logging(handler=first)
        configure_logging(handler=second)
        assert logging.getLogger("recordflow").handlers == [first]

    def test_handler_gets_json_formatter(self):
        handler = logging.NullHandler()
        configure_logging(handler=handler)
        assert isinstance(handler.formatter, StructuredFormatter)

    def test_level_applied(self):
        stream = StringIO()
        configure_logging(stream=stream)
        get_logger("t").debug("hidden")
        get_logger("t").info("shown")
        assert [json.loads(l)["message"] for l in stream.getvalue().splitlines()] == ["shown"]

    def test_reset_detaches_handlers(self):
        configure_logging(handler=logging.NullHandler())
        reset_logging()
        root = logging.getLogger("recordflow")
        assert root.handlers == []
        assert root.propagate is True
