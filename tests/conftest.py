"""
Pytest fixtures for the recordflow test suite.

Database fixtures use SQLite.  ``session_factory`` is backed by a file in
``tmp_path`` so concurrently running partitions each get their own
connection; ``memory_session_factory`` is for single-threaded tests.
"""

import json
import logging
from io import StringIO
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable

import pytest
from sqlalchemy.orm import Session, sessionmaker

from recordflow_kernel.db.base import Base
from recordflow_kernel.db.engine import build_engine
from recordflow_kernel.domain.clock import DeterministicClock
from recordflow_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from recordflow_kernel.metrics import BatchMetrics

import recordflow_batch.models  # noqa: F401


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture recordflow logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.run_job(params)
            logs = captured_logs()
            assert any(r["message"] == "chunk_committed" for r in logs)
    """
    buffer = StringIO()
    capture = logging.StreamHandler(buffer)
    capture.setFormatter(StructuredFormatter())
    engine_logger = logging.getLogger("recordflow")
    level_before = engine_logger.level
    engine_logger.setLevel(logging.DEBUG)
    engine_logger.addHandler(capture)
    try:
        yield lambda: [json.loads(raw) for raw in buffer.getvalue().splitlines() if raw]
    finally:
        engine_logger.removeHandler(capture)
        engine_logger.setLevel(level_before)


# =============================================================================
# Clock / metrics
# =============================================================================


FIXED_NOW = datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(FIXED_NOW)


@pytest.fixture
def metrics() -> BatchMetrics:
    return BatchMetrics()


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'recordflow.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker[Session]:
    return sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest.fixture
def memory_session_factory():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


# =============================================================================
# Input files
# =============================================================================


def record_line(key: int, payload: str | None = None, created_at: str = "2024-01-01T00:00:00") -> str:
    return f"{key},{payload if payload is not None else f'payload-{key}'},{created_at}"


@pytest.fixture
def write_input(tmp_path) -> Callable[..., Path]:
    """
    Write an input file and return its path.

    Accepts either an int (dense keys ``1..n``) or an iterable of raw lines.
    """
    counter = {"n": 0}

    def _write(lines: int | Iterable[str], name: str | None = None) -> Path:
        if isinstance(lines, int):
            lines = [record_line(k) for k in range(1, lines + 1)]
        counter["n"] += 1
        path = tmp_path / (name or f"input-{counter['n']}.csv")
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write
