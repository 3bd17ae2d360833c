"""
Engine and session management for the record store and job repository.

Contract:
    ``build_engine(url)`` returns a configured Engine and touches no module
    state.  ``init_engine_from_url(url)`` installs a process-wide engine and
    session factory that ``get_engine`` and ``get_session_factory``
    then serve.

Backends:
    PostgreSQL: QueuePool with pre-ping at READ COMMITTED.  Every partition
        writes through its own session, so ``pool_size + max_overflow``
        should be at least the grid size.
    SQLite: in-memory URLs share one connection (StaticPool); file URLs get
        a busy timeout so concurrent partition commits wait instead of
        failing.  Foreign keys are switched on per connection.

Failure modes:
    RuntimeError from the accessors before ``init_engine_from_url``.
"""

import atexit
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from recordflow_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Engine not initialized. Call init_engine_from_url() first."


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_timeout: int = 30,
) -> Engine:
    """Create an Engine for ``database_url``.

    ``pool_size`` and ``max_overflow`` apply to server databases only;
    for SQLite ``pool_timeout`` doubles as the busy timeout in seconds.
    """
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(
            url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            pool_pre_ping=True,
            pool_recycle=1800,
            isolation_level="READ COMMITTED",
        )

    options: dict[str, Any] = {
        "connect_args": {"check_same_thread": False, "timeout": pool_timeout},
    }
    if url.database in (None, "", ":memory:"):
        options["poolclass"] = StaticPool
    engine = create_engine(url, echo=echo, **options)

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_timeout: int = 30,
) -> Engine:
    """Install the process-wide engine, replacing (and disposing) any previous one."""
    global _engine, _session_factory

    reset_engine()
    _engine = build_engine(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
    )
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
        },
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    if _session_factory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _session_factory


def create_tables(engine: Engine | None = None) -> None:
    """Create every engine table on ``engine`` (default: the installed one)."""
    from recordflow_kernel.db.base import Base

    # Registers the model classes on Base.metadata.
    import recordflow_batch.models  # noqa: F401

    Base.metadata.create_all(engine or get_engine())


def reset_engine() -> None:
    """Dispose the installed engine, if any, and forget it."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


atexit.register(reset_engine)
