"""
recordflow_kernel.db -- SQLAlchemy base classes and engine management.
"""

from recordflow_kernel.db.base import Base, TrackedBase, UUIDString
from recordflow_kernel.db.engine import (
    build_engine,
    create_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)

__all__ = [
    "Base",
    "TrackedBase",
    "UUIDString",
    "build_engine",
    "create_tables",
    "get_engine",
    "get_session_factory",
    "init_engine_from_url",
    "reset_engine",
]
