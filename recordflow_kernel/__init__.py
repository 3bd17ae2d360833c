"""
recordflow_kernel -- Infrastructure for the record-processing engine.

Provides structured logging, the typed exception hierarchy, the injectable
clock, Prometheus metrics, and SQLAlchemy engine/session management.

Architecture:
    recordflow_kernel/ is the lowest layer.  It never imports from
    recordflow_batch/ or recordflow_config/ at module import time.
"""
