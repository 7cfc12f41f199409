"""SQLAlchemy adapter package for the internal store."""

from __future__ import annotations

from .mappings import create_all_tables, metadata
from .repositories import SqlAlchemyCursorStore, SqlAlchemyInternalStore
from .unit_of_work import (
    SqlAlchemyReconciliationUnitOfWork,
    StartupError,
    configure_sqlite,
    is_started,
    shutdown,
    startup,
)

__all__ = [
    "SqlAlchemyCursorStore",
    "SqlAlchemyInternalStore",
    "SqlAlchemyReconciliationUnitOfWork",
    "StartupError",
    "configure_sqlite",
    "create_all_tables",
    "is_started",
    "metadata",
    "shutdown",
    "startup",
]
