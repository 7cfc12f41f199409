"""Ports the reconciliation engine depends on."""

from __future__ import annotations

from idrecon.domain.ports.connector import (
    ConnectorError,
    ConnectorException,
    ConnectorFacade,
    ConnectorTimeout,
    DeltaCallback,
    SearchOptions,
)
from idrecon.domain.ports.provider import CursorStore, ResourceProvider
from idrecon.domain.ports.store import AuthorizationContext, Changes, InternalStore, StoreError
from idrecon.domain.ports.unit_of_work import ReconciliationRepositories, ReconciliationUnitOfWork

__all__ = [
    "AuthorizationContext",
    "Changes",
    "ConnectorError",
    "ConnectorException",
    "ConnectorFacade",
    "ConnectorTimeout",
    "CursorStore",
    "DeltaCallback",
    "InternalStore",
    "ReconciliationRepositories",
    "ReconciliationUnitOfWork",
    "ResourceProvider",
    "SearchOptions",
    "StoreError",
]
