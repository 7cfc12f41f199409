"""Ports for resource definitions and cursor persistence."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from idrecon.domain.model import EntityKind, ResourceDefinition, SyncCursor


@runtime_checkable
class ResourceProvider(Protocol):
    """Read-only source of resource definitions (mappings and policies)."""

    def get_resource(self, key: str) -> ResourceDefinition: ...


@runtime_checkable
class CursorStore(Protocol):
    def load(self, resource: str, kind: EntityKind) -> SyncCursor | None: ...

    def save(self, cursor: SyncCursor) -> None: ...
