"""Internal store port: persistence of internal identities."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from contextlib import AbstractContextManager

    from idrecon.domain.model import (
        EntityKind,
        IntAttrRef,
        InternalEntity,
        Scalar,
        SearchPredicate,
    )


class StoreError(RuntimeError):
    """Raised when the internal store cannot perform a read or mutation."""


type Changes = Mapping[IntAttrRef, tuple[Scalar, ...]]


@dataclass(slots=True)
class AuthorizationContext:
    """Entities a run may see and touch; ``None`` means unrestricted.

    Entities created during a run are admitted so that later records of the
    same run can correlate against them.
    """

    allowed_ids: set[str] | None = None
    admitted: set[str] = field(default_factory=set)

    @classmethod
    def unrestricted(cls) -> AuthorizationContext:
        return cls()

    def permits(self, entity_id: str) -> bool:
        if self.allowed_ids is None:
            return True
        return entity_id in self.allowed_ids or entity_id in self.admitted

    def admit(self, entity_id: str) -> None:
        self.admitted.add(entity_id)

    def fork(self) -> AuthorizationContext:
        """Fresh context for a new run, with the same restriction and nothing admitted."""

        allowed = set(self.allowed_ids) if self.allowed_ids is not None else None
        return AuthorizationContext(allowed_ids=allowed)


@runtime_checkable
class InternalStore(Protocol):
    """Persistence contract for internal users, groups and any objects.

    Finders return entities sorted by id and filtered through the context.
    """

    def find_by_id(
        self, kind: EntityKind, entity_id: str, context: AuthorizationContext
    ) -> InternalEntity | None: ...

    def find_by_name(
        self, kind: EntityKind, name: str, context: AuthorizationContext
    ) -> list[InternalEntity]: ...

    def find_by_attribute(
        self, kind: EntityKind, schema: str, value: Scalar, context: AuthorizationContext
    ) -> list[InternalEntity]: ...

    def find_by_derived_attribute(
        self, kind: EntityKind, schema: str, value: Scalar, context: AuthorizationContext
    ) -> list[InternalEntity]: ...

    def search(
        self, kind: EntityKind, predicate: SearchPredicate, context: AuthorizationContext
    ) -> list[InternalEntity]: ...

    def create(
        self,
        kind: EntityKind,
        *,
        name: str,
        changes: Changes,
        context: AuthorizationContext,
    ) -> InternalEntity: ...

    def update(
        self,
        kind: EntityKind,
        entity_id: str,
        changes: Changes,
        context: AuthorizationContext,
    ) -> tuple[str, ...]:
        """Apply ``changes`` and return the references of attributes actually modified."""
        ...

    def delete(self, kind: EntityKind, entity_id: str, context: AuthorizationContext) -> None: ...

    def link(
        self, kind: EntityKind, entity_id: str, resource: str, context: AuthorizationContext
    ) -> None: ...

    def unlink(
        self, kind: EntityKind, entity_id: str, resource: str, context: AuthorizationContext
    ) -> None: ...

    def is_linked(
        self, kind: EntityKind, entity_id: str, resource: str, context: AuthorizationContext
    ) -> bool: ...

    def page(
        self,
        kind: EntityKind,
        query: SearchPredicate | None,
        *,
        page: int,
        size: int,
        context: AuthorizationContext,
    ) -> list[InternalEntity]:
        """Return the 1-based ``page`` of entities matching ``query``, ordered by id."""
        ...

    def page_linked(
        self,
        kind: EntityKind,
        resource: str,
        *,
        page: int,
        size: int,
        context: AuthorizationContext,
    ) -> list[InternalEntity]: ...

    def set_owner(
        self,
        kind: EntityKind,
        entity_id: str,
        owner_id: str | None,
        context: AuthorizationContext,
    ) -> None: ...

    def set_enabled(
        self,
        kind: EntityKind,
        entity_id: str,
        enabled: bool,
        context: AuthorizationContext,
    ) -> bool:
        """Set the account status; ``True`` when it changed."""
        ...

    def savepoint(self) -> AbstractContextManager[None]:
        """Scope one record's mutations; they are undone when the block raises."""
        ...
