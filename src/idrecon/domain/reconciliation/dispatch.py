"""Dispatchers carrying matrix decisions out against the store or the connector."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Final

from idrecon.domain.model import (
    ENABLE_ATTR,
    NAME_ATTR,
    AttrType,
    DeltaKind,
    EntityKind,
    Operation,
    encode_value,
)

from .errors import DispatchError
from .report import Outcome, OutcomeStatus

if TYPE_CHECKING:
    from idrecon.domain.model import (
        Delta,
        ExternalRecord,
        IntAttrRef,
        InternalEntity,
        Scalar,
    )
    from idrecon.domain.ports import AuthorizationContext, ConnectorFacade, InternalStore

    from .mapping import MappingResolver
    from .matrix import Decision

log = getLogger(__name__)

# Placeholder id reported for entities a dry run would have created.
DRY_RUN_ID: Final[str] = "0"

_CREATING: Final[frozenset[Operation]] = frozenset({Operation.CREATE, Operation.ASSIGN})


def writable_changes(
    projected: dict[IntAttrRef, tuple[Scalar, ...]],
) -> dict[IntAttrRef, tuple[Scalar, ...]]:
    """Drop references the engine never writes: derived values, ids and owners."""

    return {
        ref: values
        for ref, values in projected.items()
        if ref.type is not AttrType.DERIVED and (ref.type is not AttrType.FIELD or ref.is_name)
    }


def _differs(current: tuple[Scalar | None, ...] | None, wanted: tuple[Scalar, ...]) -> bool:
    current_text = sorted(encode_value(value) for value in current or () if value is not None)
    return current_text != sorted(encode_value(value) for value in wanted)


def _status(decision: Decision) -> OutcomeStatus:
    return OutcomeStatus.IGNORED if decision.ignored else OutcomeStatus.SUCCESS


@dataclass(slots=True, kw_only=True)
class InboundDispatcher:
    """Applies pull decisions to the internal store."""

    store: InternalStore
    connector: ConnectorFacade
    resource: str
    context: AuthorizationContext

    def apply(
        self,
        kind: EntityKind,
        delta: Delta,
        decision: Decision,
        resolver: MappingResolver,
        *,
        sync_status: bool = False,
    ) -> Outcome:
        """Carry out ``decision``; with ``sync_status`` users also take ``__ENABLE__``."""

        record = delta.subject()
        operation = decision.operation
        changes = writable_changes(resolver.project_inbound(record))
        target = decision.target_id
        changed: tuple[str, ...] = ()
        status = record.enabled() if sync_status and kind is EntityKind.USER else None

        if operation in _CREATING:
            name = self._entity_name(record, changes, resolver)
            changed = tuple(str(ref) for ref in changes)
            if status is not None:
                changed = (*changed, ENABLE_ATTR)
            if decision.dry_run:
                target = DRY_RUN_ID
            else:
                entity = self.store.create(kind, name=name, changes=changes, context=self.context)
                self.context.admit(entity.id)
                if status is not None:
                    self.store.set_enabled(kind, entity.id, status, self.context)
                self.store.link(kind, entity.id, self.resource, self.context)
                target = entity.id
        elif target is None:
            if operation is not Operation.NONE:
                raise DispatchError(f"{operation} for {kind} {record.uid} has no target entity")
        elif decision.dry_run:
            if operation is Operation.UPDATE:
                changed = self._preview(kind, target, changes, status)
        else:
            changed = self._execute(kind, target, operation, record, changes)
            if operation is Operation.UPDATE and status is not None:
                if self.store.set_enabled(kind, target, status, self.context):
                    changed = (*changed, ENABLE_ATTR)

        return Outcome(
            kind=kind,
            uid=delta.uid,
            name=record.name,
            operation=operation,
            status=_status(decision),
            internal_id=target,
            changes=changed,
            warnings=(decision.warning,) if decision.warning else (),
            dry_run=decision.dry_run,
        )

    def _execute(
        self,
        kind: EntityKind,
        target: str,
        operation: Operation,
        record: ExternalRecord,
        changes: dict[IntAttrRef, tuple[Scalar, ...]],
    ) -> tuple[str, ...]:
        match operation:
            case Operation.UPDATE:
                changed = self.store.update(kind, target, changes, self.context)
                self.store.link(kind, target, self.resource, self.context)
                return changed
            case Operation.LINK:
                self.store.link(kind, target, self.resource, self.context)
            case Operation.UNLINK:
                self.store.unlink(kind, target, self.resource, self.context)
            case Operation.DELETE:
                self.store.delete(kind, target, self.context)
            case Operation.UNASSIGN:
                self.connector.write(kind, DeltaKind.DELETE, record)
                self.store.unlink(kind, target, self.resource, self.context)
            case Operation.DEPROVISION:
                self.connector.write(kind, DeltaKind.DELETE, record)
            case _:
                pass
        return ()

    def _preview(
        self,
        kind: EntityKind,
        target: str,
        changes: dict[IntAttrRef, tuple[Scalar, ...]],
        status: bool | None,
    ) -> tuple[str, ...]:
        entity = self.store.find_by_id(kind, target, self.context)
        if entity is None:
            return tuple(str(ref) for ref in changes)
        changed = [
            str(ref) for ref, values in changes.items() if _differs(entity.values_for(ref), values)
        ]
        if status is not None and status != entity.enabled:
            changed.append(ENABLE_ATTR)
        return tuple(changed)

    @staticmethod
    def _entity_name(
        record: ExternalRecord,
        changes: dict[IntAttrRef, tuple[Scalar, ...]],
        resolver: MappingResolver,
    ) -> str:
        for ref, values in changes.items():
            if ref.is_name and values:
                return str(values[0])
        if record.name:
            return record.name
        account_id = resolver.resolve_account_id(record)
        if not account_id:
            raise DispatchError(f"Cannot derive a name for {record.uid}")
        return account_id


@dataclass(slots=True, kw_only=True)
class OutboundDispatcher:
    """Applies push decisions to the connector, keeping internal links in step."""

    store: InternalStore
    connector: ConnectorFacade
    resource: str
    context: AuthorizationContext

    def apply(
        self,
        kind: EntityKind,
        entity: InternalEntity,
        record: ExternalRecord,
        external: ExternalRecord | None,
        decision: Decision,
    ) -> Outcome:
        operation = decision.operation
        changed: tuple[str, ...] = ()
        uid = record.uid

        match operation:
            case Operation.PROVISION | Operation.ASSIGN:
                changed = tuple(record.attributes)
            case Operation.UPDATE:
                changed = _outbound_changes(record, external)
            case _:
                pass

        if not decision.dry_run:
            uid = self._execute(kind, entity, record, operation, changed) or uid

        return Outcome(
            kind=kind,
            uid=uid,
            name=entity.name,
            operation=operation,
            status=_status(decision),
            internal_id=entity.id,
            changes=changed,
            dry_run=decision.dry_run,
        )

    def _execute(
        self,
        kind: EntityKind,
        entity: InternalEntity,
        record: ExternalRecord,
        operation: Operation,
        changed: tuple[str, ...],
    ) -> str | None:
        uid: str | None = None
        match operation:
            case Operation.PROVISION:
                uid = self.connector.write(kind, DeltaKind.CREATE, record)
            case Operation.ASSIGN:
                uid = self.connector.write(kind, DeltaKind.CREATE, record)
                self.store.link(kind, entity.id, self.resource, self.context)
            case Operation.UPDATE:
                if changed:
                    uid = self.connector.write(kind, DeltaKind.UPDATE, record)
                else:
                    log.debug("Nothing to propagate for %s %s", kind, entity.id)
                self.store.link(kind, entity.id, self.resource, self.context)
            case Operation.LINK:
                self.store.link(kind, entity.id, self.resource, self.context)
            case Operation.UNLINK:
                self.store.unlink(kind, entity.id, self.resource, self.context)
            case Operation.UNASSIGN:
                self.connector.write(kind, DeltaKind.DELETE, record)
                self.store.unlink(kind, entity.id, self.resource, self.context)
            case Operation.DEPROVISION:
                self.connector.write(kind, DeltaKind.DELETE, record)
            case _:
                pass
        return uid


def _outbound_changes(record: ExternalRecord, external: ExternalRecord | None) -> tuple[str, ...]:
    if external is None:
        return tuple(record.attributes)
    changed = [
        attribute
        for attribute, values in record.attributes.items()
        if _differs(external.get(attribute), tuple(v for v in values if v is not None))
    ]
    if record.name is not None and record.name != external.name:
        changed.append(NAME_ATTR)
    return tuple(changed)
