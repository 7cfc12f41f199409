"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, cast

from sqlalchemy import delete, false, func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError

from idrecon.adapters.sqlalchemy.mappings import (
    decode_scalar,
    encode_scalar,
    entity_attribute_table,
    entity_resource_table,
    entity_table,
    sync_cursor_table,
)
from idrecon.domain.model import (
    AttrType,
    Comparison,
    IntAttrRef,
    InternalEntity,
    MappingError,
    SyncCursor,
    conditions_of,
    encode_value,
)
from idrecon.domain.ports import StoreError

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from sqlalchemy import ColumnElement, Select
    from sqlalchemy.orm import Session

    from idrecon.domain.model import Condition, EntityKind, Scalar, SearchPredicate
    from idrecon.domain.ports import AuthorizationContext, Changes


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise StoreError(f"{action} failed: {exc}") from exc


def _same_values(current: Sequence[Scalar | None] | None, wanted: Sequence[Scalar]) -> bool:
    current_text = sorted(encode_value(value) for value in current or () if value is not None)
    return current_text == sorted(encode_value(value) for value in wanted)


class SqlAlchemyInternalStore:
    """Internal identities stored as an entity row plus typed attribute rows."""

    def __init__(self, session: Session) -> None:
        self.session = session

    # Reads ---------------------------------------------------------------------

    def find_by_id(
        self, kind: EntityKind, entity_id: str, context: AuthorizationContext
    ) -> InternalEntity | None:
        if not context.permits(entity_id):
            return None
        found = self._query(self._scoped(kind, context).where(entity_table.c.id == entity_id))
        return found[0] if found else None

    def find_by_name(
        self, kind: EntityKind, name: str, context: AuthorizationContext
    ) -> list[InternalEntity]:
        return self._query(self._scoped(kind, context).where(entity_table.c.name == name))

    def find_by_attribute(
        self, kind: EntityKind, schema: str, value: Scalar, context: AuthorizationContext
    ) -> list[InternalEntity]:
        clause = self._attribute_clause(IntAttrRef(AttrType.PLAIN, schema), Comparison.EQ, value)
        return self._query(self._scoped(kind, context).where(clause))

    def find_by_derived_attribute(
        self, kind: EntityKind, schema: str, value: Scalar, context: AuthorizationContext
    ) -> list[InternalEntity]:
        clause = self._attribute_clause(IntAttrRef(AttrType.DERIVED, schema), Comparison.EQ, value)
        return self._query(self._scoped(kind, context).where(clause))

    def search(
        self, kind: EntityKind, predicate: SearchPredicate, context: AuthorizationContext
    ) -> list[InternalEntity]:
        return self._query(self._scoped(kind, context).where(*self._clauses(predicate)))

    def page(
        self,
        kind: EntityKind,
        query: SearchPredicate | None,
        *,
        page: int,
        size: int,
        context: AuthorizationContext,
    ) -> list[InternalEntity]:
        if page < 1 or size < 1:
            raise StoreError(f"Invalid page request: page={page}, size={size}")
        stmt = self._scoped(kind, context)
        if query is not None:
            stmt = stmt.where(*self._clauses(query))
        return self._query(stmt.offset((page - 1) * size).limit(size))

    def page_linked(
        self,
        kind: EntityKind,
        resource: str,
        *,
        page: int,
        size: int,
        context: AuthorizationContext,
    ) -> list[InternalEntity]:
        if page < 1 or size < 1:
            raise StoreError(f"Invalid page request: page={page}, size={size}")
        linked = (
            select(entity_resource_table.c.entity_id)
            .where(entity_resource_table.c.entity_id == entity_table.c.id)
            .where(entity_resource_table.c.resource == resource)
            .exists()
        )
        stmt = self._scoped(kind, context).where(linked)
        return self._query(stmt.offset((page - 1) * size).limit(size))

    def is_linked(
        self, kind: EntityKind, entity_id: str, resource: str, context: AuthorizationContext
    ) -> bool:
        self._require(kind, entity_id, context)
        stmt = (
            select(entity_resource_table.c.entity_id)
            .where(entity_resource_table.c.entity_id == entity_id)
            .where(entity_resource_table.c.resource == resource)
        )
        with _store_errors(f"Reading links of {entity_id}"):
            return self.session.execute(stmt).first() is not None

    # Mutations -----------------------------------------------------------------

    def create(
        self,
        kind: EntityKind,
        *,
        name: str,
        changes: Changes,
        context: AuthorizationContext,
    ) -> InternalEntity:
        _ = context
        entity_id = str(uuid.uuid4())
        owner: str | None = None
        with _store_errors(f"Creating {kind} {name}"):
            for ref, values in changes.items():
                if ref.type is AttrType.FIELD and ref.name == "owner" and values:
                    owner = str(values[0])
            self.session.execute(
                insert(entity_table).values(id=entity_id, kind=kind, name=name, owner_id=owner)
            )
            for ref, values in changes.items():
                if ref.type is not AttrType.FIELD:
                    self._insert_values(entity_id, ref, values)
        return self._load([entity_id])[0]

    def update(
        self,
        kind: EntityKind,
        entity_id: str,
        changes: Changes,
        context: AuthorizationContext,
    ) -> tuple[str, ...]:
        entity = self._require(kind, entity_id, context)
        changed: list[str] = []
        with _store_errors(f"Updating {kind} {entity_id}"):
            for ref, values in changes.items():
                if _same_values(entity.values_for(ref), values):
                    continue
                if ref.type is AttrType.FIELD:
                    if ref.is_name and values:
                        self._update_entity(entity_id, name=str(values[0]))
                    elif ref.name == "owner":
                        self._update_entity(entity_id, owner_id=str(values[0]) if values else None)
                    else:
                        continue
                else:
                    self._replace_values(entity_id, ref, values)
                changed.append(str(ref))
        return tuple(changed)

    def delete(self, kind: EntityKind, entity_id: str, context: AuthorizationContext) -> None:
        self._require(kind, entity_id, context)
        with _store_errors(f"Deleting {kind} {entity_id}"):
            self.session.execute(
                delete(entity_attribute_table).where(
                    entity_attribute_table.c.entity_id == entity_id
                )
            )
            self.session.execute(
                delete(entity_resource_table).where(entity_resource_table.c.entity_id == entity_id)
            )
            self.session.execute(
                update(entity_table)
                .where(entity_table.c.owner_id == entity_id)
                .values(owner_id=None)
            )
            self.session.execute(delete(entity_table).where(entity_table.c.id == entity_id))

    def link(
        self, kind: EntityKind, entity_id: str, resource: str, context: AuthorizationContext
    ) -> None:
        if self.is_linked(kind, entity_id, resource, context):
            return
        with _store_errors(f"Linking {entity_id} to {resource}"):
            self.session.execute(
                insert(entity_resource_table).values(entity_id=entity_id, resource=resource)
            )

    def unlink(
        self, kind: EntityKind, entity_id: str, resource: str, context: AuthorizationContext
    ) -> None:
        self._require(kind, entity_id, context)
        with _store_errors(f"Unlinking {entity_id} from {resource}"):
            self.session.execute(
                delete(entity_resource_table)
                .where(entity_resource_table.c.entity_id == entity_id)
                .where(entity_resource_table.c.resource == resource)
            )

    def set_owner(
        self,
        kind: EntityKind,
        entity_id: str,
        owner_id: str | None,
        context: AuthorizationContext,
    ) -> None:
        self._require(kind, entity_id, context)
        with _store_errors(f"Setting owner of {entity_id}"):
            self._update_entity(entity_id, owner_id=owner_id)

    def set_enabled(
        self,
        kind: EntityKind,
        entity_id: str,
        enabled: bool,
        context: AuthorizationContext,
    ) -> bool:
        entity = self._require(kind, entity_id, context)
        if entity.enabled == enabled:
            return False
        with _store_errors(f"Setting status of {entity_id}"):
            self._update_entity(entity_id, enabled=enabled)
        return True

    @contextmanager
    def savepoint(self) -> Iterator[None]:
        """Nested transaction around one record; rolled back when the block raises."""

        with _store_errors("Opening savepoint"):
            nested = self.session.begin_nested()
        try:
            yield
        except BaseException:
            with _store_errors("Rolling back savepoint"):
                nested.rollback()
            raise
        with _store_errors("Releasing savepoint"):
            nested.commit()

    # Helpers -------------------------------------------------------------------

    def _require(
        self, kind: EntityKind, entity_id: str, context: AuthorizationContext
    ) -> InternalEntity:
        entity = self.find_by_id(kind, entity_id, context)
        if entity is None:
            raise StoreError(f"{kind} {entity_id} does not exist or is not visible")
        return entity

    @staticmethod
    def _scoped(kind: EntityKind, context: AuthorizationContext) -> Select[tuple[str]]:
        stmt = select(entity_table.c.id).where(entity_table.c.kind == kind)
        if context.allowed_ids is not None:
            visible = sorted(context.allowed_ids | context.admitted)
            stmt = stmt.where(entity_table.c.id.in_(visible))
        return stmt.order_by(entity_table.c.id)

    def _query(self, stmt: Select[tuple[str]]) -> list[InternalEntity]:
        with _store_errors("Querying entities"):
            ids = list(self.session.execute(stmt).scalars())
        return self._load(ids)

    def _load(self, ids: list[str]) -> list[InternalEntity]:
        if not ids:
            return []
        with _store_errors("Loading entities"):
            rows = self.session.execute(
                select(entity_table).where(entity_table.c.id.in_(ids))
            ).all()
            entities = {
                row.id: InternalEntity(
                    id=row.id,
                    kind=row.kind,
                    name=row.name,
                    owner=row.owner_id,
                    enabled=row.enabled,
                )
                for row in rows
            }
            attributes = self.session.execute(
                select(entity_attribute_table)
                .where(entity_attribute_table.c.entity_id.in_(ids))
                .order_by(
                    entity_attribute_table.c.entity_id,
                    entity_attribute_table.c.name,
                    entity_attribute_table.c.position,
                )
            ).all()
            links = self.session.execute(
                select(entity_resource_table).where(entity_resource_table.c.entity_id.in_(ids))
            ).all()

        for row in attributes:
            entity = entities[row.entity_id]
            match row.attr_type:
                case AttrType.DERIVED:
                    target = entity.derived
                case AttrType.VIRTUAL:
                    target = entity.virtual
                case _:
                    target = entity.plain
            target[row.name] = (*target.get(row.name, ()), decode_scalar(row.value_type, row.value))
        for row in links:
            entities[row.entity_id].resources.add(row.resource)
        return [entities[entity_id] for entity_id in ids if entity_id in entities]

    def _insert_values(self, entity_id: str, ref: IntAttrRef, values: Sequence[Scalar]) -> None:
        rows = []
        for position, value in enumerate(values):
            value_type, text = encode_scalar(value)
            rows.append(
                {
                    "entity_id": entity_id,
                    "attr_type": ref.type,
                    "name": ref.name,
                    "position": position,
                    "value_type": value_type,
                    "value": text,
                }
            )
        if rows:
            self.session.execute(insert(entity_attribute_table), rows)

    def _replace_values(self, entity_id: str, ref: IntAttrRef, values: Sequence[Scalar]) -> None:
        self.session.execute(
            delete(entity_attribute_table)
            .where(entity_attribute_table.c.entity_id == entity_id)
            .where(entity_attribute_table.c.attr_type == ref.type)
            .where(entity_attribute_table.c.name == ref.name)
        )
        self._insert_values(entity_id, ref, values)

    def _update_entity(self, entity_id: str, **values: str | bool | None) -> None:
        self.session.execute(
            update(entity_table).where(entity_table.c.id == entity_id).values(**values)
        )

    def _clauses(self, predicate: SearchPredicate) -> list[ColumnElement[bool]]:
        return [self._condition_clause(condition) for condition in conditions_of(predicate)]

    def _condition_clause(self, condition: Condition) -> ColumnElement[bool]:
        try:
            ref = IntAttrRef.parse(condition.attribute)
        except MappingError as exc:
            raise StoreError(f"Cannot search on {condition.attribute!r}: {exc}") from exc
        if ref.type is not AttrType.FIELD:
            return self._attribute_clause(ref, condition.comparison, condition.value)

        if ref.name == "id":
            column = entity_table.c.id
        elif ref.name == "owner":
            column = entity_table.c.owner_id
        else:
            column = entity_table.c.name
        if condition.comparison is Comparison.IS_NULL:
            return column.is_(None)
        if condition.value is None:
            return false()
        text = encode_value(condition.value)
        if condition.comparison is Comparison.IEQ:
            return func.lower(column) == text.lower()
        return column == text

    @staticmethod
    def _attribute_clause(
        ref: IntAttrRef,
        comparison: Comparison,
        value: Scalar | None,
    ) -> ColumnElement[bool]:
        attrs = entity_attribute_table
        stmt = (
            select(attrs.c.id)
            .where(attrs.c.entity_id == entity_table.c.id)
            .where(attrs.c.attr_type == ref.type)
            .where(attrs.c.name == ref.name)
        )
        if comparison is Comparison.IS_NULL:
            return ~stmt.exists()
        if value is None:
            return false()
        text = encode_value(value)
        if comparison is Comparison.IEQ:
            return stmt.where(func.lower(attrs.c.value) == text.lower()).exists()
        return stmt.where(attrs.c.value == text).exists()


class SqlAlchemyCursorStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    def load(self, resource: str, kind: EntityKind) -> SyncCursor | None:
        stmt = (
            select(sync_cursor_table.c.value)
            .where(sync_cursor_table.c.resource == resource)
            .where(sync_cursor_table.c.kind == kind)
        )
        with _store_errors(f"Loading cursor for {resource}/{kind}"):
            value = self.session.execute(stmt).scalar_one_or_none()
        if value is None:
            return None
        return SyncCursor(resource=resource, kind=kind, value=value)

    def save(self, cursor: SyncCursor) -> None:
        now = datetime.now(UTC)
        with _store_errors(f"Saving cursor for {cursor.resource}/{cursor.kind}"):
            updated = self.session.execute(
                update(sync_cursor_table)
                .where(sync_cursor_table.c.resource == cursor.resource)
                .where(sync_cursor_table.c.kind == cursor.kind)
                .values(value=cursor.value, updated_at=now)
            )
            if updated.rowcount == 0:
                self.session.execute(
                    insert(sync_cursor_table).values(
                        resource=cursor.resource,
                        kind=cursor.kind,
                        value=cursor.value,
                        updated_at=now,
                    )
                )


if TYPE_CHECKING:
    from idrecon.domain.ports import CursorStore, InternalStore

    _session_stub = cast("Session", object())
    _store_check: InternalStore = SqlAlchemyInternalStore(_session_stub)
    _cursor_check: CursorStore = SqlAlchemyCursorStore(_session_stub)
