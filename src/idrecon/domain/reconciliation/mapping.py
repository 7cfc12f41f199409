"""Mapping resolver: projects values between external records and internal entities.

One resolver is built per (run, kind); it memoises the direction-filtered item
lists so repeated projections in a run do not re-scan the mapping.
"""

from __future__ import annotations

from functools import cached_property
from typing import TYPE_CHECKING

from idrecon.domain.model import NAME_ATTR, UID_ATTR, AttrType, ExternalRecord, IntAttrRef

from .errors import CorrelationConfigError, DispatchError

if TYPE_CHECKING:
    from idrecon.domain.model import (
        AttributeMapping,
        InternalEntity,
        KindSpec,
        MappingItem,
        Scalar,
    )


class MappingResolver:
    def __init__(self, mapping: AttributeMapping, kind_spec: KindSpec) -> None:
        self.mapping = mapping
        self.kind_spec = kind_spec

    @cached_property
    def account_id_item(self) -> MappingItem:
        return self.mapping.account_id_item

    @cached_property
    def inbound_items(self) -> tuple[MappingItem, ...]:
        return tuple(entry for entry in self.mapping.items if entry.inbound)

    @cached_property
    def outbound_items(self) -> tuple[MappingItem, ...]:
        return tuple(entry for entry in self.mapping.items if entry.outbound)

    @cached_property
    def _inbound_by_internal(self) -> dict[str, MappingItem]:
        by_internal: dict[str, MappingItem] = {}
        for entry in self.inbound_items:
            by_internal.setdefault(str(entry.int_attr), entry)
            by_internal.setdefault(entry.int_attr.name, entry)
        return by_internal

    @cached_property
    def owner_item(self) -> MappingItem | None:
        return next(
            (
                entry
                for entry in self.inbound_items
                if entry.int_attr.type is AttrType.FIELD and entry.int_attr.name == "owner"
            ),
            None,
        )

    def resolve_account_id(self, record: ExternalRecord) -> str:
        """Account identifier of ``record``; the connector uid when the attribute is absent."""

        value = record.first(self.account_id_item.ext_attr)
        if value is None:
            return record.uid
        return str(value)

    def project_inbound(self, record: ExternalRecord) -> dict[IntAttrRef, tuple[Scalar, ...]]:
        projected: dict[IntAttrRef, tuple[Scalar, ...]] = {}
        for entry in self.inbound_items:
            values = record.get(entry.ext_attr)
            if values is None:
                continue
            cleaned = tuple(value for value in values if value is not None)
            if not cleaned and not entry.nullable:
                continue
            projected[entry.int_attr] = projected.get(entry.int_attr, ()) + cleaned
        return projected

    def project_outbound(self, entity: InternalEntity) -> dict[str, tuple[Scalar, ...]]:
        projected: dict[str, tuple[Scalar, ...]] = {}
        for entry in self.outbound_items:
            values = entity.values_for(entry.int_attr)
            if values is None:
                continue
            projected[entry.ext_attr] = tuple(values)
        return projected

    def build_outbound_record(self, entity: InternalEntity) -> ExternalRecord:
        account_values = entity.values_for(self.account_id_item.int_attr)
        account_id = next((value for value in account_values or () if value is not None), None)
        if account_id is None:
            raise DispatchError(
                f"{entity.kind} {entity.id} has no value for account id "
                f"{self.account_id_item.int_attr}"
            )

        attributes = self.project_outbound(entity)
        attributes.pop(UID_ATTR, None)
        name_values = attributes.pop(NAME_ATTR, None)
        name = str(name_values[0]) if name_values else entity.name
        return ExternalRecord(uid=str(account_id), name=name, attributes=attributes)

    def lookup_external_value(
        self, record: ExternalRecord, internal_name: str
    ) -> tuple[Scalar | None, ...] | None:
        """External values feeding ``internal_name``, ``None`` when the record lacks them."""

        entry = self.mapping_for_internal(internal_name)
        return record.get(entry.ext_attr)

    def mapping_for_internal(self, internal_name: str) -> MappingItem:
        entry = self._inbound_by_internal.get(internal_name)
        if entry is None:
            raise CorrelationConfigError(
                f"No inbound mapping item for internal attribute {internal_name!r}"
            )
        return entry

    def owner_reference(self, record: ExternalRecord) -> str | None:
        if self.owner_item is None:
            return None
        value = record.first(self.owner_item.ext_attr)
        return str(value) if value is not None else None
