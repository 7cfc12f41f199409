"""Per-kind capabilities that keep the orchestrators generic over entity kinds."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, Final

from .enums import EntityKind, SchemaType

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .records import Scalar

# Groups may reference users as owners, so they are reconciled last.
PULL_ORDER: Final[tuple[EntityKind, ...]] = (
    EntityKind.USER,
    EntityKind.ANY_OBJECT,
    EntityKind.GROUP,
)


@dataclass(frozen=True, slots=True)
class KindSpec:
    kind: EntityKind
    name_field: str
    label: str
    attribute_schema: Mapping[str, SchemaType] = field(default_factory=dict)

    def schema_type(self, attribute: str) -> SchemaType:
        return self.attribute_schema.get(attribute, SchemaType.STRING)

    def with_schema(self, schema: Mapping[str, SchemaType] | None) -> KindSpec:
        if not schema:
            return self
        return KindSpec(self.kind, self.name_field, self.label, MappingProxyType(dict(schema)))


KIND_SPECS: Final[Mapping[EntityKind, KindSpec]] = MappingProxyType(
    {
        EntityKind.USER: KindSpec(EntityKind.USER, "username", "Users"),
        EntityKind.GROUP: KindSpec(EntityKind.GROUP, "name", "Groups"),
        EntityKind.ANY_OBJECT: KindSpec(EntityKind.ANY_OBJECT, "name", "Any objects"),
    }
)


def kind_spec(kind: EntityKind, schema: Mapping[str, SchemaType] | None = None) -> KindSpec:
    return KIND_SPECS[kind].with_schema(schema)


def parse_value(raw: str, schema_type: SchemaType) -> Scalar:
    """Parse ``raw`` for ``schema_type``, keeping the raw string when it does not parse."""

    try:
        match schema_type:
            case SchemaType.LONG:
                return int(raw)
            case SchemaType.DOUBLE:
                return float(raw)
            case SchemaType.BOOLEAN:
                lowered = raw.strip().lower()
                if lowered in {"true", "false"}:
                    return lowered == "true"
                return raw
            case SchemaType.DATE:
                if "T" in raw:
                    return datetime.fromisoformat(raw)
                return date.fromisoformat(raw)
            case _:
                return raw
    except ValueError:
        return raw
