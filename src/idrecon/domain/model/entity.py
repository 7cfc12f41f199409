"""Internal identity entities as seen by the reconciliation engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .enums import AttrType

if TYPE_CHECKING:
    from .enums import EntityKind
    from .mapping import IntAttrRef
    from .records import Scalar


@dataclass(slots=True, kw_only=True)
class InternalEntity:
    """Detached snapshot of an internal user, group or any object."""

    id: str
    kind: EntityKind
    name: str
    plain: dict[str, tuple[Scalar, ...]] = field(default_factory=dict)
    derived: dict[str, tuple[Scalar, ...]] = field(default_factory=dict)
    virtual: dict[str, tuple[Scalar, ...]] = field(default_factory=dict)
    resources: set[str] = field(default_factory=set)
    owner: str | None = None
    enabled: bool = True

    def values_for(self, ref: IntAttrRef) -> tuple[Scalar, ...] | None:
        match ref.type:
            case AttrType.FIELD:
                if ref.name == "id":
                    return (self.id,)
                if ref.is_name:
                    return (self.name,)
                return (self.owner,) if self.owner is not None else None
            case AttrType.PLAIN:
                return self.plain.get(ref.name)
            case AttrType.DERIVED:
                return self.derived.get(ref.name)
            case AttrType.VIRTUAL:
                return self.virtual.get(ref.name)

    def is_linked(self, resource: str) -> bool:
        return resource in self.resources
