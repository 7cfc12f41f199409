"""External records, change deltas and sync cursors."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, Final

from .enums import DeltaKind, EntityKind

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

type Scalar = str | int | float | bool | date | datetime
type AttributeValues = tuple[Scalar | None, ...]

UID_ATTR: Final[str] = "__UID__"
NAME_ATTR: Final[str] = "__NAME__"
ENABLE_ATTR: Final[str] = "__ENABLE__"


def encode_value(value: Scalar) -> str:
    """Canonical text form used when comparing values of mixed schema types."""

    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


@dataclass(frozen=True, slots=True, kw_only=True)
class ExternalRecord:
    """Immutable snapshot of an object as reported by a connector.

    Attribute values are stored as tuples; ``None`` entries are null markers
    kept so that callers can tell "present but empty" from "absent".
    """

    uid: str
    name: str | None = None
    attributes: Mapping[str, Sequence[Scalar | None]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        frozen = {key: tuple(values) for key, values in self.attributes.items()}
        object.__setattr__(self, "attributes", MappingProxyType(frozen))

    def get(self, attribute: str) -> AttributeValues | None:
        if attribute == UID_ATTR:
            return (self.uid,)
        if attribute == NAME_ATTR:
            return (self.name,) if self.name is not None else None
        values = self.attributes.get(attribute)
        return tuple(values) if values is not None else None

    def first(self, attribute: str) -> Scalar | None:
        values = self.get(attribute)
        if not values:
            return None
        return next((value for value in values if value is not None), None)

    def enabled(self) -> bool | None:
        """Account status carried in ``__ENABLE__``; ``None`` when absent or unreadable."""

        match self.first(ENABLE_ATTR):
            case bool() as flag:
                return flag
            case str() as text if text.strip().lower() in {"true", "false"}:
                return text.strip().lower() == "true"
            case _:
                return None


@dataclass(frozen=True, slots=True, kw_only=True)
class Delta:
    kind: DeltaKind
    uid: str
    record: ExternalRecord | None = None

    def __post_init__(self) -> None:
        if self.kind is not DeltaKind.DELETE and self.record is None:
            raise ValueError(f"{self.kind} delta for {self.uid} carries no record")

    @classmethod
    def upsert(cls, record: ExternalRecord, *, kind: DeltaKind = DeltaKind.UPDATE) -> Delta:
        return cls(kind=kind, uid=record.uid, record=record)

    @classmethod
    def deletion(cls, uid: str) -> Delta:
        return cls(kind=DeltaKind.DELETE, uid=uid)

    def subject(self) -> ExternalRecord:
        """Record to correlate; a bare uid placeholder for deletions."""

        return self.record if self.record is not None else ExternalRecord(uid=self.uid)


@dataclass(frozen=True, slots=True, kw_only=True)
class SyncCursor:
    resource: str
    kind: EntityKind
    value: str
