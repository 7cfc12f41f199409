"""Attribute mapping between external records and internal entities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from .enums import AttrType, MappingPurpose

FIELD_NAMES: Final[frozenset[str]] = frozenset({"id", "name", "username", "owner"})
NAME_FIELDS: Final[frozenset[str]] = frozenset({"name", "username"})


class MappingError(ValueError):
    """Raised when a mapping definition violates its structural invariants."""


@dataclass(frozen=True, slots=True)
class IntAttrRef:
    """Reference to an internal attribute, e.g. ``plain:email`` or ``username``."""

    type: AttrType
    name: str

    @classmethod
    def parse(cls, text: str) -> IntAttrRef:
        raw = text.strip()
        if not raw:
            raise MappingError("Empty internal attribute reference")
        prefix, sep, name = raw.partition(":")
        if not sep:
            if raw in FIELD_NAMES:
                return cls(AttrType.FIELD, raw)
            return cls(AttrType.PLAIN, raw)
        try:
            attr_type = AttrType(prefix.lower())
        except ValueError as exc:
            raise MappingError(f"Unknown attribute type in {text!r}") from exc
        if not name:
            raise MappingError(f"Missing attribute name in {text!r}")
        if attr_type is AttrType.FIELD and name not in FIELD_NAMES:
            raise MappingError(f"Unknown field {name!r}")
        return cls(attr_type, name)

    @property
    def is_name(self) -> bool:
        return self.type is AttrType.FIELD and self.name in NAME_FIELDS

    def __str__(self) -> str:
        if self.type is AttrType.FIELD:
            return self.name
        return f"{self.type}:{self.name}"


@dataclass(frozen=True, slots=True, kw_only=True)
class MappingItem:
    ext_attr: str
    int_attr: IntAttrRef
    purpose: MappingPurpose = MappingPurpose.BOTH
    account_id: bool = False
    nullable: bool = False

    @property
    def inbound(self) -> bool:
        return self.purpose in {MappingPurpose.SYNC, MappingPurpose.BOTH}

    @property
    def outbound(self) -> bool:
        return self.purpose in {MappingPurpose.PROPAGATION, MappingPurpose.BOTH}


def item(
    ext_attr: str,
    int_attr: str,
    *,
    purpose: MappingPurpose = MappingPurpose.BOTH,
    account_id: bool = False,
    nullable: bool = False,
) -> MappingItem:
    """Shorthand constructor parsing the internal reference from text."""

    return MappingItem(
        ext_attr=ext_attr,
        int_attr=IntAttrRef.parse(int_attr),
        purpose=purpose,
        account_id=account_id,
        nullable=nullable,
    )


@dataclass(frozen=True, slots=True)
class AttributeMapping:
    items: tuple[MappingItem, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", tuple(self.items))
        account_items = [entry for entry in self.items if entry.account_id]
        if len(account_items) != 1:
            raise MappingError(
                f"Mapping must have exactly one account-id item, found {len(account_items)}"
            )
        if account_items[0].int_attr.type is AttrType.VIRTUAL:
            raise MappingError("The account-id item cannot target a virtual attribute")

    @property
    def account_id_item(self) -> MappingItem:
        return next(entry for entry in self.items if entry.account_id)
