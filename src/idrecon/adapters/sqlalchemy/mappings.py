"""SQLAlchemy table metadata for internal identities and sync cursors."""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Final

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Dialect,
    Enum,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    TypeDecorator,
)

from idrecon.domain.model import AttrType, EntityKind, encode_value

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from idrecon.domain.model import Scalar

log = logging.getLogger(__name__)

ID_LENGTH: Final[int] = 36


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_label)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)

entity_table = Table(
    "entity",
    metadata,
    Column("id", String(ID_LENGTH), primary_key=True),
    Column("kind", Enum(EntityKind, native_enum=False), nullable=False),
    Column("name", String, nullable=False),
    Column("owner_id", String(ID_LENGTH), nullable=True),
    Column("enabled", Boolean, nullable=False, default=True),
    Index("ix_entity_kind_name", "kind", "name"),
)

entity_attribute_table = Table(
    "entity_attribute",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "entity_id",
        String(ID_LENGTH),
        ForeignKey("entity.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("attr_type", Enum(AttrType, native_enum=False), nullable=False),
    Column("name", String, nullable=False),
    Column("position", Integer, nullable=False, default=0),
    Column("value_type", String(16), nullable=False),
    Column("value", String, nullable=False),
    Index("ix_entity_attribute_lookup", "attr_type", "name", "value"),
    Index("ix_entity_attribute_entity", "entity_id"),
)

entity_resource_table = Table(
    "entity_resource",
    metadata,
    Column(
        "entity_id",
        String(ID_LENGTH),
        ForeignKey("entity.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("resource", String, primary_key=True),
)

sync_cursor_table = Table(
    "sync_cursor",
    metadata,
    Column("resource", String, primary_key=True),
    Column("kind", Enum(EntityKind, native_enum=False), primary_key=True),
    Column("value", String, nullable=False),
    Column("updated_at", UTCDateTime(), nullable=False),
)


def encode_scalar(value: Scalar) -> tuple[str, str]:
    """Return ``(value_type, text)``; the text matches the canonical comparison form."""

    match value:
        case bool():
            tag = "bool"
        case int():
            tag = "int"
        case float():
            tag = "float"
        case datetime():
            tag = "datetime"
        case date():
            tag = "date"
        case _:
            tag = "str"
    return tag, encode_value(value)


def decode_scalar(value_type: str, text: str) -> Scalar:
    match value_type:
        case "bool":
            return text == "true"
        case "int":
            return int(text)
        case "float":
            return float(text)
        case "datetime":
            return datetime.fromisoformat(text)
        case "date":
            return date.fromisoformat(text)
        case _:
            return text


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the store metadata."""

    log.info("Creating all tables")
    metadata.create_all(engine)
