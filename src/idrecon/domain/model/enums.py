"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class EntityKind(StrEnum):
    USER = "user"
    GROUP = "group"
    ANY_OBJECT = "any_object"


class DeltaKind(StrEnum):
    """Change reported by a connector, also used as the write verb sent back to it."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class Operation(StrEnum):
    """Action selected by the conflict resolution matrix."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    LINK = "link"
    UNLINK = "unlink"
    ASSIGN = "assign"
    UNASSIGN = "unassign"
    PROVISION = "provision"
    DEPROVISION = "deprovision"
    NONE = "none"


class Direction(StrEnum):
    PULL = "pull"
    PUSH = "push"


class MappingPurpose(StrEnum):
    SYNC = "sync"
    PROPAGATION = "propagation"
    BOTH = "both"


class MatchingRule(StrEnum):
    """What to do when the other side already holds a matching object."""

    UPDATE = "update"
    LINK = "link"
    UNLINK = "unlink"
    UNASSIGN = "unassign"
    DEPROVISION = "deprovision"
    IGNORE = "ignore"


class UnmatchingRule(StrEnum):
    """What to do when no matching object exists on the other side."""

    PROVISION = "provision"
    ASSIGN = "assign"
    UNLINK = "unlink"
    IGNORE = "ignore"


class DeletionRule(StrEnum):
    """What a pull does when a linked external object is reported deleted."""

    DELETE = "delete"
    UNLINK = "unlink"
    IGNORE = "ignore"


class TraceLevel(StrEnum):
    ALL = "all"
    FAILURES = "failures"
    SUMMARY = "summary"
    NONE = "none"


class AttrType(StrEnum):
    PLAIN = "plain"
    DERIVED = "derived"
    VIRTUAL = "virtual"
    FIELD = "field"


class SchemaType(StrEnum):
    STRING = "string"
    LONG = "long"
    DOUBLE = "double"
    BOOLEAN = "boolean"
    DATE = "date"
