"""Public domain model surface."""

from __future__ import annotations

from idrecon.domain.model.entity import InternalEntity
from idrecon.domain.model.enums import (
    AttrType,
    DeletionRule,
    DeltaKind,
    Direction,
    EntityKind,
    MappingPurpose,
    MatchingRule,
    Operation,
    SchemaType,
    TraceLevel,
    UnmatchingRule,
)
from idrecon.domain.model.kinds import KIND_SPECS, PULL_ORDER, KindSpec, kind_spec, parse_value
from idrecon.domain.model.mapping import (
    AttributeMapping,
    IntAttrRef,
    MappingError,
    MappingItem,
    item,
)
from idrecon.domain.model.policy import (
    ConnectorSettings,
    Provision,
    PushPolicy,
    ResourceDefinition,
    SyncPolicy,
)
from idrecon.domain.model.predicates import (
    Comparison,
    Condition,
    Conjunction,
    SearchPredicate,
    conditions_of,
)
from idrecon.domain.model.records import (
    ENABLE_ATTR,
    NAME_ATTR,
    UID_ATTR,
    AttributeValues,
    Delta,
    ExternalRecord,
    Scalar,
    SyncCursor,
    encode_value,
)

__all__ = [  # noqa: RUF022
    # enums
    "AttrType",
    "DeletionRule",
    "DeltaKind",
    "Direction",
    "EntityKind",
    "MappingPurpose",
    "MatchingRule",
    "Operation",
    "SchemaType",
    "TraceLevel",
    "UnmatchingRule",
    # records
    "ENABLE_ATTR",
    "NAME_ATTR",
    "UID_ATTR",
    "AttributeValues",
    "Delta",
    "ExternalRecord",
    "Scalar",
    "SyncCursor",
    "encode_value",
    # mapping
    "AttributeMapping",
    "IntAttrRef",
    "MappingError",
    "MappingItem",
    "item",
    # kinds
    "KIND_SPECS",
    "PULL_ORDER",
    "KindSpec",
    "kind_spec",
    "parse_value",
    # policy
    "ConnectorSettings",
    "Provision",
    "PushPolicy",
    "ResourceDefinition",
    "SyncPolicy",
    # predicates
    "Comparison",
    "Condition",
    "Conjunction",
    "SearchPredicate",
    "conditions_of",
    # entity
    "InternalEntity",
]
