"""Resource definitions: provisions, policies and connector settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .enums import DeletionRule, MatchingRule, TraceLevel, UnmatchingRule

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .enums import EntityKind, SchemaType
    from .mapping import AttributeMapping


@dataclass(frozen=True, slots=True, kw_only=True)
class SyncPolicy:
    """Correlation and conflict-resolution settings for pulls."""

    correlation_rules: Mapping[EntityKind, str] = field(default_factory=dict)
    alternate_search_attributes: Mapping[EntityKind, tuple[str, ...]] = field(
        default_factory=dict
    )
    matching_rule: MatchingRule = MatchingRule.UPDATE
    unmatching_rule: UnmatchingRule = UnmatchingRule.PROVISION
    deletion_rule: DeletionRule = DeletionRule.DELETE
    ignore_case_match: bool = False
    # copy __ENABLE__ onto the internal account status on create and update
    sync_status: bool = False


@dataclass(frozen=True, slots=True, kw_only=True)
class PushPolicy:
    matching_rule: MatchingRule = MatchingRule.UPDATE
    unmatching_rule: UnmatchingRule = UnmatchingRule.PROVISION
    deprovision_out_of_scope: bool = False


@dataclass(frozen=True, slots=True, kw_only=True)
class Provision:
    object_class: str
    mapping: AttributeMapping


@dataclass(frozen=True, slots=True, kw_only=True)
class ConnectorSettings:
    type: str
    options: Mapping[str, object] = field(default_factory=dict)


@dataclass(frozen=True, slots=True, kw_only=True)
class ResourceDefinition:
    key: str
    provisions: Mapping[EntityKind, Provision]
    sync_policy: SyncPolicy = field(default_factory=SyncPolicy)
    push_policy: PushPolicy = field(default_factory=PushPolicy)
    trace_level: TraceLevel = TraceLevel.FAILURES
    attribute_schemas: Mapping[EntityKind, Mapping[str, SchemaType]] = field(
        default_factory=dict
    )
    connector: ConnectorSettings | None = None

    def provision_for(self, kind: EntityKind) -> Provision | None:
        return self.provisions.get(kind)
