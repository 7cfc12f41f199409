"""Correlation engine: find the internal entities an external record refers to.

Resolution follows a strict priority: a configured correlation rule, then the
alternate search attributes, then the mapping's account-id item. Every path is
read-only against the internal store.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from idrecon.domain.model import AttrType, Comparison, Condition, Conjunction, parse_value

from .errors import CorrelationConfigError
from .rules import get_rule

if TYPE_CHECKING:
    from idrecon.domain.model import (
        EntityKind,
        ExternalRecord,
        InternalEntity,
        Scalar,
        SyncPolicy,
    )
    from idrecon.domain.ports import AuthorizationContext, InternalStore

    from .mapping import MappingResolver

log = getLogger(__name__)


class CorrelationPath(StrEnum):
    RULE = "rule"
    ALTERNATE = "alternate"
    ACCOUNT_ID = "account_id"


@dataclass(frozen=True, slots=True, kw_only=True)
class CorrelationResult:
    """Candidates in ascending id order plus the subset already linked to the resource."""

    candidates: tuple[str, ...] = ()
    linked: frozenset[str] = frozenset()
    path: CorrelationPath = CorrelationPath.ACCOUNT_ID

    @property
    def matched(self) -> bool:
        return bool(self.candidates)

    @property
    def ambiguous(self) -> bool:
        return len(self.candidates) > 1

    @property
    def first(self) -> str | None:
        return self.candidates[0] if self.candidates else None

    def is_linked(self, entity_id: str) -> bool:
        return entity_id in self.linked


def validate_policy(policy: SyncPolicy, resolver: MappingResolver, kind: EntityKind) -> None:
    """Fail fast on rule keys and alternate attributes the resource cannot honour."""

    rule_key = policy.correlation_rules.get(kind)
    if rule_key is not None:
        get_rule(rule_key)
    for attribute in policy.alternate_search_attributes.get(kind, ()):
        resolver.mapping_for_internal(attribute)


class CorrelationEngine:
    def __init__(
        self,
        store: InternalStore,
        *,
        resource: str,
        context: AuthorizationContext,
    ) -> None:
        self.store = store
        self.resource = resource
        self.context = context

    def correlate(
        self,
        record: ExternalRecord,
        policy: SyncPolicy,
        kind: EntityKind,
        resolver: MappingResolver,
        *,
        account_id_only: bool = False,
    ) -> CorrelationResult:
        rule_key = policy.correlation_rules.get(kind)
        alternate = policy.alternate_search_attributes.get(kind, ())

        if rule_key is not None and not account_id_only:
            path = CorrelationPath.RULE
            predicate = get_rule(rule_key)(record, resolver)
            entities = self.store.search(kind, predicate, self.context)
        elif alternate and not account_id_only:
            path = CorrelationPath.ALTERNATE
            entities = self._by_alternate_attributes(record, policy, kind, resolver, alternate)
        else:
            path = CorrelationPath.ACCOUNT_ID
            entities = self._by_account_id(record, policy, kind, resolver)

        unique = {entity.id: entity for entity in entities}
        candidates = tuple(sorted(unique))
        linked = frozenset(
            entity_id for entity_id, entity in unique.items() if entity.is_linked(self.resource)
        )
        log.debug(
            "Correlated %s %s via %s: candidates=%s linked=%s",
            kind,
            record.uid,
            path,
            candidates,
            sorted(linked),
        )
        return CorrelationResult(candidates=candidates, linked=linked, path=path)

    def _by_alternate_attributes(
        self,
        record: ExternalRecord,
        policy: SyncPolicy,
        kind: EntityKind,
        resolver: MappingResolver,
        attributes: tuple[str, ...],
    ) -> list[InternalEntity]:
        comparison = Comparison.IEQ if policy.ignore_case_match else Comparison.EQ
        conditions: list[Condition] = []
        for attribute in attributes:
            entry = resolver.mapping_for_internal(attribute)
            values = record.get(entry.ext_attr)
            if values is None:
                raise CorrelationConfigError(
                    f"{kind} {record.uid} has no {entry.ext_attr!r} to correlate on {attribute!r}"
                )
            present = [value for value in values if value is not None]
            ref = str(entry.int_attr)
            if not present:
                conditions.append(Condition(ref, Comparison.IS_NULL))
                continue
            value: Scalar = present[0]
            if isinstance(value, str) and entry.int_attr.type is AttrType.PLAIN:
                value = parse_value(value, resolver.kind_spec.schema_type(entry.int_attr.name))
            conditions.append(Condition(ref, comparison, value))
        return self.store.search(kind, Conjunction(tuple(conditions)), self.context)

    def _by_account_id(
        self,
        record: ExternalRecord,
        policy: SyncPolicy,
        kind: EntityKind,
        resolver: MappingResolver,
    ) -> list[InternalEntity]:
        ref = resolver.account_id_item.int_attr
        account_id = resolver.resolve_account_id(record)

        match ref.type:
            case AttrType.FIELD if ref.name == "id":
                entity = self.store.find_by_id(kind, account_id, self.context)
                return [entity] if entity is not None else []
            case AttrType.FIELD if ref.is_name:
                if policy.ignore_case_match:
                    condition = Condition(str(ref), Comparison.IEQ, account_id)
                    return self.store.search(kind, condition, self.context)
                return self.store.find_by_name(kind, account_id, self.context)
            case AttrType.PLAIN:
                value = parse_value(account_id, resolver.kind_spec.schema_type(ref.name))
                if policy.ignore_case_match:
                    condition = Condition(str(ref), Comparison.IEQ, value)
                    return self.store.search(kind, condition, self.context)
                return self.store.find_by_attribute(kind, ref.name, value, self.context)
            case AttrType.DERIVED:
                return self.store.find_by_derived_attribute(
                    kind, ref.name, account_id, self.context
                )
            case _:
                raise CorrelationConfigError(f"{ref} cannot be used to correlate by account id")
