"""Built-in correlation rules.

Resources select a rule by key; the table is closed and never loads code.
"""

from __future__ import annotations

from collections.abc import Callable
from types import MappingProxyType
from typing import TYPE_CHECKING, Final

from idrecon.domain.model import Comparison, Condition

from .errors import CorrelationConfigError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from idrecon.domain.model import ExternalRecord, SearchPredicate

    from .mapping import MappingResolver

type CorrelationRule = Callable[[ExternalRecord, MappingResolver], SearchPredicate]


def _record_name(record: ExternalRecord, resolver: MappingResolver) -> str:
    return record.name or resolver.resolve_account_id(record)


def name_rule(record: ExternalRecord, resolver: MappingResolver) -> SearchPredicate:
    return Condition(resolver.kind_spec.name_field, Comparison.EQ, _record_name(record, resolver))


def name_ignore_case_rule(record: ExternalRecord, resolver: MappingResolver) -> SearchPredicate:
    return Condition(
        resolver.kind_spec.name_field, Comparison.IEQ, _record_name(record, resolver)
    )


def account_id_ignore_case_rule(
    record: ExternalRecord, resolver: MappingResolver
) -> SearchPredicate:
    return Condition(
        str(resolver.account_id_item.int_attr),
        Comparison.IEQ,
        resolver.resolve_account_id(record),
    )


CORRELATION_RULES: Final[Mapping[str, CorrelationRule]] = MappingProxyType(
    {
        "name": name_rule,
        "name-ignore-case": name_ignore_case_rule,
        "account-id-ignore-case": account_id_ignore_case_rule,
    }
)


def get_rule(key: str) -> CorrelationRule:
    rule = CORRELATION_RULES.get(key)
    if rule is None:
        known = ", ".join(sorted(CORRELATION_RULES))
        raise CorrelationConfigError(f"Unknown correlation rule {key!r} (known: {known})")
    return rule
