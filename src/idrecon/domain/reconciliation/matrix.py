"""Conflict resolution matrix.

Pure functions mapping (external presence, correlation outcome, link state,
policy) to a single :class:`~idrecon.domain.model.Operation`. No I/O happens
here; dispatchers carry the decision out.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Final

from idrecon.domain.model import (
    DeletionRule,
    DeltaKind,
    Direction,
    MatchingRule,
    Operation,
    UnmatchingRule,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from idrecon.domain.model import Delta, ExternalRecord, PushPolicy, SyncPolicy

    from .correlation import CorrelationResult


@dataclass(frozen=True, slots=True, kw_only=True)
class Decision:
    operation: Operation
    target_id: str | None = None
    ambiguous: bool = False
    warning: str | None = None
    dry_run: bool = False
    ignored: bool = False


_PULL_UNMATCHED: Final[Mapping[UnmatchingRule, Operation]] = MappingProxyType(
    {
        UnmatchingRule.PROVISION: Operation.CREATE,
        UnmatchingRule.ASSIGN: Operation.ASSIGN,
        UnmatchingRule.UNLINK: Operation.NONE,
        UnmatchingRule.IGNORE: Operation.NONE,
    }
)

_PUSH_UNMATCHED: Final[Mapping[UnmatchingRule, Operation]] = MappingProxyType(
    {
        UnmatchingRule.PROVISION: Operation.PROVISION,
        UnmatchingRule.ASSIGN: Operation.ASSIGN,
        UnmatchingRule.UNLINK: Operation.UNLINK,
        UnmatchingRule.IGNORE: Operation.NONE,
    }
)

_MATCHED_UNLINKED: Final[Mapping[MatchingRule, Operation]] = MappingProxyType(
    {
        MatchingRule.UPDATE: Operation.UPDATE,
        MatchingRule.LINK: Operation.LINK,
        MatchingRule.UNLINK: Operation.UNLINK,
        MatchingRule.UNASSIGN: Operation.UNASSIGN,
        MatchingRule.DEPROVISION: Operation.DEPROVISION,
        MatchingRule.IGNORE: Operation.NONE,
    }
)

_DELETED_LINKED: Final[Mapping[DeletionRule, Operation]] = MappingProxyType(
    {
        DeletionRule.DELETE: Operation.DELETE,
        DeletionRule.UNLINK: Operation.UNLINK,
        DeletionRule.IGNORE: Operation.NONE,
    }
)


def _matched_linked(rule: MatchingRule) -> Operation:
    return Operation.NONE if rule is MatchingRule.IGNORE else Operation.UPDATE


def decide_pull(
    result: CorrelationResult,
    delta: Delta,
    policy: SyncPolicy,
    *,
    dry_run: bool = False,
) -> Decision:
    target = result.first
    warning: str | None = None
    if result.ambiguous:
        warning = (
            f"{len(result.candidates)} entities match {delta.uid}: "
            f"{', '.join(result.candidates)}; using {target}"
        )

    if target is None:
        if delta.kind is DeltaKind.DELETE:
            return Decision(operation=Operation.NONE, dry_run=dry_run)
        return Decision(
            operation=_PULL_UNMATCHED[policy.unmatching_rule],
            ignored=policy.unmatching_rule is UnmatchingRule.IGNORE,
            dry_run=dry_run,
        )

    linked = result.is_linked(target)
    ignored = False
    if delta.kind is DeltaKind.DELETE:
        operation = _DELETED_LINKED[policy.deletion_rule] if linked else Operation.NONE
        ignored = linked and policy.deletion_rule is DeletionRule.IGNORE
    else:
        operation = (
            _matched_linked(policy.matching_rule)
            if linked
            else _MATCHED_UNLINKED[policy.matching_rule]
        )
        ignored = policy.matching_rule is MatchingRule.IGNORE

    return Decision(
        operation=operation,
        target_id=target,
        ambiguous=result.ambiguous,
        warning=warning,
        dry_run=dry_run,
        ignored=ignored,
    )


def decide_push(
    *,
    external: ExternalRecord | None,
    linked: bool,
    policy: PushPolicy,
    target_id: str | None = None,
    in_scope: bool = True,
    dry_run: bool = False,
) -> Decision:
    ignored = False
    if not in_scope:
        operation = (
            Operation.DEPROVISION
            if policy.deprovision_out_of_scope and external is not None
            else Operation.NONE
        )
    elif external is None:
        operation = _PUSH_UNMATCHED[policy.unmatching_rule]
        ignored = policy.unmatching_rule is UnmatchingRule.IGNORE
    else:
        operation = (
            _matched_linked(policy.matching_rule)
            if linked
            else _MATCHED_UNLINKED[policy.matching_rule]
        )
        ignored = policy.matching_rule is MatchingRule.IGNORE
    return Decision(operation=operation, target_id=target_id, dry_run=dry_run, ignored=ignored)


def decide(
    result: CorrelationResult,
    delta: Delta | None,
    policy: SyncPolicy | PushPolicy,
    direction: Direction,
    *,
    in_scope: bool = True,
    dry_run: bool = False,
) -> Decision:
    """Single entry point over both directions.

    For pulls ``delta`` is the external change and ``result`` the correlation of
    its record. For pushes ``result`` holds the internal entity itself and
    ``delta`` the external object found for it (``None`` when absent).
    """

    if direction is Direction.PULL:
        if delta is None:
            raise ValueError("A pull decision needs the external delta")
        return decide_pull(result, delta, policy, dry_run=dry_run)  # type: ignore[arg-type]

    target = result.first
    return decide_push(
        external=delta.record if delta is not None else None,
        linked=target is not None and result.is_linked(target),
        policy=policy,  # type: ignore[arg-type]
        target_id=target,
        in_scope=in_scope,
        dry_run=dry_run,
    )
