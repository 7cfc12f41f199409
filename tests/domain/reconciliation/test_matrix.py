from __future__ import annotations

import itertools

import pytest

from idrecon.domain.model import (
    DeletionRule,
    Delta,
    Direction,
    ExternalRecord,
    MatchingRule,
    Operation,
    PushPolicy,
    SyncPolicy,
    UnmatchingRule,
)
from idrecon.domain.reconciliation import CorrelationResult, decide, decide_pull, decide_push

RECORD = ExternalRecord(uid="jdoe", name="jdoe")
UPSERT = Delta.upsert(RECORD)
DELETION = Delta.deletion("jdoe")


def _result(*candidates: str, linked: tuple[str, ...] = ()) -> CorrelationResult:
    return CorrelationResult(candidates=candidates, linked=frozenset(linked))


@pytest.mark.parametrize(
    ("rule", "expected"),
    [
        (UnmatchingRule.PROVISION, Operation.CREATE),
        (UnmatchingRule.ASSIGN, Operation.ASSIGN),
        (UnmatchingRule.UNLINK, Operation.NONE),
        (UnmatchingRule.IGNORE, Operation.NONE),
    ],
)
def test_pull_unmatched_follows_unmatching_rule(
    rule: UnmatchingRule, expected: Operation
) -> None:
    decision = decide_pull(_result(), UPSERT, SyncPolicy(unmatching_rule=rule))

    assert decision.operation is expected
    assert decision.target_id is None
    assert decision.ignored is (rule is UnmatchingRule.IGNORE)


@pytest.mark.parametrize(
    ("rule", "expected"),
    [
        (MatchingRule.UPDATE, Operation.UPDATE),
        (MatchingRule.LINK, Operation.LINK),
        (MatchingRule.UNLINK, Operation.UNLINK),
        (MatchingRule.UNASSIGN, Operation.UNASSIGN),
        (MatchingRule.DEPROVISION, Operation.DEPROVISION),
        (MatchingRule.IGNORE, Operation.NONE),
    ],
)
def test_pull_matched_unlinked_follows_matching_rule(
    rule: MatchingRule, expected: Operation
) -> None:
    decision = decide_pull(_result("u1"), UPSERT, SyncPolicy(matching_rule=rule))

    assert decision.operation is expected
    assert decision.target_id == "u1"


def test_pull_matched_linked_updates() -> None:
    decision = decide_pull(_result("u1", linked=("u1",)), UPSERT, SyncPolicy())

    assert decision.operation is Operation.UPDATE
    assert not decision.ambiguous


@pytest.mark.parametrize(
    ("rule", "expected"),
    [
        (DeletionRule.DELETE, Operation.DELETE),
        (DeletionRule.UNLINK, Operation.UNLINK),
        (DeletionRule.IGNORE, Operation.NONE),
    ],
)
def test_pull_deletion_of_linked_entity_follows_deletion_rule(
    rule: DeletionRule, expected: Operation
) -> None:
    decision = decide_pull(
        _result("u1", linked=("u1",)), DELETION, SyncPolicy(deletion_rule=rule)
    )

    assert decision.operation is expected


def test_pull_deletion_without_match_or_link_is_a_no_op() -> None:
    assert decide_pull(_result(), DELETION, SyncPolicy()).operation is Operation.NONE
    assert decide_pull(_result("u1"), DELETION, SyncPolicy()).operation is Operation.NONE


def test_pull_ambiguous_match_takes_first_and_warns() -> None:
    decision = decide_pull(_result("u1", "u2", linked=("u2",)), UPSERT, SyncPolicy())

    assert decision.ambiguous
    assert decision.target_id == "u1"
    assert decision.operation is Operation.UPDATE
    assert decision.warning is not None
    assert "u1" in decision.warning
    assert "u2" in decision.warning


def test_dry_run_flag_is_carried_on_the_decision() -> None:
    assert decide_pull(_result(), UPSERT, SyncPolicy(), dry_run=True).dry_run
    assert decide_push(external=None, linked=False, policy=PushPolicy(), dry_run=True).dry_run


def test_matrix_is_complete() -> None:
    candidate_sets = [_result(), _result("u1"), _result("u1", linked=("u1",)), _result("u1", "u2")]
    for result, delta, matching, unmatching, deletion in itertools.product(
        candidate_sets,
        (UPSERT, DELETION),
        MatchingRule,
        UnmatchingRule,
        DeletionRule,
    ):
        policy = SyncPolicy(
            matching_rule=matching, unmatching_rule=unmatching, deletion_rule=deletion
        )
        assert isinstance(decide_pull(result, delta, policy).operation, Operation)

    for external, linked, matching, unmatching, in_scope, deprovision in itertools.product(
        (None, RECORD),
        (False, True),
        MatchingRule,
        UnmatchingRule,
        (False, True),
        (False, True),
    ):
        policy = PushPolicy(
            matching_rule=matching,
            unmatching_rule=unmatching,
            deprovision_out_of_scope=deprovision,
        )
        decision = decide_push(external=external, linked=linked, policy=policy, in_scope=in_scope)
        assert isinstance(decision.operation, Operation)


@pytest.mark.parametrize(
    ("rule", "expected"),
    [
        (UnmatchingRule.PROVISION, Operation.PROVISION),
        (UnmatchingRule.ASSIGN, Operation.ASSIGN),
        (UnmatchingRule.UNLINK, Operation.UNLINK),
        (UnmatchingRule.IGNORE, Operation.NONE),
    ],
)
def test_push_absent_externally_follows_unmatching_rule(
    rule: UnmatchingRule, expected: Operation
) -> None:
    decision = decide_push(
        external=None, linked=False, policy=PushPolicy(unmatching_rule=rule), target_id="u1"
    )

    assert decision.operation is expected
    assert decision.target_id == "u1"


def test_push_present_and_linked_updates() -> None:
    decision = decide_push(external=RECORD, linked=True, policy=PushPolicy())

    assert decision.operation is Operation.UPDATE


def test_push_present_but_unlinked_follows_matching_rule() -> None:
    decision = decide_push(
        external=RECORD, linked=False, policy=PushPolicy(matching_rule=MatchingRule.LINK)
    )

    assert decision.operation is Operation.LINK


def test_push_out_of_scope_is_untouched_without_deprovision_policy() -> None:
    untouched = decide_push(external=RECORD, linked=True, policy=PushPolicy(), in_scope=False)
    deprovisioned = decide_push(
        external=RECORD,
        linked=True,
        policy=PushPolicy(deprovision_out_of_scope=True),
        in_scope=False,
    )
    already_gone = decide_push(
        external=None,
        linked=True,
        policy=PushPolicy(deprovision_out_of_scope=True),
        in_scope=False,
    )

    assert untouched.operation is Operation.NONE
    assert deprovisioned.operation is Operation.DEPROVISION
    assert already_gone.operation is Operation.NONE


def test_decide_dispatches_on_direction() -> None:
    pulled = decide(_result("u1", linked=("u1",)), UPSERT, SyncPolicy(), Direction.PULL)
    pushed = decide(_result("u1", linked=("u1",)), None, PushPolicy(), Direction.PUSH)

    assert pulled.operation is Operation.UPDATE
    assert pushed.operation is Operation.PROVISION
    assert pushed.target_id == "u1"

    with pytest.raises(ValueError, match="external delta"):
        decide(_result(), None, SyncPolicy(), Direction.PULL)
