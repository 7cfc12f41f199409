"""Pull orchestrator: import external changes into the internal store.

A run walks a small state machine::

    INIT -> SCANNING -> (CORRELATE -> DECIDE -> DISPATCH -> RECORD)* -> FINALIZING -> DONE

A failing record is recorded and the machine goes back to SCANNING; its
store writes run inside a savepoint and are rolled back. Only INIT,
SCANNING and FINALIZING may end in FAILED, which raises
:class:`EngineError` with the partial report. The connector watermark is
captured before each scan and persisted only once every kind was scanned.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from functools import partial
from logging import getLogger
from types import MappingProxyType
from typing import TYPE_CHECKING, Final, NoReturn

from idrecon.config.errors import ConfigurationError
from idrecon.domain.model import (
    NAME_ATTR,
    PULL_ORDER,
    Comparison,
    Condition,
    Direction,
    EntityKind,
    Operation,
    SyncCursor,
    TraceLevel,
    kind_spec,
)
from idrecon.domain.ports import AuthorizationContext, ConnectorException, StoreError

from .correlation import CorrelationEngine, validate_policy
from .dispatch import InboundDispatcher
from .errors import EngineError, IllegalTransitionError, ReconciliationError
from .mapping import MappingResolver
from .matrix import decide_pull
from .report import Outcome, OutcomeStatus, ReportBuilder, RunReport

if TYPE_CHECKING:
    from collections.abc import Mapping

    from idrecon.domain.model import Delta, ExternalRecord, SyncPolicy
    from idrecon.domain.ports import (
        ConnectorFacade,
        CursorStore,
        InternalStore,
        ResourceProvider,
    )

    from .matrix import Decision

log = getLogger(__name__)


class PullState(StrEnum):
    INIT = "init"
    SCANNING = "scanning"
    CORRELATE = "correlate"
    DECIDE = "decide"
    DISPATCH = "dispatch"
    RECORD = "record"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: Final[Mapping[PullState, frozenset[PullState]]] = MappingProxyType(
    {
        PullState.INIT: frozenset({PullState.SCANNING, PullState.FAILED}),
        PullState.SCANNING: frozenset(
            {PullState.CORRELATE, PullState.FINALIZING, PullState.FAILED}
        ),
        PullState.CORRELATE: frozenset({PullState.DECIDE, PullState.RECORD}),
        PullState.DECIDE: frozenset({PullState.DISPATCH, PullState.RECORD}),
        PullState.DISPATCH: frozenset({PullState.RECORD}),
        PullState.RECORD: frozenset({PullState.SCANNING}),
        PullState.FINALIZING: frozenset({PullState.DONE, PullState.FAILED}),
        PullState.DONE: frozenset(),
        PullState.FAILED: frozenset(),
    }
)


@dataclass(slots=True)
class PullStateMachine:
    state: PullState = PullState.INIT

    def move(self, target: PullState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise IllegalTransitionError(f"Illegal pull transition {self.state} -> {target}")
        self.state = target


@dataclass(slots=True)
class _KindPlan:
    kind: EntityKind
    resolver: MappingResolver
    policy: SyncPolicy
    cursor: SyncCursor | None = None
    captured: str | None = None
    scanned: int = 0
    by_name: dict[str, str] = field(default_factory=dict)


class PullOrchestrator:
    """Runs pulls for one resource at a time; see the module docstring for the lifecycle."""

    def __init__(
        self,
        *,
        provider: ResourceProvider,
        store: InternalStore,
        connector: ConnectorFacade,
        cursors: CursorStore,
        context: AuthorizationContext | None = None,
        default_trace_level: TraceLevel = TraceLevel.FAILURES,
    ) -> None:
        self.provider = provider
        self.store = store
        self.connector = connector
        self.cursors = cursors
        self.context = context or AuthorizationContext.unrestricted()
        self.default_trace_level = default_trace_level

    def run(
        self,
        resource_key: str,
        *,
        full_reconciliation: bool = False,
        dry_run: bool = False,
    ) -> RunReport:
        run = _PullRun(
            self,
            resource_key,
            full_reconciliation=full_reconciliation,
            dry_run=dry_run,
        )
        return run.execute()


class _PullRun:
    def __init__(
        self,
        orchestrator: PullOrchestrator,
        resource_key: str,
        *,
        full_reconciliation: bool,
        dry_run: bool,
    ) -> None:
        self.orchestrator = orchestrator
        self.resource_key = resource_key
        self.full_reconciliation = full_reconciliation
        self.dry_run = dry_run
        self.machine = PullStateMachine()
        self.context = orchestrator.context.fork()
        self.builder = ReportBuilder(
            resource=resource_key,
            direction=Direction.PULL,
            dry_run=dry_run,
            trace_level=orchestrator.default_trace_level,
        )
        self.plans: list[_KindPlan] = []
        self.pending_owners: list[tuple[str, str]] = []
        self.correlation = CorrelationEngine(
            orchestrator.store, resource=resource_key, context=self.context
        )
        self.dispatcher = InboundDispatcher(
            store=orchestrator.store,
            connector=orchestrator.connector,
            resource=resource_key,
            context=self.context,
        )

    def execute(self) -> RunReport:
        log.info(
            "Starting pull: resource=%s, full_reconciliation=%s, dry_run=%s",
            self.resource_key,
            self.full_reconciliation,
            self.dry_run,
        )
        self._initialise()
        self._scan()
        cursors = self._finalise()
        report = self.builder.finalize(cursors=cursors)
        log.info(
            "Finished pull: resource=%s, outcomes=%s, failures=%s, cursors=%s",
            self.resource_key,
            len(report.outcomes),
            len(report.failures),
            [cursor.value for cursor in cursors],
        )
        return report

    # INIT -------------------------------------------------------------------

    def _initialise(self) -> None:
        orchestrator = self.orchestrator
        try:
            resource = orchestrator.provider.get_resource(self.resource_key)
        except (ConfigurationError, OSError) as exc:
            self._fail(f"Resource {self.resource_key} is unavailable: {exc}", exc)
        self.builder.trace_level = resource.trace_level

        for kind in PULL_ORDER:
            provision = resource.provision_for(kind)
            if provision is None:
                continue
            resolver = MappingResolver(
                provision.mapping, kind_spec(kind, resource.attribute_schemas.get(kind))
            )
            try:
                validate_policy(resource.sync_policy, resolver, kind)
            except ConfigurationError as exc:
                self._fail(f"Invalid correlation settings for {kind}: {exc}", exc)
            self.plans.append(
                _KindPlan(kind=kind, resolver=resolver, policy=resource.sync_policy)
            )

        if not self.full_reconciliation:
            for plan in self.plans:
                try:
                    plan.cursor = orchestrator.cursors.load(self.resource_key, plan.kind)
                except StoreError as exc:
                    self._fail(f"Cannot read the {plan.kind} cursor: {exc}", exc)

        self.machine.move(PullState.SCANNING)

    # SCANNING ---------------------------------------------------------------

    def _scan(self) -> None:
        connector = self.orchestrator.connector
        for plan in self.plans:
            handler = partial(self._handle, plan)
            try:
                if self.full_reconciliation:
                    connector.stream_all(plan.kind, handler)
                else:
                    previous = plan.cursor.value if plan.cursor is not None else None
                    plan.captured = connector.stream_changes(plan.kind, previous, handler)
            except ConnectorException as exc:
                self._fail(f"Scanning {plan.kind} on {self.resource_key} failed: {exc}", exc)
            log.info("Scanned %s %s deltas", plan.scanned, plan.kind)

        if self.pending_owners and not self.dry_run:
            self._resolve_owners()

    def _handle(self, plan: _KindPlan, delta: Delta) -> None:
        policy = plan.policy
        self.machine.move(PullState.CORRELATE)
        plan.scanned += 1
        record = delta.subject()
        decision: Decision | None = None
        try:
            result = self.correlation.correlate(
                record,
                policy,
                plan.kind,
                plan.resolver,
                account_id_only=delta.record is None,
            )
            self.machine.move(PullState.DECIDE)
            decision = decide_pull(result, delta, policy, dry_run=self.dry_run)
            if decision.warning:
                log.warning("Ambiguous correlation for %s: %s", plan.kind, decision.warning)
            log.debug("Decided %s for %s %s", decision.operation, plan.kind, delta.uid)
            self.machine.move(PullState.DISPATCH)
            with self.orchestrator.store.savepoint():
                outcome = self.dispatcher.apply(
                    plan.kind,
                    delta,
                    decision,
                    plan.resolver,
                    sync_status=policy.sync_status,
                )
        except Exception as exc:  # noqa: BLE001
            log.error("Failed to pull %s %s", plan.kind, delta.uid, exc_info=True)
            outcome = Outcome(
                kind=plan.kind,
                uid=delta.uid,
                name=record.name,
                operation=decision.operation if decision is not None else Operation.NONE,
                status=OutcomeStatus.FAILURE,
                message=str(exc) or type(exc).__name__,
                internal_id=decision.target_id if decision is not None else None,
                dry_run=self.dry_run,
            )

        self.machine.move(PullState.RECORD)
        self.builder.record(outcome)
        self._remember(plan, record, outcome)
        self.machine.move(PullState.SCANNING)

    def _remember(self, plan: _KindPlan, record: ExternalRecord, outcome: Outcome) -> None:
        if outcome.failed or not outcome.internal_id or outcome.operation is Operation.DELETE:
            return
        name = outcome.name or plan.resolver.resolve_account_id(record)
        plan.by_name[name] = outcome.internal_id
        if plan.kind is EntityKind.GROUP:
            owner = plan.resolver.owner_reference(record)
            if owner is not None:
                self.pending_owners.append((outcome.internal_id, owner))

    def _resolve_owners(self) -> None:
        for group_id, owner_name in self.pending_owners:
            try:
                owner_id = self._find_owner(owner_name)
                if owner_id is None:
                    log.warning("Owner %s of group %s not found", owner_name, group_id)
                    continue
                with self.orchestrator.store.savepoint():
                    self.orchestrator.store.set_owner(
                        EntityKind.GROUP, group_id, owner_id, self.context
                    )
            except (ReconciliationError, ConnectorException, StoreError) as exc:
                log.warning("Could not set owner %s on group %s: %s", owner_name, group_id, exc)

    def _find_owner(self, owner_name: str) -> str | None:
        plans = {plan.kind: plan for plan in self.plans}
        for kind in (EntityKind.USER, EntityKind.GROUP):
            plan = plans.get(kind)
            if plan is not None and owner_name in plan.by_name:
                return plan.by_name[owner_name]

        for kind in (EntityKind.USER, EntityKind.GROUP):
            plan = plans.get(kind)
            if plan is None:
                continue
            matches = self.orchestrator.connector.search(
                kind, Condition(NAME_ATTR, Comparison.EQ, owner_name)
            )
            if not matches:
                continue
            if len(matches) > 1:
                log.warning(
                    "%s %s objects named %s, using the first", len(matches), kind, owner_name
                )
            result = self.correlation.correlate(
                matches[0], plan.policy, kind, plan.resolver
            )
            if result.ambiguous:
                log.warning(
                    "Owner %s correlates to %s, using the first", owner_name, result.candidates
                )
            if result.first is not None:
                return result.first
        return None

    # FINALIZING -------------------------------------------------------------

    def _finalise(self) -> list[SyncCursor]:
        self.machine.move(PullState.FINALIZING)
        saved: list[SyncCursor] = []
        if not self.dry_run and not self.full_reconciliation:
            for plan in self.plans:
                if plan.captured is None:
                    continue
                cursor = SyncCursor(resource=self.resource_key, kind=plan.kind, value=plan.captured)
                try:
                    self.orchestrator.cursors.save(cursor)
                except StoreError as exc:
                    self._fail(f"Cannot persist the {plan.kind} cursor: {exc}", exc, saved)
                saved.append(cursor)
        self.machine.move(PullState.DONE)
        return saved

    def _fail(
        self,
        message: str,
        cause: BaseException,
        cursors: list[SyncCursor] | None = None,
    ) -> NoReturn:
        self.machine.move(PullState.FAILED)
        report = self.builder.finalize(error=message, cursors=cursors or ())
        log.error("Pull of %s failed: %s", self.resource_key, message)
        raise EngineError(message, report=report) from cause
