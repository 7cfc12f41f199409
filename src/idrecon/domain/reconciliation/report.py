"""Run outcomes and the report aggregated from them."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, Final

from idrecon.domain.model import KIND_SPECS, PULL_ORDER, Operation, TraceLevel

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from idrecon.domain.model import Direction, EntityKind, SyncCursor

DRY_RUN_BANNER: Final[str] = "==> Dry run only, no modifications were made <=="


class OutcomeStatus(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"
    IGNORED = "ignored"


class OutcomeCategory(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    NO_OPERATION = "no operation"


_CATEGORY_BY_OPERATION: Final[Mapping[Operation, OutcomeCategory]] = MappingProxyType(
    {
        Operation.CREATE: OutcomeCategory.CREATED,
        Operation.PROVISION: OutcomeCategory.CREATED,
        Operation.ASSIGN: OutcomeCategory.CREATED,
        Operation.UPDATE: OutcomeCategory.UPDATED,
        Operation.LINK: OutcomeCategory.UPDATED,
        Operation.UNLINK: OutcomeCategory.UPDATED,
        Operation.DELETE: OutcomeCategory.DELETED,
        Operation.DEPROVISION: OutcomeCategory.DELETED,
        Operation.UNASSIGN: OutcomeCategory.DELETED,
        Operation.NONE: OutcomeCategory.NO_OPERATION,
    }
)

_FAILURE_VERBS: Final[Mapping[OutcomeCategory, str]] = MappingProxyType(
    {
        OutcomeCategory.CREATED: "create",
        OutcomeCategory.UPDATED: "update",
        OutcomeCategory.DELETED: "delete",
        OutcomeCategory.NO_OPERATION: "process",
    }
)


@dataclass(frozen=True, slots=True, kw_only=True)
class Outcome:
    """Result of processing one record or entity."""

    kind: EntityKind
    uid: str
    operation: Operation
    status: OutcomeStatus = OutcomeStatus.SUCCESS
    name: str | None = None
    message: str | None = None
    internal_id: str | None = None
    changes: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    dry_run: bool = False

    @property
    def failed(self) -> bool:
        return self.status is OutcomeStatus.FAILURE

    @property
    def category(self) -> OutcomeCategory:
        return _CATEGORY_BY_OPERATION[self.operation]

    def describe(self) -> str:
        parts = [f"{self.uid} [{self.operation}]"]
        if self.name and self.name != self.uid:
            parts.append(f"name={self.name}")
        if self.internal_id:
            parts.append(f"id={self.internal_id}")
        if self.changes:
            parts.append(f"changes={','.join(self.changes)}")
        if self.message:
            parts.append(f"message={self.message}")
        return " ".join(parts)


@dataclass(frozen=True, slots=True, kw_only=True)
class RunReport:
    resource: str
    direction: Direction
    started_at: datetime
    finished_at: datetime
    dry_run: bool
    trace_level: TraceLevel
    outcomes: tuple[Outcome, ...] = ()
    cursors: tuple[SyncCursor, ...] = ()
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def failures(self) -> tuple[Outcome, ...]:
        return tuple(outcome for outcome in self.outcomes if outcome.failed)

    def for_kind(self, kind: EntityKind) -> tuple[Outcome, ...]:
        return tuple(outcome for outcome in self.outcomes if outcome.kind is kind)

    def operations(self, kind: EntityKind | None = None) -> list[Operation]:
        outcomes = self.outcomes if kind is None else self.for_kind(kind)
        return [outcome.operation for outcome in outcomes]

    def count(
        self,
        kind: EntityKind,
        category: OutcomeCategory,
        status: OutcomeStatus = OutcomeStatus.SUCCESS,
    ) -> int:
        return sum(
            1
            for outcome in self.for_kind(kind)
            if outcome.category is category and outcome.status is status
        )

    def render(self, kinds: Iterable[EntityKind] | None = None) -> str | None:
        """Human-readable text at the report's trace level; ``None`` at ``NONE``.

        ``kinds`` defaults to every kind with at least one outcome.
        """

        if self.trace_level is TraceLevel.NONE:
            return None

        wanted = set(kinds) if kinds is not None else {outcome.kind for outcome in self.outcomes}
        selected = [kind for kind in PULL_ORDER if kind in wanted]

        lines: list[str] = []
        if self.dry_run:
            lines.extend([DRY_RUN_BANNER, ""])
        lines.extend(self._summary_line(kind) for kind in selected)
        if self.error:
            lines.append(f"Run failed: {self.error}")

        if self.trace_level in {TraceLevel.FAILURES, TraceLevel.ALL}:
            for kind in selected:
                label = KIND_SPECS[kind].label
                for category, verb in _FAILURE_VERBS.items():
                    failed = self._select(kind, lambda o, c=category: o.failed and o.category is c)
                    if failed:
                        lines.append(f"{label} failed to {verb}: {failed}")

        if self.trace_level is TraceLevel.ALL:
            for kind in selected:
                label = KIND_SPECS[kind].label
                for category in OutcomeCategory:
                    done = self._select(
                        kind,
                        lambda o, c=category: o.status is OutcomeStatus.SUCCESS and o.category is c,
                    )
                    if done:
                        lines.append(f"{label} {category}: {done}")
                ignored = self._select(kind, lambda o: o.status is OutcomeStatus.IGNORED)
                if ignored:
                    lines.append(f"{label} ignored: {ignored}")

        return "\n".join(lines)

    def _summary_line(self, kind: EntityKind) -> str:
        segments = [
            f"[created/failures]: {self.count(kind, OutcomeCategory.CREATED)}"
            f"/{self.count(kind, OutcomeCategory.CREATED, OutcomeStatus.FAILURE)}",
            f"[updated/failures]: {self.count(kind, OutcomeCategory.UPDATED)}"
            f"/{self.count(kind, OutcomeCategory.UPDATED, OutcomeStatus.FAILURE)}",
            f"[deleted/failures]: {self.count(kind, OutcomeCategory.DELETED)}"
            f"/{self.count(kind, OutcomeCategory.DELETED, OutcomeStatus.FAILURE)}",
            f"[no operation/ignored]: {self.count(kind, OutcomeCategory.NO_OPERATION)}"
            f"/{sum(1 for o in self.for_kind(kind) if o.status is OutcomeStatus.IGNORED)}",
        ]
        return f"{KIND_SPECS[kind].label} " + " ".join(segments)

    def _select(self, kind: EntityKind, predicate: Callable[[Outcome], bool]) -> str:
        selected = [outcome.describe() for outcome in self.for_kind(kind) if predicate(outcome)]
        return "; ".join(selected)


@dataclass(slots=True)
class ReportBuilder:
    """Accumulates outcomes for one run; every outcome is kept regardless of trace level."""

    resource: str
    direction: Direction
    dry_run: bool = False
    trace_level: TraceLevel = TraceLevel.FAILURES
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    _outcomes: list[Outcome] = field(default_factory=list)

    def record(self, outcome: Outcome) -> None:
        self._outcomes.append(outcome)

    @property
    def outcomes(self) -> tuple[Outcome, ...]:
        return tuple(self._outcomes)

    def finalize(
        self,
        *,
        error: str | None = None,
        cursors: Iterable[SyncCursor] = (),
    ) -> RunReport:
        return RunReport(
            resource=self.resource,
            direction=self.direction,
            started_at=self.started_at,
            finished_at=datetime.now(UTC),
            dry_run=self.dry_run,
            trace_level=self.trace_level,
            outcomes=tuple(self._outcomes),
            cursors=tuple(cursors),
            error=error,
        )
