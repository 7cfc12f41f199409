"""Identity reconciliation engine.

Leaves first: mapping resolution, correlation, the conflict resolution matrix,
dispatchers, then the pull and push orchestrators and the run report.
"""

from __future__ import annotations

from .correlation import CorrelationEngine, CorrelationPath, CorrelationResult, validate_policy
from .dispatch import DRY_RUN_ID, InboundDispatcher, OutboundDispatcher
from .errors import (
    CorrelationConfigError,
    DispatchError,
    EngineError,
    IllegalTransitionError,
    ReconciliationError,
)
from .mapping import MappingResolver
from .matrix import Decision, decide, decide_pull, decide_push
from .pull import PullOrchestrator, PullState, PullStateMachine
from .push import DEFAULT_PAGE_SIZE, PushOrchestrator
from .report import Outcome, OutcomeCategory, OutcomeStatus, ReportBuilder, RunReport
from .rules import CORRELATION_RULES, get_rule

__all__ = [
    "CORRELATION_RULES",
    "DEFAULT_PAGE_SIZE",
    "DRY_RUN_ID",
    "CorrelationConfigError",
    "CorrelationEngine",
    "CorrelationPath",
    "CorrelationResult",
    "Decision",
    "DispatchError",
    "EngineError",
    "IllegalTransitionError",
    "InboundDispatcher",
    "MappingResolver",
    "OutboundDispatcher",
    "Outcome",
    "OutcomeCategory",
    "OutcomeStatus",
    "PullOrchestrator",
    "PullState",
    "PullStateMachine",
    "PushOrchestrator",
    "ReconciliationError",
    "ReportBuilder",
    "RunReport",
    "decide",
    "decide_pull",
    "decide_push",
    "get_rule",
    "validate_policy",
]
