"""Error taxonomy of the reconciliation engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

from idrecon.config.errors import ConfigurationError

if TYPE_CHECKING:
    from .report import RunReport


class ReconciliationError(RuntimeError):
    """Base class for engine failures."""


class CorrelationConfigError(ReconciliationError, ConfigurationError):
    """Correlation settings reference unknown rules or unmapped attributes."""


class DispatchError(ReconciliationError):
    """A decided operation cannot be carried out for the current record."""


class IllegalTransitionError(ReconciliationError):
    """An orchestrator state machine was driven through a transition it does not allow."""


class EngineError(ReconciliationError):
    """Run-level failure; carries the partial report built so far."""

    def __init__(self, message: str, *, report: RunReport | None = None) -> None:
        super().__init__(message)
        self.report = report
