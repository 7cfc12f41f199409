"""Connector facade: uniform access to an external identity system."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from idrecon.domain.model import (
        Delta,
        DeltaKind,
        EntityKind,
        ExternalRecord,
        SearchPredicate,
    )


class ConnectorException(RuntimeError):
    """Base class for failures reported by a connector."""


class ConnectorError(ConnectorException):
    """Non-retryable connector failure; fatal to the current record."""


class ConnectorTimeout(ConnectorException):
    """The external system did not answer in time; retryable at run granularity."""


type DeltaCallback = Callable[[Delta], None]


@dataclass(frozen=True, slots=True, kw_only=True)
class SearchOptions:
    page_size: int | None = None
    attributes_to_get: tuple[str, ...] = ()


@runtime_checkable
class ConnectorFacade(Protocol):
    """Contract the engine needs from a connector; how it performs I/O is its own business."""

    def search(
        self,
        kind: EntityKind,
        filter: SearchPredicate | None,  # noqa: A002
        options: SearchOptions | None = None,
    ) -> list[ExternalRecord]: ...

    def fetch(self, kind: EntityKind, uid: str) -> ExternalRecord | None: ...

    def stream_changes(
        self,
        kind: EntityKind,
        cursor: str | None,
        callback: DeltaCallback,
    ) -> str | None:
        """Deliver every change since ``cursor`` and return the new watermark.

        The returned watermark must be captured before the first delta is
        delivered, so a change racing the scan is re-delivered next run
        rather than lost. ``None`` means the connector has no watermark to offer.
        """
        ...

    def stream_all(self, kind: EntityKind, callback: DeltaCallback) -> None: ...

    def write(self, kind: EntityKind, operation: DeltaKind, record: ExternalRecord) -> str: ...
