"""Transaction boundary around the stores touched by one run."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, Self, runtime_checkable

if TYPE_CHECKING:
    from types import TracebackType

    from idrecon.domain.ports.provider import CursorStore
    from idrecon.domain.ports.store import InternalStore


@dataclass(slots=True)
class ReconciliationRepositories:
    store: InternalStore
    cursors: CursorStore


@runtime_checkable
class ReconciliationUnitOfWork(Protocol):
    """Context manager owning the internal store and cursor store of a run.

    Nothing is persisted until ``commit``; leaving the block on an exception
    discards uncommitted work.
    """

    @property
    def repositories(self) -> ReconciliationRepositories: ...

    def __enter__(self) -> Self: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...
