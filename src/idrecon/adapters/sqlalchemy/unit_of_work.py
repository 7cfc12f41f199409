"""Engine lifecycle and the unit of work that scopes one reconciliation run."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, Literal

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from idrecon.adapters.sqlalchemy.mappings import create_all_tables
from idrecon.adapters.sqlalchemy.repositories import (
    SqlAlchemyCursorStore,
    SqlAlchemyInternalStore,
)
from idrecon.config.storage import get_database_config
from idrecon.domain.ports import ReconciliationRepositories

if TYPE_CHECKING:
    from sqlite3 import Connection as SQLiteConnection
    from types import TracebackType

    from sqlalchemy.engine import Connection, Engine
    from sqlalchemy.pool import ConnectionPoolEntry

log = getLogger(__name__)


class StartupError(RuntimeError):
    """The adapter is used before ``startup()`` or reconfigured without ``force``."""


class _EngineRegistry:
    def __init__(self) -> None:
        self.engine: Engine | None = None
        self._sessions: sessionmaker[Session] | None = None

    def bind(self, engine: Engine | None) -> None:
        if self.engine is not None and self.engine is not engine:
            self.engine.dispose()
        self.engine = engine
        self._sessions = None
        if engine is not None:
            self._sessions = sessionmaker(bind=engine, expire_on_commit=False)

    def sessions(self) -> sessionmaker[Session]:
        if self._sessions is None:
            raise StartupError(
                "SQLAlchemy adapter not initialised; call "
                "idrecon.adapters.sqlalchemy.startup() first"
            )
        return self._sessions


_registry = _EngineRegistry()


def _sqlite_connect(dbapi_connection: SQLiteConnection, _record: ConnectionPoolEntry) -> None:
    dbapi_connection.isolation_level = None


def _sqlite_begin(connection: Connection) -> None:
    connection.exec_driver_sql("BEGIN")


def configure_sqlite(engine: Engine) -> None:
    """Let SQLAlchemy emit BEGIN itself so pysqlite honours per-record savepoints.

    Register before the first connection is opened; other dialects are left alone.
    """

    if engine.dialect.name != "sqlite" or event.contains(engine, "begin", _sqlite_begin):
        return
    event.listen(engine, "connect", _sqlite_connect)
    event.listen(engine, "begin", _sqlite_begin)


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> None:
    """Bind the adapter to an engine and create any missing tables.

    Without an explicit engine one is built from ``database_uri`` or, failing
    that, from ``DATABASE_URI``/the default SQLite file.
    """

    if _registry.engine is not None and not force:
        raise StartupError("SQLAlchemy adapter already initialised; pass force=True")
    if engine is None:
        engine = create_engine(database_uri or get_database_config().uri, future=True)
    configure_sqlite(engine)
    create_all_tables(engine)
    _registry.bind(engine)
    log.info("SQLAlchemy adapter bound to %s", engine.url.render_as_string(hide_password=True))


def shutdown() -> None:
    _registry.bind(None)


def is_started() -> bool:
    return _registry.engine is not None


def configured_engine() -> Engine | None:
    return _registry.engine


class SqlAlchemyReconciliationUnitOfWork:
    """One session shared by the internal store and the cursor store of a run.

    Leaving the ``with`` block closes the session; uncommitted work is rolled
    back when the block raised.
    """

    def __init__(self) -> None:
        self._sessions = _registry.sessions()
        self._session: Session | None = None
        self._repositories: ReconciliationRepositories | None = None

    def __enter__(self) -> SqlAlchemyReconciliationUnitOfWork:
        if self._session is not None:
            raise StartupError("Unit of work session already open")
        self._session = self._sessions()
        self._repositories = ReconciliationRepositories(
            store=SqlAlchemyInternalStore(self._session),
            cursors=SqlAlchemyCursorStore(self._session),
        )
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        session = self._open_session()
        try:
            if exc_type is not None:
                session.rollback()
        finally:
            session.close()
            self._session = None
            self._repositories = None
        return False

    @property
    def repositories(self) -> ReconciliationRepositories:
        if self._repositories is None:
            raise StartupError("Unit of work session not initialised")
        return self._repositories

    def commit(self) -> None:
        self._open_session().commit()

    def rollback(self) -> None:
        self._open_session().rollback()

    def _open_session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work session not initialised")
        return self._session


if TYPE_CHECKING:
    from idrecon.domain.ports import ReconciliationUnitOfWork

    _uow_check: ReconciliationUnitOfWork = SqlAlchemyReconciliationUnitOfWork()
