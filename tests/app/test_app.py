from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

import pytest

from idrecon.adapters.scim import ScimConnector
from idrecon.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyReconciliationUnitOfWork,
    is_started,
    shutdown,
)
from idrecon.app import build_connector, pull_resource, push_resource
from idrecon.config.errors import ConfigurationError, ResourceNotFoundError
from idrecon.domain.model import ConnectorSettings, EntityKind, Operation, TraceLevel
from idrecon.domain.ports import AuthorizationContext
from idrecon.domain.reconciliation import EngineError
from tests.support.reconciliation import (
    RESOURCE_KEY,
    InMemoryConnector,
    InMemoryCursorStore,
    InMemoryStore,
    InMemoryUnitOfWork,
    StaticProvider,
    make_resource,
    user_record,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

    from idrecon.domain.model import ResourceDefinition

USER = EntityKind.USER


@pytest.fixture
def uow(store: InMemoryStore, cursors: InMemoryCursorStore) -> InMemoryUnitOfWork:
    return InMemoryUnitOfWork(store, cursors)


@pytest.fixture
def provider() -> StaticProvider:
    return StaticProvider(make_resource())


@pytest.fixture
def reset_unit_of_work_state() -> Iterator[None]:
    shutdown()
    yield
    shutdown()


def _with_connector(
    options: dict[str, object], connector_type: str = "scim"
) -> ResourceDefinition:
    return replace(
        make_resource(), connector=ConnectorSettings(type=connector_type, options=options)
    )


def test_pull_resource_commits_and_returns_report(
    provider: StaticProvider,
    connector: InMemoryConnector,
    uow: InMemoryUnitOfWork,
    store: InMemoryStore,
) -> None:
    connector.put(USER, user_record("jdoe", email="j@x.com"))

    report = pull_resource(
        RESOURCE_KEY,
        provider=provider,
        connector=connector,
        unit_of_work_factory=lambda: uow,
    )

    assert report.operations(USER) == [Operation.CREATE]
    assert store.named(USER, "jdoe").plain["email"] == ("j@x.com",)
    assert uow.commits == 1
    assert uow.rollbacks == 0


def test_failed_pull_still_commits_processed_records(
    provider: StaticProvider,
    connector: InMemoryConnector,
    uow: InMemoryUnitOfWork,
    store: InMemoryStore,
) -> None:
    connector.put(USER, user_record("a"))
    connector.put(USER, user_record("b"))
    connector.fail_after = 1

    with pytest.raises(EngineError):
        pull_resource(
            RESOURCE_KEY,
            provider=provider,
            connector=connector,
            unit_of_work_factory=lambda: uow,
        )

    assert [entity.name for entity in store.all(USER)] == ["a"]
    assert uow.commits == 1
    assert uow.rollbacks == 1


class _ClosingConnector(InMemoryConnector):
    def __init__(self) -> None:
        super().__init__()
        self.closed = 0

    def close(self) -> None:
        self.closed += 1


def test_connector_built_for_a_run_is_closed(
    provider: StaticProvider, uow: InMemoryUnitOfWork, monkeypatch: pytest.MonkeyPatch
) -> None:
    built = _ClosingConnector()
    built.put(USER, user_record("jdoe"))
    monkeypatch.setattr("idrecon.app.build_connector", lambda resource: built)

    report = pull_resource(RESOURCE_KEY, provider=provider, unit_of_work_factory=lambda: uow)

    assert report.operations(USER) == [Operation.CREATE]
    assert built.closed == 1


def test_push_resource_uses_configured_page_size(
    provider: StaticProvider,
    connector: InMemoryConnector,
    uow: InMemoryUnitOfWork,
    store: InMemoryStore,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("IDRECON_PUSH_PAGE_SIZE", "1")
    for name in ("a", "b", "c"):
        store.add(USER, name)

    report = push_resource(
        RESOURCE_KEY,
        kinds=[USER],
        provider=provider,
        connector=connector,
        unit_of_work_factory=lambda: uow,
    )

    assert report.operations(USER) == [Operation.PROVISION] * 3
    assert sorted(connector.records(USER)) == ["a", "b", "c"]
    assert uow.commits == 1


def test_push_dry_run_reports_configured_trace_level(
    connector: InMemoryConnector,
    uow: InMemoryUnitOfWork,
    store: InMemoryStore,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("IDRECON_TRACE_LEVEL", "summary")
    store.add(USER, "jdoe")
    provider = StaticProvider(make_resource(trace_level=TraceLevel.SUMMARY))

    report = push_resource(
        RESOURCE_KEY,
        dry_run=True,
        provider=provider,
        connector=connector,
        unit_of_work_factory=lambda: uow,
    )

    assert report.dry_run
    assert report.trace_level is TraceLevel.SUMMARY
    assert connector.writes == []


def test_unknown_resource_fails_before_running(
    provider: StaticProvider, uow: InMemoryUnitOfWork
) -> None:
    with pytest.raises(ResourceNotFoundError):
        pull_resource("missing", provider=provider, unit_of_work_factory=lambda: uow)

    assert uow.commits == 0


@pytest.mark.usefixtures("reset_unit_of_work_state")
def test_pull_resource_starts_sqlalchemy_store_on_demand(
    provider: StaticProvider, connector: InMemoryConnector
) -> None:
    connector.put(USER, user_record("jdoe", email="j@x.com"))

    pull_resource(RESOURCE_KEY, provider=provider, connector=connector)

    assert is_started()
    context = AuthorizationContext.unrestricted()
    with SqlAlchemyReconciliationUnitOfWork() as uow:
        [jdoe] = uow.repositories.store.find_by_name(USER, "jdoe", context)
        assert jdoe.plain["email"] == ("j@x.com",)
        assert jdoe.is_linked(RESOURCE_KEY)
        cursor = uow.repositories.cursors.load(RESOURCE_KEY, USER)
        assert cursor is not None
        assert cursor.value == "1"


def test_build_connector_creates_scim_connector(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DIRECTORY_TOKEN", "secret")
    resource = _with_connector(
        {
            "base_url": "https://idp.example.com/scim/v2",
            "token_env": "DIRECTORY_TOKEN",
            "page_size": 20,
        }
    )

    connector = build_connector(resource)

    assert isinstance(connector, ScimConnector)
    assert connector.page_size == 20
    assert connector.client.page_size == 20


@pytest.mark.parametrize(
    ("options", "connector_type", "message"),
    [
        ({"token_env": "X"}, "scim", "needs base_url and token_env"),
        ({"base_url": "https://idp", "token_env": "X", "page_size": "20"}, "scim", "page_size"),
        ({}, "ldap", "Unsupported connector type 'ldap'"),
    ],
)
def test_build_connector_rejects_bad_settings(
    options: dict[str, object], connector_type: str, message: str
) -> None:
    with pytest.raises(ConfigurationError, match=message):
        build_connector(_with_connector(options, connector_type))


def test_build_connector_requires_connector_section() -> None:
    with pytest.raises(ConfigurationError, match="declares no connector"):
        build_connector(make_resource())
