from __future__ import annotations

import time
from typing import TYPE_CHECKING

import httpx
import pytest

from idrecon.adapters.scim import ScimClient
from idrecon.adapters.scim.connector import newest_timestamp
from idrecon.adapters.scim.schema import USER_SCHEMA
from idrecon.config.scim import get_scim_config
from idrecon.domain.model import (
    NAME_ATTR,
    AttributeMapping,
    Comparison,
    Condition,
    DeltaKind,
    EntityKind,
    ExternalRecord,
    MatchingRule,
    Operation,
    SyncPolicy,
    item,
)
from idrecon.domain.ports import ConnectorError, ConnectorFacade, ConnectorTimeout, SearchOptions
from idrecon.domain.reconciliation import OutcomeStatus, PullOrchestrator
from tests.adapters.scim.conftest import BASE_URL, make_client_factory
from tests.support.reconciliation import (
    RESOURCE_KEY,
    InMemoryCursorStore,
    InMemoryStore,
    StaticProvider,
    make_resource,
)

if TYPE_CHECKING:
    from idrecon.adapters.http_resilience import ResilientClient
    from idrecon.adapters.scim import ScimConnector
    from idrecon.config.http_resilience import ResilienceConfig
    from idrecon.domain.model import Delta
    from tests.adapters.scim.conftest import FakeScimServer

USER = EntityKind.USER
GROUP = EntityKind.GROUP


def _user(user_name: str, modified: str, *, resource_id: str | None = None) -> dict[str, object]:
    resource: dict[str, object] = {
        "schemas": [USER_SCHEMA],
        "userName": user_name,
        "emails": [{"value": f"{user_name}@x.com"}],
        "meta": {"resourceType": "User", "lastModified": modified},
    }
    if resource_id is not None:
        resource["id"] = resource_id
    return resource


def _collect(deltas: list[Delta]) -> list[str]:
    return [delta.uid for delta in deltas]


def test_connector_satisfies_facade(scim_connector: ScimConnector) -> None:
    assert isinstance(scim_connector, ConnectorFacade)


def test_client_sends_bearer_token_and_paging(
    scim_client: ScimClient, scim_server: FakeScimServer
) -> None:
    for name in ("a", "b", "c"):
        scim_server.add("Users", _user(name, "2024-01-01T00:00:00Z"))

    names = [resource.user_name for resource in scim_client.iter_resources("Users")]

    assert names == ["a", "b", "c"]
    assert [request.url.params["startIndex"] for request in scim_server.requests] == ["1", "3"]
    assert all(request.url.params["count"] == "2" for request in scim_server.requests)
    first = scim_server.requests[0]
    assert str(first.url).startswith(f"{BASE_URL}/Users")
    assert first.headers["Authorization"] == "Bearer secret"


def test_search_translates_filter(
    scim_connector: ScimConnector, scim_server: FakeScimServer
) -> None:
    scim_server.add("Users", _user("jdoe", "2024-01-01T00:00:00Z"))
    scim_server.add("Users", _user("asmith", "2024-01-01T00:00:00Z"))

    found = scim_connector.search(
        USER, Condition(NAME_ATTR, Comparison.EQ, "jdoe"), SearchOptions(page_size=10)
    )

    assert [record.name for record in found] == ["jdoe"]
    assert scim_server.requests[0].url.params["filter"] == 'userName eq "jdoe"'
    assert scim_server.requests[0].url.params["count"] == "10"


def test_fetch_by_id_then_by_name(
    scim_connector: ScimConnector, scim_server: FakeScimServer
) -> None:
    scim_server.add("Users", _user("jdoe", "2024-01-01T00:00:00Z", resource_id="u-1"))

    by_id = scim_connector.fetch(USER, "u-1")
    by_name = scim_connector.fetch(USER, "jdoe")
    missing = scim_connector.fetch(USER, "nobody")

    assert by_id is not None
    assert by_id.uid == "u-1"
    assert by_name is not None
    assert by_name.uid == "u-1"
    assert missing is None


def test_stream_changes_returns_newest_timestamp_as_watermark(
    scim_connector: ScimConnector, scim_server: FakeScimServer
) -> None:
    scim_server.add("Users", _user("old", "2024-01-01T00:00:00Z"))
    scim_server.add("Users", _user("new", "2024-03-01T00:00:00Z"))
    deltas: list[Delta] = []

    watermark = scim_connector.stream_changes(USER, None, deltas.append)

    assert watermark == "2024-03-01T00:00:00Z"
    assert sorted(_collect(deltas)) == sorted(scim_server.resources["Users"])
    assert all(delta.kind is DeltaKind.UPDATE for delta in deltas)
    newest = scim_server.requests[0].url.params
    assert newest["sortBy"] == "meta.lastModified"
    assert newest["sortOrder"] == "descending"
    assert newest["count"] == "1"


def test_stream_changes_filters_from_cursor_inclusively(
    scim_connector: ScimConnector, scim_server: FakeScimServer
) -> None:
    scim_server.add("Users", _user("old", "2024-01-01T00:00:00Z", resource_id="u-old"))
    scim_server.add("Users", _user("edge", "2024-02-01T00:00:00Z", resource_id="u-edge"))
    scim_server.add("Users", _user("new", "2024-03-01T00:00:00Z", resource_id="u-new"))
    deltas: list[Delta] = []

    watermark = scim_connector.stream_changes(USER, "2024-02-01T00:00:00Z", deltas.append)

    assert _collect(deltas) == ["u-edge", "u-new"]
    assert watermark == "2024-03-01T00:00:00Z"
    assert scim_server.requests[1].url.params["filter"] == (
        'meta.lastModified ge "2024-02-01T00:00:00Z"'
    )


def test_empty_endpoint_keeps_previous_cursor(scim_connector: ScimConnector) -> None:
    deltas: list[Delta] = []

    assert scim_connector.stream_changes(GROUP, "2024-01-01T00:00:00Z", deltas.append) == (
        "2024-01-01T00:00:00Z"
    )
    assert deltas == []


def test_stream_all_delivers_every_resource(
    scim_connector: ScimConnector, scim_server: FakeScimServer
) -> None:
    for name in ("a", "b", "c"):
        scim_server.add("Users", _user(name, "2024-01-01T00:00:00Z"))
    records: list[ExternalRecord] = []

    scim_connector.stream_all(USER, lambda delta: records.append(delta.subject()))

    assert [record.name for record in records] == ["a", "b", "c"]


def test_write_create_update_delete(
    scim_connector: ScimConnector, scim_server: FakeScimServer
) -> None:

    record = ExternalRecord(
        uid="jdoe", name="jdoe", attributes={"emails": ("j@x.com",), "title": ("Engineer",)}
    )

    created_id = scim_connector.write(USER, DeltaKind.CREATE, record)
    stored = scim_server.resources["Users"][created_id]
    assert stored["userName"] == "jdoe"
    assert stored["emails"] == [{"value": "j@x.com"}]

    changed = ExternalRecord(uid="jdoe", name="jdoe", attributes={"title": ("Manager",)})
    assert scim_connector.write(USER, DeltaKind.UPDATE, changed) == created_id
    assert scim_server.resources["Users"][created_id]["title"] == "Manager"
    assert scim_server.requests[-1].method == "PUT"

    assert scim_connector.write(USER, DeltaKind.DELETE, changed) == created_id
    assert scim_server.resources["Users"] == {}


def test_update_of_missing_object_fails(scim_connector: ScimConnector) -> None:

    with pytest.raises(ConnectorError, match="does not exist"):
        scim_connector.write(USER, DeltaKind.UPDATE, ExternalRecord(uid="ghost", name="ghost"))


def test_http_errors_become_connector_errors(
    scim_connector: ScimConnector, scim_server: FakeScimServer
) -> None:
    scim_server.fail_status = 500

    with pytest.raises(ConnectorError, match="HTTP 500"):
        scim_connector.search(USER, None)


def test_timeouts_become_connector_timeouts(
    scim_connector: ScimConnector, scim_server: FakeScimServer
) -> None:
    scim_server.fail_with = lambda request: httpx.ReadTimeout("slow", request=request)

    with pytest.raises(ConnectorTimeout, match="timed out"):
        scim_connector.fetch(USER, "u-1")


def test_unsupported_kind_is_rejected(scim_connector: ScimConnector) -> None:
    with pytest.raises(ConnectorError, match="no endpoint"):
        scim_connector.search(EntityKind.ANY_OBJECT, None)


def test_stream_changes_never_moves_watermark_behind_cursor(
    scim_connector: ScimConnector, scim_server: FakeScimServer
) -> None:
    scim_server.add("Users", _user("old", "2024-01-01T00:00:00Z"))
    deltas: list[Delta] = []

    watermark = scim_connector.stream_changes(USER, "2024-02-01T00:00:00Z", deltas.append)

    assert deltas == []
    assert watermark == "2024-02-01T00:00:00Z"


def test_newest_timestamp_compares_instants_not_text() -> None:
    assert newest_timestamp("2024-02-01T00:00:00+01:00", "2024-01-31T23:30:00Z") == (
        "2024-01-31T23:30:00Z"
    )
    assert newest_timestamp(None, "2024-01-01T00:00:00Z") == "2024-01-01T00:00:00Z"
    assert newest_timestamp(None, None) is None


def test_unreadable_timestamp_is_a_connector_error() -> None:
    with pytest.raises(ConnectorError, match="Unreadable SCIM timestamp"):
        newest_timestamp("yesterday", "2024-01-01T00:00:00Z")


def test_pull_deprovisioning_every_match_visits_all_pages(
    scim_connector: ScimConnector,
    scim_server: FakeScimServer,
    store: InMemoryStore,
    cursors: InMemoryCursorStore,
) -> None:
    for index in range(1, 5):
        scim_server.add("Users", _user(f"user{index}", f"2024-01-0{index}T00:00:00Z"))
        store.add(USER, f"user{index}", resources=[RESOURCE_KEY])
    resource = make_resource(
        sync_policy=SyncPolicy(matching_rule=MatchingRule.DEPROVISION),
        with_groups=False,
        user_items=AttributeMapping((item("userName", "username", account_id=True),)),
    )
    orchestrator = PullOrchestrator(
        provider=StaticProvider(resource),
        store=store,
        connector=scim_connector,
        cursors=cursors,
    )

    report = orchestrator.run(RESOURCE_KEY)

    outcomes = report.for_kind(USER)
    assert len(outcomes) == 4
    assert {outcome.operation for outcome in outcomes} == {Operation.DEPROVISION}
    assert all(outcome.status is OutcomeStatus.SUCCESS for outcome in outcomes)
    assert scim_server.resources["Users"] == {}
    cursor = cursors.load(RESOURCE_KEY, USER)
    assert cursor is not None
    assert cursor.value == "2024-01-04T00:00:00Z"


def test_search_requests_selected_attributes(
    scim_connector: ScimConnector, scim_server: FakeScimServer
) -> None:
    scim_server.add("Users", _user("jdoe", "2024-01-01T00:00:00Z"))

    scim_connector.search(USER, None, SearchOptions(attributes_to_get=("userName", "emails")))

    assert scim_server.requests[0].url.params["attributes"] == "userName,emails"


def test_client_reuses_one_http_client_until_closed(
    scim_server: FakeScimServer, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("IDP_TOKEN", "secret")
    built: list[ResilientClient] = []
    factory = make_client_factory(scim_server)

    def counting_factory(resilience: ResilienceConfig) -> ResilientClient:
        client = factory(resilience)
        built.append(client)
        return client

    config = get_scim_config(name="idp", base_url=f"{BASE_URL}/", token_env="IDP_TOKEN")
    with ScimClient(config=config, client_factory=counting_factory) as client:
        for _ in range(3):
            client.get_resource("Users", "missing")

    assert len(built) == 1
    assert len(scim_server.requests) == 3


def test_rate_limit_spaces_out_requests(
    scim_server: FakeScimServer, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("IDP_TOKEN", "secret")
    config = get_scim_config(
        name="idp", base_url=f"{BASE_URL}/", token_env="IDP_TOKEN", max_calls_per_second=1
    )

    with ScimClient(config=config, client_factory=make_client_factory(scim_server)) as client:
        started = time.monotonic()
        for _ in range(4):
            client.get_resource("Users", "missing")
        elapsed = time.monotonic() - started

    assert len(scim_server.requests) == 4
    assert elapsed >= 2.5
