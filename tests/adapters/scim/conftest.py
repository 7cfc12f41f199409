"""In-process SCIM service provider for adapter tests."""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Iterator
from typing import Final

import httpx
import pytest

from idrecon.adapters.http_resilience import ResilientClient
from idrecon.adapters.scim import ScimClient, ScimConnector
from idrecon.adapters.scim.schema import LIST_RESPONSE_SCHEMA
from idrecon.config.http_resilience import ResilienceConfig
from idrecon.config.scim import get_scim_config

BASE_URL: Final[str] = "https://idp.example.com/scim/v2"
_FILTER = re.compile(r'^(?P<attr>\S+) (?P<op>eq|ge) "(?P<value>.*)"$')

type ScimPayload = dict[str, object]


def _lookup(resource: ScimPayload, path: str) -> object:
    current: object = resource
    for segment in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(segment)
    return current


class FakeScimServer:
    """Minimal Users/Groups endpoints supporting eq/ge filters, sorting and paging."""

    def __init__(self) -> None:
        self.resources: dict[str, dict[str, ScimPayload]] = {"Users": {}, "Groups": {}}
        self.requests: list[httpx.Request] = []
        self.fail_status: int | None = None
        self.fail_with: Callable[[httpx.Request], Exception] | None = None
        self._next_id = 0

    def add(self, endpoint: str, resource: ScimPayload) -> ScimPayload:
        stored = dict(resource)
        if "id" not in stored:
            self._next_id += 1
            stored["id"] = f"id-{self._next_id}"
        self.resources[endpoint][str(stored["id"])] = stored
        return stored

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with(request)
        if self.fail_status is not None:
            return httpx.Response(self.fail_status, json={"detail": "failure"})

        endpoint, _, resource_id = request.url.path.removeprefix("/scim/v2/").partition("/")
        resources = self.resources[endpoint]
        match request.method:
            case "GET" if resource_id:
                if resource_id not in resources:
                    return httpx.Response(404, json={"detail": "not found"})
                return httpx.Response(200, json=resources[resource_id])
            case "GET":
                return httpx.Response(200, json=self._list(resources, request.url.params))
            case "POST":
                created = self.add(endpoint, json.loads(request.content))
                return httpx.Response(201, json=created)
            case "PUT":
                if resource_id not in resources:
                    return httpx.Response(404, json={"detail": "not found"})
                replaced = {**json.loads(request.content), "id": resource_id}
                resources[resource_id] = replaced
                return httpx.Response(200, json=replaced)
            case "DELETE":
                if resources.pop(resource_id, None) is None:
                    return httpx.Response(404, json={"detail": "not found"})
                return httpx.Response(204)
            case _:
                return httpx.Response(405)

    def _list(self, resources: dict[str, ScimPayload], params: httpx.QueryParams) -> ScimPayload:
        selected = sorted(resources.values(), key=lambda resource: str(resource["id"]))
        expression = params.get("filter")
        if expression:
            match = _FILTER.match(expression)
            assert match is not None, expression
            attr, op, value = match["attr"], match["op"], match["value"]
            if op == "eq":
                selected = [r for r in selected if _lookup(r, attr) == value]
            else:
                selected = [r for r in selected if str(_lookup(r, attr) or "") >= value]
        if params.get("sortBy"):
            selected.sort(
                key=lambda r: str(_lookup(r, params["sortBy"]) or ""),
                reverse=params.get("sortOrder") == "descending",
            )
        start = int(params.get("startIndex", "1"))
        count = int(params.get("count", "100"))
        page = selected[start - 1 : start - 1 + count]
        return {
            "schemas": [LIST_RESPONSE_SCHEMA],
            "totalResults": len(selected),
            "itemsPerPage": len(page),
            "startIndex": start,
            "Resources": page,
        }


def make_client_factory(
    handler: Callable[[httpx.Request], httpx.Response],
) -> Callable[[ResilienceConfig], ResilientClient]:
    async def async_handler(request: httpx.Request) -> httpx.Response:
        return handler(request)

    def factory(resilience: ResilienceConfig) -> ResilientClient:
        client = ResilientClient(resilience)
        client._client = httpx.AsyncClient(  # noqa: SLF001  # type: ignore[reportPrivateUsage]
            base_url=resilience.base_url or "",
            headers=dict(resilience.default_headers or {}),
            transport=httpx.MockTransport(async_handler),
        )
        return client

    return factory


@pytest.fixture
def scim_server() -> FakeScimServer:
    return FakeScimServer()


@pytest.fixture
def scim_client(
    scim_server: FakeScimServer, monkeypatch: pytest.MonkeyPatch
) -> Iterator[ScimClient]:
    monkeypatch.setenv("IDP_TOKEN", "secret")
    config = get_scim_config(
        name="idp", base_url=f"{BASE_URL}/", token_env="IDP_TOKEN", page_size=2
    )
    with ScimClient(config=config, client_factory=make_client_factory(scim_server)) as client:
        yield client


@pytest.fixture
def scim_connector(scim_client: ScimClient) -> ScimConnector:
    return ScimConnector(client=scim_client)
