"""SCIM 2.0 HTTP client."""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

import httpx

from idrecon.adapters.http_resilience import ResilientClient

from .schema import ScimListResponse, ScimResource

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine, Iterator
    from types import TracebackType

    from idrecon.config.http_resilience import ResilienceConfig
    from idrecon.config.scim import ScimConfig

log = getLogger(__name__)


class ScimAPIError(RuntimeError):
    """Raised when a SCIM service returns an unexpected response."""


class ScimClient:
    """Low-level HTTP client for a SCIM service provider.

    Calls are synchronous; they all run on one private event loop so the
    connection pool and the rate limiter are shared for the client's lifetime.
    Call ``close()`` (or use the client as a context manager) when done.
    """

    def __init__(
        self,
        *,
        config: ScimConfig,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
    ) -> None:
        self._config = config
        self._resilience = config.resilience
        self._client_factory = client_factory or ResilientClient
        self._runner: asyncio.Runner | None = None
        self._http: ResilientClient | None = None

    def __enter__(self) -> ScimClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def page_size(self) -> int:
        return self._config.page_size

    def close(self) -> None:
        if self._runner is None:
            return
        try:
            if self._http is not None:
                self._runner.run(self._http.aclose())
        finally:
            self._http = None
            self._runner.close()
            self._runner = None

    def list_resources(
        self,
        endpoint: str,
        *,
        filter: str | None = None,  # noqa: A002
        start_index: int = 1,
        count: int | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
        attributes: tuple[str, ...] = (),
    ) -> ScimListResponse:
        params: dict[str, str] = {
            "startIndex": str(start_index),
            "count": str(count if count is not None else self.page_size),
        }
        if filter:
            params["filter"] = filter
        if sort_by:
            params["sortBy"] = sort_by
        if sort_order:
            params["sortOrder"] = sort_order
        if attributes:
            params["attributes"] = ",".join(attributes)
        return self._run(self._list_async(endpoint, params))

    def iter_resources(
        self,
        endpoint: str,
        *,
        filter: str | None = None,  # noqa: A002
        page_size: int | None = None,
        attributes: tuple[str, ...] = (),
    ) -> Iterator[ScimResource]:
        """Walk every page of a list query using ``startIndex``/``count`` paging.

        Offsets shift when the caller deletes resources between pages; use
        ``list_all`` when the consumer writes to the endpoint.
        """

        count = page_size or self.page_size
        start = 1
        while True:
            page = self.list_resources(
                endpoint, filter=filter, start_index=start, count=count, attributes=attributes
            )
            returned = len(page.resources)
            log.debug(
                "SCIM %s page at %s: %s of %s resources",
                endpoint,
                start,
                returned,
                page.total_results,
            )
            yield from page.resources
            if returned == 0 or start + returned > page.total_results:
                return
            start += returned

    def list_all(
        self,
        endpoint: str,
        *,
        filter: str | None = None,  # noqa: A002
        page_size: int | None = None,
        attributes: tuple[str, ...] = (),
    ) -> list[ScimResource]:
        """Every resource matching the query, read before any caller sees one."""

        return list(
            self.iter_resources(
                endpoint, filter=filter, page_size=page_size, attributes=attributes
            )
        )

    def get_resource(self, endpoint: str, resource_id: str) -> ScimResource | None:
        return self._run(self._get_async(endpoint, resource_id))

    def create_resource(self, endpoint: str, payload: dict[str, object]) -> ScimResource:
        return self._run(self._write_async("POST", endpoint, payload))

    def replace_resource(
        self,
        endpoint: str,
        resource_id: str,
        payload: dict[str, object],
    ) -> ScimResource:
        return self._run(self._write_async("PUT", f"{endpoint}/{resource_id}", payload))

    def delete_resource(self, endpoint: str, resource_id: str) -> bool:
        """Delete a resource; ``False`` when it was already gone."""

        return self._run(self._delete_async(endpoint, resource_id))

    def _run[T](self, coro: Coroutine[object, object, T]) -> T:
        if self._runner is None:
            self._runner = asyncio.Runner()
        return self._runner.run(coro)

    def _client(self) -> ResilientClient:
        if self._http is None:
            self._http = self._client_factory(self._resilience)
        return self._http

    async def _list_async(self, endpoint: str, params: dict[str, str]) -> ScimListResponse:
        response = await self._client().get(endpoint, params=params)
        response.raise_for_status()
        return ScimListResponse.model_validate(self._json(response))

    async def _get_async(self, endpoint: str, resource_id: str) -> ScimResource | None:
        response = await self._client().get(f"{endpoint}/{resource_id}")
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        response.raise_for_status()
        return ScimResource.model_validate(self._json(response))

    async def _write_async(
        self,
        method: str,
        path: str,
        payload: dict[str, object],
    ) -> ScimResource:
        response = await self._client().request(method, path, json=payload)
        response.raise_for_status()
        return ScimResource.model_validate(self._json(response))

    async def _delete_async(self, endpoint: str, resource_id: str) -> bool:
        response = await self._client().delete(f"{endpoint}/{resource_id}")
        if response.status_code == httpx.codes.NOT_FOUND:
            return False
        response.raise_for_status()
        return True

    def _json(self, response: httpx.Response) -> dict[str, object]:
        if self._resilience.base_url is None:
            raise ScimAPIError("Missing SCIM base_url in resilience configuration")
        payload = response.json()
        if not isinstance(payload, dict):
            raise ScimAPIError("Unexpected SCIM response payload")
        return payload
