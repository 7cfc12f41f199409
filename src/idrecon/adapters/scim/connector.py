"""Connector facade over a SCIM service provider."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING, Final

import httpx
from pydantic import ValidationError

from idrecon.domain.model import (
    NAME_ATTR,
    UID_ATTR,
    Comparison,
    Delta,
    DeltaKind,
    EntityKind,
    conditions_of,
    encode_value,
)
from idrecon.domain.ports import ConnectorError, ConnectorTimeout

from .client import ScimAPIError
from .translator import NAME_ATTRIBUTE, record_to_payload, resource_to_record

if TYPE_CHECKING:
    from collections.abc import Iterator

    from idrecon.domain.model import ExternalRecord, SearchPredicate
    from idrecon.domain.ports import DeltaCallback, SearchOptions

    from .client import ScimClient

log = getLogger(__name__)

ENDPOINTS: Final[dict[EntityKind, str]] = {
    EntityKind.USER: "Users",
    EntityKind.GROUP: "Groups",
}
LAST_MODIFIED: Final[str] = "meta.lastModified"


@contextmanager
def _translated_errors(action: str) -> Iterator[None]:
    try:
        yield
    except httpx.TimeoutException as exc:
        raise ConnectorTimeout(f"{action} timed out") from exc
    except httpx.HTTPStatusError as exc:
        raise ConnectorError(f"{action} failed: HTTP {exc.response.status_code}") from exc
    except (httpx.HTTPError, ScimAPIError, ValidationError) as exc:
        raise ConnectorError(f"{action} failed: {exc}") from exc


def _instant(timestamp: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(timestamp)
    except ValueError:
        raise ConnectorError(f"Unreadable SCIM timestamp {timestamp!r}") from None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def newest_timestamp(*timestamps: str | None) -> str | None:
    """The latest of the given ISO-8601 timestamps, ignoring missing ones."""

    present = [timestamp for timestamp in timestamps if timestamp]
    return max(present, key=_instant, default=None)


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def to_scim_filter(kind: EntityKind, predicate: SearchPredicate | None) -> str | None:
    """Render a search predicate as a SCIM filter expression.

    SCIM ``eq`` follows the attribute's ``caseExact`` flag, so ``IEQ`` renders
    the same as ``EQ``.
    """

    if predicate is None:
        return None
    clauses: list[str] = []
    for condition in conditions_of(predicate):
        attribute = condition.attribute
        if attribute == NAME_ATTR:
            attribute = NAME_ATTRIBUTE[kind]
        elif attribute == UID_ATTR:
            attribute = "id"
        if condition.comparison is Comparison.IS_NULL or condition.value is None:
            clauses.append(f"not ({attribute} pr)")
        else:
            clauses.append(f"{attribute} eq {_quote(encode_value(condition.value))}")
    return " and ".join(clauses)


class ScimConnector:
    """Reads and writes users and groups through a SCIM 2.0 endpoint.

    Change detection relies on ``meta.lastModified``: the watermark is the
    newest timestamp at the start of the scan and changes are fetched with
    ``ge`` so boundary entries are re-delivered rather than lost. SCIM has no
    tombstones, so no deletion deltas are produced.

    Streams read the full result set before the first callback, since
    callbacks may delete resources and shift ``startIndex`` paging.
    """

    def __init__(self, *, client: ScimClient, page_size: int | None = None) -> None:
        self.client = client
        self.page_size = page_size

    def close(self) -> None:
        self.client.close()

    def search(
        self,
        kind: EntityKind,
        filter: SearchPredicate | None,  # noqa: A002
        options: SearchOptions | None = None,
    ) -> list[ExternalRecord]:
        endpoint = self._endpoint(kind)
        page_size = options.page_size if options and options.page_size else self.page_size
        attributes = options.attributes_to_get if options else ()
        expression = to_scim_filter(kind, filter)
        with _translated_errors(f"Searching {endpoint}"):
            return [
                resource_to_record(resource)
                for resource in self.client.list_all(
                    endpoint, filter=expression, page_size=page_size, attributes=attributes
                )
            ]

    def fetch(self, kind: EntityKind, uid: str) -> ExternalRecord | None:
        endpoint = self._endpoint(kind)
        with _translated_errors(f"Fetching {endpoint}/{uid}"):
            resource = self.client.get_resource(endpoint, uid)
            if resource is not None:
                return resource_to_record(resource)
            expression = f"{NAME_ATTRIBUTE[kind]} eq {_quote(uid)}"
            found = self.client.list_resources(endpoint, filter=expression, count=1)
        if not found.resources:
            return None
        return resource_to_record(found.resources[0])

    def stream_changes(
        self,
        kind: EntityKind,
        cursor: str | None,
        callback: DeltaCallback,
    ) -> str | None:
        endpoint = self._endpoint(kind)
        watermark = self._latest_modified(endpoint)
        expression = f"{LAST_MODIFIED} ge {_quote(cursor)}" if cursor else None
        with _translated_errors(f"Reading changes from {endpoint}"):
            changed = self.client.list_all(endpoint, filter=expression, page_size=self.page_size)
        for resource in changed:
            callback(Delta.upsert(resource_to_record(resource)))
        log.info("Delivered %s changes from %s since %s", len(changed), endpoint, cursor)
        return newest_timestamp(watermark, cursor)

    def stream_all(self, kind: EntityKind, callback: DeltaCallback) -> None:
        endpoint = self._endpoint(kind)
        with _translated_errors(f"Reading {endpoint}"):
            resources = self.client.list_all(endpoint, page_size=self.page_size)
        for resource in resources:
            callback(Delta.upsert(resource_to_record(resource)))

    def write(self, kind: EntityKind, operation: DeltaKind, record: ExternalRecord) -> str:
        endpoint = self._endpoint(kind)
        with _translated_errors(f"Writing {operation} to {endpoint}"):
            if operation is DeltaKind.CREATE:
                created = self.client.create_resource(endpoint, record_to_payload(kind, record))
                log.info("Created %s %s as %s", endpoint, record.uid, created.id)
                return created.id

            existing = self.fetch(kind, record.uid)
            if existing is None:
                raise ConnectorError(f"{endpoint} {record.uid} does not exist")
            if operation is DeltaKind.UPDATE:
                payload = record_to_payload(kind, record)
                self.client.replace_resource(endpoint, existing.uid, payload)
                log.info("Replaced %s %s", endpoint, existing.uid)
            else:
                self.client.delete_resource(endpoint, existing.uid)
                log.info("Deleted %s %s", endpoint, existing.uid)
            return existing.uid

    def _latest_modified(self, endpoint: str) -> str | None:
        with _translated_errors(f"Reading {endpoint} watermark"):
            newest = self.client.list_resources(
                endpoint,
                count=1,
                sort_by=LAST_MODIFIED,
                sort_order="descending",
            )
        if not newest.resources or newest.resources[0].meta is None:
            return None
        return newest.resources[0].meta.last_modified

    @staticmethod
    def _endpoint(kind: EntityKind) -> str:
        try:
            return ENDPOINTS[kind]
        except KeyError:
            raise ConnectorError(f"SCIM has no endpoint for {kind}") from None
