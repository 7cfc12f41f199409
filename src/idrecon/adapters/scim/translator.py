"""Translate between SCIM resources and flat external records.

Complex attributes are flattened with dotted keys (``name.givenName``);
multi-valued attributes keep only their ``value`` members (``emails``).
SCIM ``active`` is also reported as the account status ``__ENABLE__``.
Extension schemas keep their URN as the first path segment.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Final

from idrecon.domain.model import ENABLE_ATTR, EntityKind, ExternalRecord

from .schema import GROUP_SCHEMA, USER_SCHEMA

if TYPE_CHECKING:
    from idrecon.domain.model import Scalar

    from .schema import ScimResource

MULTI_VALUED: Final[frozenset[str]] = frozenset(
    {"emails", "phoneNumbers", "ims", "photos", "addresses", "groups", "members", "roles"}
)
_SKIPPED: Final[frozenset[str]] = frozenset({"id", "schemas"})
_READ_ONLY_PREFIXES: Final[tuple[str, ...]] = ("meta.", "groups")

NAME_ATTRIBUTE: Final[dict[EntityKind, str]] = {
    EntityKind.USER: "userName",
    EntityKind.GROUP: "displayName",
}
SCHEMA_BY_KIND: Final[dict[EntityKind, str]] = {
    EntityKind.USER: USER_SCHEMA,
    EntityKind.GROUP: GROUP_SCHEMA,
}


def _flatten(prefix: str, value: object, out: dict[str, tuple[Scalar | None, ...]]) -> None:
    if isinstance(value, dict):
        for key, nested in value.items():
            _flatten(f"{prefix}.{key}" if prefix else str(key), nested, out)
    elif isinstance(value, list):
        values: list[Scalar | None] = []
        for entry in value:
            if isinstance(entry, dict):
                values.append(entry.get("value"))
            else:
                values.append(entry)  # type: ignore[arg-type]
        out[prefix] = tuple(values)
    else:
        out[prefix] = (value,)  # type: ignore[assignment]


def resource_to_record(resource: ScimResource) -> ExternalRecord:
    payload = resource.model_dump(by_alias=True, exclude_none=True)
    attributes: dict[str, tuple[Scalar | None, ...]] = {}
    for key, value in payload.items():
        if key in _SKIPPED:
            continue
        _flatten(key, value, attributes)
    if resource.active is not None:
        attributes[ENABLE_ATTR] = (resource.active,)
    return ExternalRecord(
        uid=resource.id,
        name=resource.user_name or resource.display_name,
        attributes=attributes,
    )


def split_path(key: str) -> list[str]:
    """Split a dotted key, keeping extension URNs (which contain dots) intact."""

    if key.startswith("urn:"):
        urn, _, rest = key.rpartition(":")
        head, *tail = rest.split(".")
        return [f"{urn}:{head}", *tail]
    return key.split(".")


def _json_value(value: Scalar) -> object:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def record_to_payload(kind: EntityKind, record: ExternalRecord) -> dict[str, object]:
    payload: dict[str, object] = {"schemas": [SCHEMA_BY_KIND[kind]]}
    if record.name is not None:
        payload[NAME_ATTRIBUTE[kind]] = record.name

    for key, values in record.attributes.items():
        if key in _SKIPPED or key.startswith(_READ_ONLY_PREFIXES):
            continue
        cleaned = [_json_value(value) for value in values if value is not None]
        if key in MULTI_VALUED:
            converted: object = [{"value": value} for value in cleaned]
        elif not cleaned:
            converted = None
        elif len(cleaned) == 1:
            converted = cleaned[0]
        else:
            converted = cleaned

        path = ["active"] if key == ENABLE_ATTR else split_path(key)
        target = payload
        for segment in path[:-1]:
            nested = target.setdefault(segment, {})
            if not isinstance(nested, dict):
                break
            target = nested  # type: ignore[assignment]
        else:
            target[path[-1]] = converted
    return payload
