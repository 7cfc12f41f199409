"""Resource definitions loaded from a TOML file.

Layout::

    [[resources]]
    key = "directory"
    trace_level = "failures"

    [resources.connector]
    type = "scim"
    base_url = "https://directory.example.com/scim/v2"
    token_env = "DIRECTORY_SCIM_TOKEN"

    [resources.sync_policy]
    matching_rule = "update"
    correlation_rules = { user = "name" }

    [resources.provisions.user]
    object_class = "__ACCOUNT__"

    [[resources.provisions.user.items]]
    ext_attr = "userName"
    int_attr = "username"
    account_id = true
"""

from __future__ import annotations

import tomllib
from functools import cached_property
from logging import getLogger
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from idrecon.config.errors import ConfigurationError, ResourceNotFoundError
from idrecon.domain.model import (
    AttributeMapping,
    ConnectorSettings,
    DeletionRule,
    EntityKind,
    MappingError,
    MappingPurpose,
    MatchingRule,
    Provision,
    PushPolicy,
    ResourceDefinition,
    SchemaType,
    SyncPolicy,
    TraceLevel,
    UnmatchingRule,
    item,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

log = getLogger(__name__)


class _Document(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class MappingItemDocument(_Document):
    ext_attr: str
    int_attr: str
    purpose: MappingPurpose = MappingPurpose.BOTH
    account_id: bool = False
    nullable: bool = False


class ProvisionDocument(_Document):
    object_class: str
    items: list[MappingItemDocument] = Field(default_factory=list)


class SyncPolicyDocument(_Document):
    correlation_rules: dict[EntityKind, str] = Field(default_factory=dict)
    alternate_search_attributes: dict[EntityKind, list[str]] = Field(default_factory=dict)
    matching_rule: MatchingRule = MatchingRule.UPDATE
    unmatching_rule: UnmatchingRule = UnmatchingRule.PROVISION
    deletion_rule: DeletionRule = DeletionRule.DELETE
    ignore_case_match: bool = False
    sync_status: bool = False


class PushPolicyDocument(_Document):
    matching_rule: MatchingRule = MatchingRule.UPDATE
    unmatching_rule: UnmatchingRule = UnmatchingRule.PROVISION
    deprovision_out_of_scope: bool = False


class ConnectorDocument(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    type: str


class ResourceDocument(_Document):
    key: str
    trace_level: TraceLevel | None = None
    connector: ConnectorDocument | None = None
    sync_policy: SyncPolicyDocument = Field(default_factory=SyncPolicyDocument)
    push_policy: PushPolicyDocument = Field(default_factory=PushPolicyDocument)
    provisions: dict[EntityKind, ProvisionDocument] = Field(default_factory=dict)
    schemas: dict[EntityKind, dict[str, SchemaType]] = Field(default_factory=dict)


class ResourcesDocument(_Document):
    resources: list[ResourceDocument] = Field(default_factory=list)


def _to_definition(
    document: ResourceDocument,
    default_trace_level: TraceLevel,
) -> ResourceDefinition:
    provisions = {
        kind: Provision(
            object_class=provision.object_class,
            mapping=AttributeMapping(
                tuple(
                    item(
                        entry.ext_attr,
                        entry.int_attr,
                        purpose=entry.purpose,
                        account_id=entry.account_id,
                        nullable=entry.nullable,
                    )
                    for entry in provision.items
                )
            ),
        )
        for kind, provision in document.provisions.items()
    }
    sync = document.sync_policy
    push = document.push_policy
    connector = None
    if document.connector is not None:
        connector = ConnectorSettings(
            type=document.connector.type,
            options=MappingProxyType(dict(document.connector.model_extra or {})),
        )
    return ResourceDefinition(
        key=document.key,
        provisions=MappingProxyType(provisions),
        sync_policy=SyncPolicy(
            correlation_rules=MappingProxyType(dict(sync.correlation_rules)),
            alternate_search_attributes=MappingProxyType(
                {kind: tuple(attrs) for kind, attrs in sync.alternate_search_attributes.items()}
            ),
            matching_rule=sync.matching_rule,
            unmatching_rule=sync.unmatching_rule,
            deletion_rule=sync.deletion_rule,
            ignore_case_match=sync.ignore_case_match,
            sync_status=sync.sync_status,
        ),
        push_policy=PushPolicy(
            matching_rule=push.matching_rule,
            unmatching_rule=push.unmatching_rule,
            deprovision_out_of_scope=push.deprovision_out_of_scope,
        ),
        trace_level=document.trace_level or default_trace_level,
        attribute_schemas=MappingProxyType(
            {kind: MappingProxyType(dict(schema)) for kind, schema in document.schemas.items()}
        ),
        connector=connector,
    )


class TomlResourceProvider:
    """Read-only resource provider; the file is parsed once per provider instance."""

    def __init__(
        self,
        path: Path | str,
        *,
        default_trace_level: TraceLevel = TraceLevel.FAILURES,
    ) -> None:
        self.path = Path(path)
        self.default_trace_level = default_trace_level

    def get_resource(self, key: str) -> ResourceDefinition:
        try:
            return self._definitions[key]
        except KeyError:
            raise ResourceNotFoundError(key) from None

    def keys(self) -> list[str]:
        return sorted(self._definitions)

    @cached_property
    def _definitions(self) -> Mapping[str, ResourceDefinition]:
        try:
            with self.path.open("rb") as handle:
                raw = tomllib.load(handle)
        except FileNotFoundError as exc:
            raise ConfigurationError(f"Resource file {self.path} does not exist") from exc
        except tomllib.TOMLDecodeError as exc:
            raise ConfigurationError(f"Resource file {self.path} is not valid TOML: {exc}") from exc

        try:
            document = ResourcesDocument.model_validate(raw)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid resource file {self.path}: {exc}") from exc

        definitions: dict[str, ResourceDefinition] = {}
        for resource in document.resources:
            if resource.key in definitions:
                raise ConfigurationError(f"Duplicate resource key {resource.key!r} in {self.path}")
            try:
                definitions[resource.key] = _to_definition(resource, self.default_trace_level)
            except MappingError as exc:
                raise ConfigurationError(f"Resource {resource.key!r}: {exc}") from exc
        log.info("Loaded %s resource definitions from %s", len(definitions), self.path)
        return MappingProxyType(definitions)


if TYPE_CHECKING:
    from idrecon.domain.ports import ResourceProvider

    _provider_check: ResourceProvider = TomlResourceProvider("resources.toml")
