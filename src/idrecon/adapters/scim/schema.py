"""SCIM 2.0 (RFC 7643/7644) payload schemas."""

from __future__ import annotations

import logging
from typing import ClassVar, Final

from pydantic import BaseModel, ConfigDict, Field

log = logging.getLogger(__name__)

USER_SCHEMA: Final[str] = "urn:ietf:params:scim:schemas:core:2.0:User"
GROUP_SCHEMA: Final[str] = "urn:ietf:params:scim:schemas:core:2.0:Group"
LIST_RESPONSE_SCHEMA: Final[str] = "urn:ietf:params:scim:api:messages:2.0:ListResponse"


class ScimBaseModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)
    _logged_extra_keys: ClassVar[set[str]] = set()

    def model_post_init(self, _context: object, /) -> None:
        extras = self.__pydantic_extra__
        if not extras:
            return
        new_keys = {key for key in extras if not key.startswith("urn:")}
        new_keys.difference_update(self._logged_extra_keys)
        if not new_keys:
            return
        self._logged_extra_keys.update(new_keys)
        log.debug(
            "SCIM %s: unmodeled keys: %s",
            type(self).__name__,
            ", ".join(sorted(new_keys)),
        )


class ScimMeta(ScimBaseModel):
    resource_type: str | None = Field(default=None, alias="resourceType")
    created: str | None = None
    last_modified: str | None = Field(default=None, alias="lastModified")
    location: str | None = None
    version: str | None = None


class ScimName(ScimBaseModel):
    formatted: str | None = None
    family_name: str | None = Field(default=None, alias="familyName")
    given_name: str | None = Field(default=None, alias="givenName")
    middle_name: str | None = Field(default=None, alias="middleName")


class ScimMultiValued(ScimBaseModel):
    value: str | None = None
    display: str | None = None
    type: str | None = None
    primary: bool | None = None
    ref: str | None = Field(default=None, alias="$ref")


class ScimResource(ScimBaseModel):
    id: str
    schemas: list[str] = Field(default_factory=list)
    external_id: str | None = Field(default=None, alias="externalId")
    user_name: str | None = Field(default=None, alias="userName")
    display_name: str | None = Field(default=None, alias="displayName")
    name: ScimName | None = None
    active: bool | None = None
    emails: list[ScimMultiValued] = Field(default_factory=list)
    phone_numbers: list[ScimMultiValued] = Field(default_factory=list, alias="phoneNumbers")
    groups: list[ScimMultiValued] = Field(default_factory=list)
    members: list[ScimMultiValued] = Field(default_factory=list)
    meta: ScimMeta | None = None


class ScimListResponse(ScimBaseModel):
    total_results: int = Field(default=0, alias="totalResults")
    items_per_page: int | None = Field(default=None, alias="itemsPerPage")
    start_index: int | None = Field(default=None, alias="startIndex")
    resources: list[ScimResource] = Field(default_factory=list, alias="Resources")
