"""SCIM 2.0 connector adapter."""

from __future__ import annotations

from .client import ScimAPIError, ScimClient
from .connector import ScimConnector, to_scim_filter
from .translator import record_to_payload, resource_to_record

__all__ = [
    "ScimAPIError",
    "ScimClient",
    "ScimConnector",
    "record_to_payload",
    "resource_to_record",
    "to_scim_filter",
]
