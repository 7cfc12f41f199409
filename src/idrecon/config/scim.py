"""SCIM connector configuration values."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from .env import require_env_var
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy

DEFAULT_SCIM_PAGE_SIZE: Final[int] = 100
SCIM_MEDIA_TYPE: Final[str] = "application/scim+json"


@dataclass(frozen=True, slots=True)
class ScimConfig:
    resilience: ResilienceConfig
    page_size: int = DEFAULT_SCIM_PAGE_SIZE


def get_scim_config(
    *,
    name: str,
    base_url: str,
    token_env: str,
    page_size: int = DEFAULT_SCIM_PAGE_SIZE,
    max_calls_per_second: int | None = None,
) -> ScimConfig:
    """Build the SCIM client settings, reading the bearer token from ``token_env``."""

    token = require_env_var(token_env)

    resilience = ResilienceConfig(
        name=f"scim:{name}",
        base_url=base_url.rstrip("/"),
        retry=RetryPolicy(),
        ratelimit=(
            RateLimit(max_calls=max_calls_per_second, per_seconds=1.0)
            if max_calls_per_second
            else None
        ),
        default_headers={
            "Authorization": f"Bearer {token}",
            "Accept": SCIM_MEDIA_TYPE,
            "Content-Type": SCIM_MEDIA_TYPE,
        },
    )
    return ScimConfig(resilience=resilience, page_size=page_size)
