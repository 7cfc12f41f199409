"""Engine-wide reconciliation settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from .env import optional_int_env
from .errors import ConfigurationError

DEFAULT_PUSH_PAGE_SIZE: Final[int] = 1000
DEFAULT_TRACE_LEVEL: Final[str] = "FAILURES"
DEFAULT_RESOURCES_FILE: Final[str] = "resources.toml"
TRACE_LEVELS: Final[frozenset[str]] = frozenset({"ALL", "FAILURES", "SUMMARY", "NONE"})


@dataclass(frozen=True, slots=True)
class ReconciliationConfig:
    push_page_size: int = DEFAULT_PUSH_PAGE_SIZE
    default_trace_level: str = DEFAULT_TRACE_LEVEL
    resources_file: Path = Path(DEFAULT_RESOURCES_FILE)


def get_reconciliation_config() -> ReconciliationConfig:
    """Build the engine settings from ``IDRECON_*`` environment variables."""

    page_size = optional_int_env("IDRECON_PUSH_PAGE_SIZE", DEFAULT_PUSH_PAGE_SIZE)

    trace_level = (os.getenv("IDRECON_TRACE_LEVEL") or DEFAULT_TRACE_LEVEL).strip().upper()
    if trace_level not in TRACE_LEVELS:
        allowed = ", ".join(sorted(TRACE_LEVELS))
        raise ConfigurationError(
            f"IDRECON_TRACE_LEVEL must be one of {allowed}, got {trace_level!r}"
        )

    resources_file = Path(os.getenv("IDRECON_RESOURCES_FILE") or DEFAULT_RESOURCES_FILE)

    return ReconciliationConfig(
        push_page_size=page_size,
        default_trace_level=trace_level,
        resources_file=resources_file.expanduser(),
    )
