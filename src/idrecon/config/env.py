"""Environment variable loaders for configuration."""

from __future__ import annotations

import os

from .errors import ConfigurationError, MissingConfigurationError


def _read(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value


def require_env_var(name: str) -> str:
    value = _read(name)
    if value is None:
        raise MissingConfigurationError(f"Missing configuration for: {name}")
    return value


def optional_int_env(name: str, default: int) -> int:
    """Read a positive integer, falling back to ``default`` when unset or blank."""

    raw = _read(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value
