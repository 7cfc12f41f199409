"""Errors raised while loading settings and resource definitions."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Settings or resource definitions are invalid."""


class MissingConfigurationError(ConfigurationError):
    """A required environment variable is unset or blank."""


class ResourceNotFoundError(ConfigurationError):
    def __init__(self, key: str) -> None:
        super().__init__(f"Unknown resource: {key}")
        self.key = key
