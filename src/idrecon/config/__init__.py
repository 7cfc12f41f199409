"""Application configuration helpers."""

from __future__ import annotations

from .env import optional_int_env, require_env_var
from .errors import ConfigurationError, MissingConfigurationError, ResourceNotFoundError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .reconciliation import ReconciliationConfig, get_reconciliation_config
from .scim import ScimConfig, get_scim_config
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "ConfigurationError",
    "DatabaseConfig",
    "MissingConfigurationError",
    "RateLimit",
    "ReconciliationConfig",
    "ResilienceConfig",
    "ResourceNotFoundError",
    "RetryPolicy",
    "ScimConfig",
    "StorageConfig",
    "configure_logging",
    "get_database_config",
    "get_reconciliation_config",
    "get_scim_config",
    "get_storage_config",
    "optional_int_env",
    "require_env_var",
]
