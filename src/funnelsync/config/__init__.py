"""Application configuration helpers."""

from __future__ import annotations

from .env import int_env_var, optional_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config
from .sync import SyncConfig, get_sync_config
from .tenants import DEFAULT_API_URLS, TenantConfig, get_tenant_config, get_tenant_configs

__all__ = [
    "DEFAULT_API_URLS",
    "ConfigurationError",
    "DatabaseConfig",
    "MissingConfigurationError",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "SyncConfig",
    "TenantConfig",
    "configure_logging",
    "get_database_config",
    "get_storage_config",
    "get_sync_config",
    "get_tenant_config",
    "get_tenant_configs",
    "int_env_var",
    "optional_env_var",
    "require_env_vars",
]
