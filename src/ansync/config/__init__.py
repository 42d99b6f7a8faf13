"""Application configuration helpers."""

from __future__ import annotations

from .env import require_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .feed import FeedConfig, get_feed_config
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .networks import (
    NetworkConfig,
    NetworksConfig,
    PoolConfig,
    SubmissionPolicy,
    load_networks_config,
    parse_networks,
)
from .reconcile import ReconcileConfig, get_reconcile_config
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "CacheConfig",
    "ConfigurationError",
    "DatabaseConfig",
    "FeedConfig",
    "MissingConfigurationError",
    "NetworkConfig",
    "NetworksConfig",
    "PoolConfig",
    "RateLimit",
    "ReconcileConfig",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "SubmissionPolicy",
    "configure_logging",
    "get_database_config",
    "get_feed_config",
    "get_reconcile_config",
    "get_storage_config",
    "load_networks_config",
    "parse_networks",
    "require_env_var",
    "require_env_vars",
]
