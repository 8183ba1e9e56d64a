"""
Configuration module for mtsftp.

This module provides Pydantic models and YAML loading utilities
for the lease store, pool policy, Docker and SFTP settings.
"""

from mtsftp.config.models import (
    DEFAULT_REUSE_LABEL,
    DockerConfig,
    PoolConfig,
    RedisConfig,
    Settings,
    SFTPConfig,
)
from mtsftp.config.loader import (
    ConfigError,
    load_settings,
    load_settings_from_dict,
)

__all__ = [
    # Models
    "DEFAULT_REUSE_LABEL",
    "DockerConfig",
    "PoolConfig",
    "RedisConfig",
    "Settings",
    "SFTPConfig",
    # Loader
    "ConfigError",
    "load_settings",
    "load_settings_from_dict",
]
