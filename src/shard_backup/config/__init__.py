"""Configuration system for shard-backup.

This module provides TOML-based configuration loading, environment
overrides, validation, and schema definitions.
"""

from .loader import (
    ConfigError,
    apply_environment,
    find_config_file,
    load_config,
    validate_config,
)
from .schema import (
    CommandsConfig,
    Config,
    GlobalConfig,
    SourceConfig,
    TransferConfig,
)

__all__ = [
    "CommandsConfig",
    "Config",
    "GlobalConfig",
    "SourceConfig",
    "TransferConfig",
    "apply_environment",
    "find_config_file",
    "load_config",
    "validate_config",
    "ConfigError",
]
