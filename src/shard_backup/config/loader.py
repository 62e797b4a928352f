"""TOML configuration loading and validation.

Handles config file discovery, parsing, environment overrides and validation
with helpful error messages.
"""

import os
import shlex
import tomllib
from pathlib import Path
from typing import Any, Mapping

from ..__util__ import ShardBackupError
from .schema import (
    CommandsConfig,
    Config,
    GlobalConfig,
    SourceConfig,
    TransferConfig,
)


class ConfigError(ShardBackupError):
    """Configuration loading or validation error."""

    pass


# Config file search paths in priority order
CONFIG_PATHS = [
    Path.home() / ".config" / "shard-backup" / "config.toml",
    Path("/etc/shard-backup/config.toml"),
]

ENV_PREFIX = "SHARD_BACKUP_"
TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
FALSE_VALUES = frozenset({"0", "false", "no", "off", ""})


def find_config_file(explicit_path: str | None = None) -> Path | None:
    """Find configuration file.

    Args:
        explicit_path: Explicitly specified config path (highest priority)

    Returns:
        Path to config file, or None if not found
    """
    if explicit_path:
        path = Path(explicit_path)
        if path.exists():
            return path
        raise ConfigError(f"Config file not found: {explicit_path}")

    for path in CONFIG_PATHS:
        if path.exists():
            return path

    return None


def _as_list(value: Any, name: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return shlex.split(value)
    if isinstance(value, list):
        return [str(v) for v in value]
    raise ConfigError(f"'{name}' must be a string or a list of strings")


def _parse_source(data: dict[str, Any]) -> SourceConfig:
    """Parse source configuration from dict."""
    defaults = SourceConfig()
    return SourceConfig(
        host=data.get("host", defaults.host),
        clustered=data.get("clustered", defaults.clustered),
        storage_path=data.get("storage_path", defaults.storage_path),
        object_depth=data.get("object_depth", defaults.object_depth),
        node_role=data.get("node_role", defaults.node_role),
        nodes=_as_list(data.get("nodes"), "source.nodes"),
        ssh_user=data.get("ssh_user"),
        ssh_port=data.get("ssh_port"),
        ssh_key=data.get("ssh_key"),
        ssh_opts=_as_list(data.get("ssh_opts"), "source.ssh_opts"),
    )


def _parse_commands(data: dict[str, Any]) -> CommandsConfig:
    """Parse remote command templates from dict."""
    defaults = CommandsConfig()
    return CommandsConfig(
        routes=data.get("routes", defaults.routes),
        list_nodes=data.get("list_nodes", defaults.list_nodes),
        maintenance_disable=data.get(
            "maintenance_disable", defaults.maintenance_disable
        ),
        maintenance_enable=data.get("maintenance_enable", defaults.maintenance_enable),
        owner_probe=data.get("owner_probe", defaults.owner_probe),
    )


def _parse_transfer(data: dict[str, Any]) -> TransferConfig:
    """Parse transfer configuration from dict."""
    defaults = TransferConfig()
    return TransferConfig(
        rsync_path=data.get("rsync_path", defaults.rsync_path),
        remote_rsync_path=data.get("remote_rsync_path", defaults.remote_rsync_path),
        extra_args=_as_list(data.get("extra_args"), "transfer.extra_args"),
        compress_routes=data.get("compress_routes", defaults.compress_routes),
        default_owner=data.get("default_owner", defaults.default_owner),
        use_sudo=data.get("use_sudo", defaults.use_sudo),
    )


def _parse_global(data: dict[str, Any]) -> GlobalConfig:
    """Parse global configuration from dict."""
    return GlobalConfig(
        backup_root=data.get("backup_root", ""),
        timestamp_format=data.get("timestamp_format", "%Y%m%d-%H%M%S"),
        skip_verify=data.get("skip_verify", False),
        log_file=data.get("log_file"),
        quiet=data.get("quiet", False),
        verbose=data.get("verbose", False),
    )


def _config_warnings(config: Config) -> list[str]:
    """Collect non-fatal configuration problems."""
    warnings = []

    source = config.source
    if source.clustered and source.nodes and source.host in source.nodes:
        warnings.append(
            f"Host '{source.host}' is also listed as a storage node; "
            "maintenance will be toggled on it once"
        )
    if not source.clustered and source.nodes:
        warnings.append("'source.nodes' is ignored in single-node mode")
    if len(source.nodes) != len(set(source.nodes)):
        warnings.append("Duplicate entries in 'source.nodes'")
    if "--checksum" in config.transfer.extra_args or "-c" in config.transfer.extra_args:
        warnings.append(
            "'--checksum' in transfer.extra_args defeats size-only change detection"
        )

    return warnings


def parse_bool(value: str, name: str) -> bool:
    """Interpret an environment flag."""
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean flag, got {value!r}")


def apply_environment(config: Config, environ: Mapping[str, str] | None = None) -> Config:
    """Override configuration values from the process environment.

    Recognized variables: SHARD_BACKUP_HOST, SHARD_BACKUP_CLUSTERED,
    SHARD_BACKUP_SKIP_VERIFY, SHARD_BACKUP_SSH_OPTS, SHARD_BACKUP_ROOT.
    """
    if environ is None:
        environ = os.environ

    host = environ.get(ENV_PREFIX + "HOST")
    if host:
        config.source.host = host

    root = environ.get(ENV_PREFIX + "ROOT")
    if root:
        config.global_config.backup_root = root

    clustered = environ.get(ENV_PREFIX + "CLUSTERED")
    if clustered is not None:
        config.source.clustered = parse_bool(clustered, ENV_PREFIX + "CLUSTERED")

    skip_verify = environ.get(ENV_PREFIX + "SKIP_VERIFY")
    if skip_verify is not None:
        config.global_config.skip_verify = parse_bool(
            skip_verify, ENV_PREFIX + "SKIP_VERIFY"
        )

    ssh_opts = environ.get(ENV_PREFIX + "SSH_OPTS")
    if ssh_opts:
        config.source.ssh_opts.extend(shlex.split(ssh_opts))

    return config


def validate_config(config: Config) -> None:
    """Check that a configuration is complete enough to run a backup.

    Raises:
        ConfigError: If a required value is missing or out of range
    """
    if not config.source.host:
        raise ConfigError(
            "No source host configured (set source.host or SHARD_BACKUP_HOST)"
        )
    if not config.global_config.backup_root:
        raise ConfigError(
            "No backup root configured (set global.backup_root or SHARD_BACKUP_ROOT)"
        )
    if config.source.object_depth < 1:
        raise ConfigError("source.object_depth must be at least 1")
    if not config.source.storage_path.startswith("/"):
        raise ConfigError("source.storage_path must be an absolute path")


def load_config(path: Path | str) -> tuple[Config, list[str]]:
    """Load configuration from TOML file.

    Args:
        path: Path to configuration file

    Returns:
        Tuple of (Config object, list of warnings)

    Raises:
        ConfigError: If config is invalid or cannot be parsed
    """
    path = Path(path)

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML syntax: {e}")
    except OSError as e:
        raise ConfigError(f"Cannot read config file: {e}")

    config = Config(
        global_config=_parse_global(data.get("global", {})),
        source=_parse_source(data.get("source", {})),
        commands=_parse_commands(data.get("commands", {})),
        transfer=_parse_transfer(data.get("transfer", {})),
    )

    return config, _config_warnings(config)


def generate_example_config() -> str:
    """Generate example configuration file content."""
    return """# shard-backup configuration
# Every value can also be left out and supplied through the environment:
# SHARD_BACKUP_HOST, SHARD_BACKUP_ROOT, SHARD_BACKUP_CLUSTERED,
# SHARD_BACKUP_SKIP_VERIFY, SHARD_BACKUP_SSH_OPTS

[global]
backup_root = "/srv/backup/objectstore"
timestamp_format = "%Y%m%d-%H%M%S"
skip_verify = false
# log_file = "/var/log/shard-backup.log"

[source]
host = "store01.example.com"
clustered = true
storage_path = "/var/lib/objectstore/storage"
object_depth = 5
node_role = "storage-server"
# nodes = ["store01.example.com", "store02.example.com"]
# ssh_user = "backup"
# ssh_port = 22
# ssh_key = "/root/.ssh/backup_key"
# ssh_opts = ["Compression=no"]

[commands]
routes = "objectstore-admin routes --all"
list_nodes = "objectstore-admin nodes --role {role}"
maintenance_disable = "objectstore-admin gc disable"
maintenance_enable = "objectstore-admin gc enable"
owner_probe = "stat -c %U {path}"

[transfer]
rsync_path = "rsync"
compress_routes = true
default_owner = "root"
use_sudo = true
# extra_args = ["--bwlimit=50M"]
"""
