"""Config command: Configuration management."""

import argparse
import logging

from ..__logger__ import create_logger
from ..config import (
    ConfigError,
    apply_environment,
    find_config_file,
    load_config,
    validate_config,
)
from ..config.loader import generate_example_config
from .common import get_log_level

logger = logging.getLogger(__name__)


def execute_config(args: argparse.Namespace) -> int:
    """Execute the config command.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code
    """
    create_logger(get_log_level(args))

    action = getattr(args, "config_action", None)

    if action == "validate":
        return _validate_config(args)
    elif action == "init":
        return _init_config(args)
    else:
        print("Usage: shard-backup config <validate|init>")
        return 1


def _validate_config(args: argparse.Namespace) -> int:
    """Validate configuration file together with the environment."""
    try:
        config_path = find_config_file(getattr(args, "config", None))
        if config_path is None:
            print("No configuration file found.")
            print("Searched locations:")
            print("  ~/.config/shard-backup/config.toml")
            print("  /etc/shard-backup/config.toml")
            return 1

        print(f"Validating: {config_path}")
        config, warnings = load_config(config_path)
        apply_environment(config)
        validate_config(config)

        if warnings:
            print("")
            print("Warnings:")
            for warning in warnings:
                print(f"  - {warning}")

        source = config.source
        commands = config.commands
        print("")
        print("Configuration is valid.")
        print(f"  Host: {source.host}")
        print(f"  Mode: {'clustered' if source.clustered else 'single-node'}")
        print(f"  Backup root: {config.global_config.backup_root}")
        print(f"  Storage path: {source.storage_path} (object depth {source.object_depth})")
        if not source.clustered:
            print(f"  Nodes: {source.host}")
        elif source.nodes:
            print(f"  Nodes: {', '.join(dict.fromkeys(source.nodes))}")
        else:
            print(f"  Nodes: discovered with '{commands.list_nodes.format(role=source.node_role)}'")
        print(f"  Routes: {commands.routes}")
        print(f"  Maintenance: '{commands.maintenance_disable}' / '{commands.maintenance_enable}'")
        if config.transfer.use_sudo:
            print(f"  Transfer owner: probed with '{commands.owner_probe}'")
        print(f"  Verification: {'skipped' if config.global_config.skip_verify else 'enabled'}")

        return 0

    except ConfigError as e:
        print(f"Configuration error: {e}")
        return 1


def _init_config(args: argparse.Namespace) -> int:
    """Generate example configuration."""
    content = generate_example_config()

    output = getattr(args, "output", None)
    if output:
        try:
            with open(output, "w") as f:
                f.write(content)
            print(f"Example configuration written to: {output}")
        except OSError as e:
            print(f"Error writing file: {e}")
            return 1
    else:
        print(content)

    return 0
