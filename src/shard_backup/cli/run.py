"""Run command: execute one backup of the source cluster."""

import argparse
import logging

from ..__logger__ import add_file_handler, create_logger
from ..__util__ import ShardBackupError
from ..config import (
    Config,
    ConfigError,
    apply_environment,
    find_config_file,
    load_config,
    validate_config,
)
from ..core.locks import Terminated
from ..core.orchestrator import EXIT_ABORT, run_backup
from .common import apply_cli_overrides, get_log_level

logger = logging.getLogger(__name__)


def resolve_config(args: argparse.Namespace) -> Config:
    """Build the effective configuration: file, then environment, then CLI.

    A missing config file is not an error as long as the environment or the
    command line provide the required values.

    Raises:
        ConfigError: If the result is incomplete or invalid
    """
    config_path = find_config_file(getattr(args, "config", None))
    if config_path is None:
        logger.debug("No configuration file found, using defaults")
        config = Config()
    else:
        logger.info("Loading configuration from: %s", config_path)
        config, warnings = load_config(config_path)
        for warning in warnings:
            logger.warning("Config: %s", warning)

    apply_environment(config)
    apply_cli_overrides(config, args)
    validate_config(config)
    return config


def execute_run(args: argparse.Namespace) -> int:
    """Execute the run command.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    create_logger(get_log_level(args))

    try:
        config = resolve_config(args)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_ABORT

    create_logger(get_log_level(args, config))
    if config.global_config.log_file:
        add_file_handler(config.global_config.log_file)

    if getattr(args, "dry_run", False):
        return _dry_run(config)

    try:
        outcome = run_backup(config)
    except Terminated as e:
        logger.error("Backup interrupted: %s", e)
        return 128 + e.signum
    except KeyboardInterrupt:
        logger.error("Backup interrupted by user")
        return 130
    except ShardBackupError as e:
        logger.error("Backup aborted: %s", e)
        return EXIT_ABORT

    if outcome.unrestored:
        logger.warning(
            "Maintenance is still suspended on %d node(s): %s",
            len(outcome.unrestored),
            ", ".join(outcome.unrestored),
        )
    return outcome.exit_code


def _dry_run(config: Config) -> int:
    """Show what would be done without contacting any host."""
    source = config.source
    print("Dry run mode - showing what would be done:")
    print("")
    print(f"Source host:   {source.host}")
    print(f"Mode:          {'clustered' if source.clustered else 'single-node'}")
    if source.clustered:
        if source.nodes:
            print(f"Nodes:         {', '.join(source.nodes)}")
        else:
            print(f"Nodes:         {config.commands.list_nodes.format(role=source.node_role)}")
    print(f"Storage path:  {source.storage_path}")
    print(f"Backup root:   {config.global_config.backup_root}")
    print(f"Routes:        {config.commands.routes}")
    print(f"Verification:  {'skipped' if config.global_config.skip_verify else 'enabled'}")
    return 0
