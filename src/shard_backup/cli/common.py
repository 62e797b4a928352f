"""Shared CLI utilities and argument parsers."""

import argparse

from ..config import Config


def add_verbosity_args(parser: argparse.ArgumentParser) -> None:
    """Add verbosity-related arguments to a parser."""
    group = parser.add_argument_group("Output options")
    group.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    group.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only show warnings and errors",
    )
    group.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug output",
    )


def add_source_args(parser: argparse.ArgumentParser) -> None:
    """Add options overriding the source and backup settings."""
    group = parser.add_argument_group("Source options")
    group.add_argument(
        "--host",
        metavar="HOST",
        help="Source cluster host (overrides config and SHARD_BACKUP_HOST)",
    )
    mode = group.add_mutually_exclusive_group()
    mode.add_argument(
        "--clustered",
        dest="clustered",
        action="store_const",
        const=True,
        help="Request each object from every node that owns it",
    )
    mode.add_argument(
        "--single-node",
        dest="clustered",
        action="store_const",
        const=False,
        help="Request every object from the source host",
    )
    group.add_argument(
        "--backup-root",
        metavar="DIR",
        help="Directory holding the snapshots (overrides config)",
    )
    group.add_argument(
        "--skip-verify",
        action="store_true",
        default=None,
        help="Skip the completeness check after transferring",
    )


def apply_cli_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Apply command line overrides, which win over file and environment."""
    if getattr(args, "host", None):
        config.source.host = args.host
    if getattr(args, "clustered", None) is not None:
        config.source.clustered = args.clustered
    if getattr(args, "backup_root", None):
        config.global_config.backup_root = args.backup_root
    if getattr(args, "skip_verify", None):
        config.global_config.skip_verify = True
    return config


def get_log_level(args: argparse.Namespace, config: Config | None = None) -> str:
    """Determine log level from parsed arguments, then from config.

    Args:
        args: Parsed command line arguments
        config: Loaded configuration, if any

    Returns:
        Log level string (DEBUG, INFO, WARNING)
    """
    if getattr(args, "debug", False) or getattr(args, "verbose", False):
        return "DEBUG"
    if getattr(args, "quiet", False):
        return "WARNING"
    if config is not None:
        if config.global_config.verbose:
            return "DEBUG"
        if config.global_config.quiet:
            return "WARNING"
    return "INFO"
