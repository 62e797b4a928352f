"""Command line interface for shard-backup."""

from .dispatcher import main

__all__ = ["main"]
