"""shard-backup: shard_backup/__util__.py
Common helpers and the exception base shared by all modules.
"""


class ShardBackupError(Exception):
    """Base class for errors that abort a backup run."""


class AbortError(ShardBackupError):
    """Raised when the run cannot continue safely."""


def log_heading(caption: str) -> str:
    """Formatted heading for logging output sections."""
    return f"--[ {caption} ]--"
