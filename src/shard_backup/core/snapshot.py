"""Backup snapshot directory layout.

    <backup_root>/snapshots/<timestamp>/storage/<node>/<object paths>
    <backup_root>/snapshots/current -> <timestamp>

The ``current`` pointer names the most recent completed snapshot and is only
read while a run is transferring; it is repointed after the transfer phase.
"""

import logging
import os
import time
from pathlib import Path

from filelock import FileLock, Timeout

from .. import encode_node_for_path
from ..__util__ import ShardBackupError

logger = logging.getLogger(__name__)

SNAPSHOTS_DIR = "snapshots"
CURRENT_LINK = "current"
STORAGE_DIR = "storage"
LOCK_FILE = ".shard-backup.lock"


class SnapshotError(ShardBackupError):
    """Raised when the backup root cannot be prepared."""


class SnapshotStore:
    """Timestamped snapshot generations under one backup root."""

    def __init__(self, root, timestamp_format: str = "%Y%m%d-%H%M%S") -> None:
        self.root = Path(root)
        self.timestamp_format = timestamp_format
        self.snapshots_dir = self.root / SNAPSHOTS_DIR
        self.current_link = self.snapshots_dir / CURRENT_LINK

    def __repr__(self) -> str:
        return f"SnapshotStore({str(self.root)!r})"

    def lock(self, timeout: float = 0) -> FileLock:
        """Acquire the lock that keeps two runs off the same backup root.

        Raises:
            SnapshotError: If another run holds the lock
        """
        self.root.mkdir(parents=True, exist_ok=True)
        lock = FileLock(self.root / LOCK_FILE)
        try:
            lock.acquire(timeout=timeout)
        except Timeout as e:
            raise SnapshotError(
                f"Another backup is already running on {self.root}"
            ) from e
        return lock

    def current(self) -> Path | None:
        """Return the most recent completed snapshot, if any."""
        if not self.current_link.is_symlink() and not self.current_link.exists():
            return None
        target = self.current_link.resolve()
        if not target.is_dir():
            logger.warning("'current' points to missing snapshot %s", target)
            return None
        return target

    def create(self, now: float | None = None) -> Path:
        """Create a new snapshot generation and its storage directory."""
        stamp = time.strftime(self.timestamp_format, time.localtime(now))
        self.snapshots_dir.mkdir(parents=True, exist_ok=True)

        snapshot = self.snapshots_dir / stamp
        suffix = 0
        while snapshot.exists():
            suffix += 1
            snapshot = self.snapshots_dir / f"{stamp}.{suffix}"

        try:
            (snapshot / STORAGE_DIR).mkdir(parents=True)
        except OSError as e:
            raise SnapshotError(f"Cannot create snapshot {snapshot}: {e}") from e
        logger.info("Created snapshot directory %s", snapshot)
        return snapshot

    @staticmethod
    def storage_dir(snapshot: Path) -> Path:
        return Path(snapshot) / STORAGE_DIR

    @staticmethod
    def node_dir(snapshot: Path, node: str) -> Path:
        return Path(snapshot) / STORAGE_DIR / encode_node_for_path(node)

    def promote(self, snapshot: Path) -> None:
        """Point ``current`` at the given snapshot, replacing it atomically."""
        snapshot = Path(snapshot)
        tmp_link = self.snapshots_dir / f".{CURRENT_LINK}.{os.getpid()}"
        if tmp_link.is_symlink() or tmp_link.exists():
            tmp_link.unlink()
        os.symlink(snapshot.name, tmp_link)
        os.replace(tmp_link, self.current_link)
        logger.info("'current' now points to %s", snapshot.name)
