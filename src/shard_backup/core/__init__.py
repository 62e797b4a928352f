"""Core backup operations for shard-backup."""

from .locks import MaintenanceError, MaintenanceLockCoordinator
from .orchestrator import BackupOutcome, RunStatus, run_backup
from .partition import partition_routes, write_work_lists
from .routes import Route, RouteError, parse_routes, resolve_routes
from .snapshot import SnapshotError, SnapshotStore
from .transfer import TransferError, TransferResult, dispatch_transfers
from .verify import VerifyReport, verify_snapshot

__all__ = [
    "BackupOutcome",
    "MaintenanceError",
    "MaintenanceLockCoordinator",
    "Route",
    "RouteError",
    "RunStatus",
    "SnapshotError",
    "SnapshotStore",
    "TransferError",
    "TransferResult",
    "VerifyReport",
    "dispatch_transfers",
    "parse_routes",
    "partition_routes",
    "resolve_routes",
    "run_backup",
    "verify_snapshot",
    "write_work_lists",
]
