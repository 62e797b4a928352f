"""Backup run orchestration.

Suspend maintenance, resolve routes, partition them per node, transfer every
node's objects in parallel, verify the result, restore maintenance.
"""

import logging
import subprocess
import tempfile
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from .. import __util__
from ..config import Config
from ..sshutil import RemoteError, RemoteRunner
from ..topology import list_nodes
from .locks import MaintenanceLockCoordinator
from .partition import partition_routes, write_work_lists
from .routes import format_routes, resolve_routes
from .snapshot import SnapshotStore
from .transfer import (
    TransferJob,
    TransferResult,
    build_rsync_command,
    check_rsync_available,
    dispatch_transfers,
    find_baseline,
    probe_owners,
)
from .verify import VerifyReport, verify_snapshot, write_report

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ABORT = 1
EXIT_PARTIAL = 2

MISSING_REPORT = "missing-objects.txt"


class RunStatus(Enum):
    """How a backup run ended."""

    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"
    EMPTY = "empty"


@dataclass
class BackupOutcome:
    """Summary of one backup run."""

    status: RunStatus
    snapshot: Optional[Path] = None
    results: list[TransferResult] = field(default_factory=list)
    report: Optional[VerifyReport] = None
    unrestored: list[str] = field(default_factory=list)

    @property
    def failed_nodes(self) -> list[str]:
        return [r.node for r in self.results if not r.ok]

    @property
    def exit_code(self) -> int:
        if self.status is RunStatus.FAILED:
            return EXIT_ABORT
        if self.status is RunStatus.PARTIAL:
            return EXIT_PARTIAL
        return EXIT_OK


def runner_from_config(config: Config) -> RemoteRunner:
    """Create the SSH runner described by the source configuration."""
    source = config.source
    return RemoteRunner(
        username=source.ssh_user,
        port=source.ssh_port,
        ssh_opts=list(source.ssh_opts),
        identity_file=source.ssh_key,
    )


def preflight(runner: RemoteRunner, config: Config) -> str:
    """Check the transfer tool locally and on the source host.

    Returns:
        Path of the local rsync binary

    Raises:
        TransferError: If rsync is missing locally
        AbortError: If the source host cannot run rsync
    """
    rsync = check_rsync_available(config.transfer.rsync_path)
    host = config.source.host
    try:
        result = runner.run(host, f"{config.transfer.remote_rsync_path} --version")
    except RemoteError as e:
        raise __util__.AbortError(f"Cannot reach {host}: {e}") from e
    if not result.ok:
        raise __util__.AbortError(
            f"rsync check on {host} failed (exit {result.returncode}): {result.stderr}"
        )
    first_line = str(result.stdout).strip().splitlines()[:1]
    logger.debug("Remote transfer tool on %s: %s", host, first_line[0] if first_line else "?")
    return rsync


def run_backup(
    config: Config,
    runner: Optional[RemoteRunner] = None,
    popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    now: Optional[float] = None,
) -> BackupOutcome:
    """Execute one complete backup run.

    Args:
        config: Validated configuration
        runner: Remote command runner (created from config when omitted)
        popen: Process factory used for transfer jobs
        now: Timestamp for the new snapshot (defaults to the current time)

    Returns:
        BackupOutcome describing the run

    Raises:
        ShardBackupError: For failures that stop the run before data moves
    """
    own_runner = runner is None
    if runner is None:
        runner = runner_from_config(config)

    start = time.monotonic()
    logger.info(__util__.log_heading(f"Started at {time.ctime()}"))

    try:
        rsync = preflight(runner, config)
        nodes = list_nodes(runner, config)
        store = SnapshotStore(
            config.global_config.backup_root, config.global_config.timestamp_format
        )

        lock = store.lock()
        try:
            coordinator = MaintenanceLockCoordinator(
                runner,
                config.commands.maintenance_disable,
                config.commands.maintenance_enable,
            )
            with tempfile.TemporaryDirectory(prefix="shard-backup-") as workspace:
                try:
                    with coordinator.suspended(nodes):
                        outcome = _replicate(
                            config, runner, store, Path(workspace), nodes, rsync, popen, now
                        )
                finally:
                    unrestored = coordinator.suspended_nodes()
                    if unrestored:
                        logger.error(
                            "Maintenance could not be re-enabled on: %s",
                            ", ".join(unrestored),
                        )
            outcome.unrestored = unrestored
        finally:
            lock.release()
    finally:
        if own_runner:
            runner.close()

    logger.info(
        __util__.log_heading(
            f"Finished at {time.ctime()} ({time.monotonic() - start:.1f}s)"
        )
    )
    return outcome


def _replicate(
    config: Config,
    runner: RemoteRunner,
    store: SnapshotStore,
    workspace: Path,
    locked_nodes: list[str],
    rsync: str,
    popen: Callable[..., subprocess.Popen],
    now: Optional[float],
) -> BackupOutcome:
    source = config.source

    routes = resolve_routes(
        runner,
        source.host,
        config.commands.routes,
        object_depth=source.object_depth,
        compress=config.transfer.compress_routes,
    )
    if not routes:
        logger.warning("No routes found on %s, nothing to back up", source.host)
        return BackupOutcome(status=RunStatus.EMPTY)

    (workspace / "routes.txt").write_text(format_routes(routes), encoding="utf-8")

    work_lists = partition_routes(routes, source.clustered, source.host)
    list_files = write_work_lists(work_lists, workspace / "worklists")
    if not list_files:
        logger.warning("No routes found, skipping")
        return BackupOutcome(status=RunStatus.EMPTY)

    for node in sorted(set(list_files) - set(locked_nodes)):
        logger.warning(
            "Node %s holds routed objects but is not a known %s node; "
            "maintenance was not suspended there",
            node,
            source.node_role,
        )

    logger.info(
        "Partitioned %d route(s) into %d work list(s)", len(routes), len(list_files)
    )

    current = store.current()
    if current is not None:
        logger.info("Reuse baseline: %s", current)
    snapshot = store.create(now)

    owners = {}
    if config.transfer.use_sudo:
        owners = probe_owners(
            runner,
            list(list_files),
            source.storage_path,
            config.commands.owner_probe,
            config.transfer.default_owner,
        )

    ssh_command = runner.ssh_command()
    logs_dir = workspace / "logs"
    logs_dir.mkdir()

    jobs = []
    for node, work_list in list_files.items():
        destination = store.node_dir(snapshot, node)
        baseline = find_baseline(current, destination.name)
        command = build_rsync_command(
            node=node,
            storage_path=source.storage_path,
            work_list=work_list,
            destination=destination,
            ssh_command=ssh_command,
            rsync_path=rsync,
            remote_rsync_path=config.transfer.remote_rsync_path,
            owner=owners.get(node),
            baseline=baseline,
            extra_args=config.transfer.extra_args,
        )
        jobs.append(
            TransferJob(
                node=node,
                work_list=work_list,
                destination=destination,
                command=command,
                log_path=logs_dir / f"{destination.name}.log",
                baseline=baseline,
            )
        )

    logger.info(__util__.log_heading(f"Transferring from {len(jobs)} node(s)"))
    results = dispatch_transfers(jobs, popen=popen)

    report = None
    if config.global_config.skip_verify:
        logger.info("Verification skipped by configuration")
    else:
        report = verify_snapshot(
            list_files.values(), store.storage_dir(snapshot), source.object_depth
        )
        if not report.passed:
            write_report(report, snapshot / MISSING_REPORT)

    failed = [r for r in results if not r.ok]
    if not failed:
        store.promote(snapshot)
        status = RunStatus.COMPLETED
        logger.info("Backup of %d node(s) completed: %s", len(results), snapshot)
    elif len(failed) == len(results):
        status = RunStatus.FAILED
        logger.error("All %d transfer(s) failed; snapshot %s kept", len(results), snapshot)
    else:
        status = RunStatus.PARTIAL
        logger.warning(
            "Completed with errors: %d node(s) succeeded, %d failed (%s); snapshot %s kept",
            len(results) - len(failed),
            len(failed),
            ", ".join(r.node for r in failed),
            snapshot,
        )

    return BackupOutcome(status=status, snapshot=snapshot, results=results, report=report)
