"""Per-node transfer jobs.

Each storage node is asked only for the objects in its own work list. One
rsync process is started per node, all of them before any is waited on, and
they are joined collectively. A failing node never cancels its siblings.
"""

import logging
import shutil
import subprocess
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Sequence

from ..__util__ import ShardBackupError
from ..sshutil import RemoteError, RemoteRunner

logger = logging.getLogger(__name__)

# rsync: "Partial transfer due to vanished source files"
RSYNC_VANISHED = 24
SUCCESS_CODES = frozenset({0, RSYNC_VANISHED})
LOG_TAIL_LINES = 5


class TransferError(ShardBackupError):
    """Raised when transfers cannot be started at all."""


@dataclass
class TransferJob:
    """Everything needed to fetch one node's work list."""

    node: str
    work_list: Path
    destination: Path
    command: list[str]
    log_path: Path
    baseline: Optional[Path] = None


@dataclass
class TransferResult:
    """Outcome of one node's transfer."""

    node: str
    returncode: int
    duration_seconds: float = 0.0
    log_path: Optional[Path] = None
    command: list[str] = field(default_factory=list)
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode in SUCCESS_CODES


def check_rsync_available(rsync_path: str = "rsync") -> str:
    """Return the full path of the local rsync binary.

    Raises:
        TransferError: If rsync is not installed
    """
    found = shutil.which(rsync_path)
    if found is None:
        raise TransferError(f"Transfer tool '{rsync_path}' not found in PATH")
    return found


def probe_owner(
    runner: RemoteRunner,
    node: str,
    storage_path: str,
    command_template: str,
    default: str,
) -> str:
    """Find the user owning the storage directory on a node.

    Falls back to ``default`` when the probe fails.
    """
    command = command_template.format(path=storage_path)
    try:
        result = runner.run(node, command)
    except RemoteError as e:
        logger.warning("Owner probe on %s failed (%s), using '%s'", node, e, default)
        return default

    words = str(result.stdout).split()
    owner = words[0] if words else ""
    if not result.ok or not owner:
        logger.warning(
            "Owner probe on %s failed (exit %d), using '%s'",
            node,
            result.returncode,
            default,
        )
        return default

    logger.debug("Storage on %s is owned by %s", node, owner)
    return owner


def find_baseline(current: Optional[Path], node_dir_name: str) -> Optional[Path]:
    """Return the previous generation of a node's subtree, if usable.

    The directory must exist and contain at least one entry.
    """
    if current is None:
        return None
    candidate = Path(current) / "storage" / node_dir_name
    if not candidate.is_dir():
        return None
    if next(candidate.iterdir(), None) is None:
        return None
    return candidate.resolve()


def build_rsync_command(
    node: str,
    storage_path: str,
    work_list: Path,
    destination: Path,
    ssh_command: str,
    rsync_path: str = "rsync",
    remote_rsync_path: str = "rsync",
    owner: Optional[str] = None,
    baseline: Optional[Path] = None,
    extra_args: Sequence[str] = (),
) -> list[str]:
    """Build the rsync invocation for one node.

    Only the listed objects are considered, objects gone by transfer time are
    skipped, and changes are detected by size alone.
    """
    cmd = [
        rsync_path,
        "--archive",
        "--relative",
        f"--files-from={work_list}",
        "--ignore-missing-args",
        "--size-only",
        "--numeric-ids",
        "-e",
        ssh_command,
    ]
    if owner:
        cmd.append(f"--rsync-path=sudo -n -u {owner} {remote_rsync_path}")
    elif remote_rsync_path != "rsync":
        cmd.append(f"--rsync-path={remote_rsync_path}")
    if baseline is not None:
        cmd.append(f"--link-dest={baseline}")
    cmd.extend(extra_args)
    cmd.append(f"{node}:{storage_path.rstrip('/')}/")
    cmd.append(f"{destination}/")
    return cmd


def probe_owners(
    runner: RemoteRunner,
    nodes: Sequence[str],
    storage_path: str,
    command_template: str,
    default: str,
) -> dict[str, str]:
    """Probe storage owners on all nodes concurrently."""
    if not nodes:
        return {}
    with ThreadPoolExecutor(max_workers=len(nodes)) as executor:
        futures = {
            node: executor.submit(
                probe_owner, runner, node, storage_path, command_template, default
            )
            for node in nodes
        }
        return {node: future.result() for node, future in futures.items()}


def _log_tail(path: Optional[Path]) -> str:
    if path is None or not path.exists():
        return ""
    with open(path, encoding="utf-8", errors="replace") as f:
        lines = f.read().splitlines()
    return "\n".join(lines[-LOG_TAIL_LINES:])


def dispatch_transfers(
    jobs: Sequence[TransferJob],
    popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    poll_interval: float = 0.5,
) -> list[TransferResult]:
    """Run all transfer jobs concurrently and wait for every one of them.

    Args:
        jobs: One job per node
        popen: Process factory, subprocess.Popen by default
        poll_interval: Seconds between completion checks

    Returns:
        One TransferResult per job, in job order
    """
    results: dict[str, TransferResult] = {}
    running = []

    try:
        for job in jobs:
            job.destination.mkdir(parents=True, exist_ok=True)
            logger.info(
                "Starting transfer from %s (%s)",
                job.node,
                f"baseline {job.baseline}" if job.baseline else "full",
            )
            logger.debug("Command: %s", " ".join(job.command))

            log_handle = open(job.log_path, "wb")
            start = time.monotonic()
            try:
                proc = popen(
                    job.command,
                    stdin=subprocess.DEVNULL,
                    stdout=log_handle,
                    stderr=subprocess.STDOUT,
                )
            except OSError as e:
                log_handle.close()
                logger.error("Cannot start transfer from %s: %s", job.node, e)
                results[job.node] = TransferResult(
                    node=job.node,
                    returncode=127,
                    log_path=job.log_path,
                    command=job.command,
                    message=str(e),
                )
                continue
            except BaseException:
                log_handle.close()
                raise
            running.append((job, proc, log_handle, start))

        while running:
            still_running = []
            for job, proc, log_handle, start in running:
                returncode = proc.poll()
                if returncode is None:
                    still_running.append((job, proc, log_handle, start))
                    continue

                log_handle.close()
                result = TransferResult(
                    node=job.node,
                    returncode=returncode,
                    duration_seconds=time.monotonic() - start,
                    log_path=job.log_path,
                    command=job.command,
                )
                _report(result)
                results[job.node] = result
            running = still_running
            if running:
                time.sleep(poll_interval)

    finally:
        for job, proc, log_handle, _start in running:
            logger.warning("Terminating transfer from %s", job.node)
            proc.terminate()
            try:
                proc.wait(timeout=10)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
            log_handle.close()

    return [results[job.node] for job in jobs]


def _report(result: TransferResult) -> None:
    if result.returncode == 0:
        logger.info(
            "Transfer from %s finished in %.1fs", result.node, result.duration_seconds
        )
    elif result.ok:
        logger.warning(
            "Transfer from %s finished in %.1fs; some objects vanished on the source",
            result.node,
            result.duration_seconds,
        )
    else:
        result.message = _log_tail(result.log_path)
        logger.error(
            "Transfer from %s failed with exit code %d (log: %s)",
            result.node,
            result.returncode,
            result.log_path,
        )
        if result.message:
            logger.error("%s", result.message)
