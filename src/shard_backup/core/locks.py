"""Maintenance suspension on source storage nodes.

Background maintenance (garbage collection, compaction) can move or delete
objects underneath a running transfer. The coordinator suspends it on every
node before routes are read and guarantees it is re-enabled on every exit
path, including SIGTERM and SIGHUP.
"""

import contextlib
import logging
import signal
import threading
from enum import Enum
from typing import Iterable, Iterator

from ..__util__ import ShardBackupError
from ..sshutil import RemoteError, RemoteRunner

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGTERM, signal.SIGHUP)
# Held off while maintenance is being restored
CLEANUP_SIGNALS = HANDLED_SIGNALS + (signal.SIGINT,)


class MaintenanceError(ShardBackupError):
    """Raised when maintenance cannot be suspended on a node."""


class Terminated(KeyboardInterrupt):
    """Raised in the main thread when a termination signal arrives."""

    def __init__(self, signum: int) -> None:
        super().__init__(f"received signal {signal.Signals(signum).name}")
        self.signum = signum


class LockState(Enum):
    """Maintenance state of one node."""

    ACTIVE = "active"
    # disable command sent, outcome unknown
    PENDING = "pending"
    SUSPENDED = "suspended"


class MaintenanceLockCoordinator:
    """Owns the per-node maintenance state for one backup run."""

    def __init__(
        self,
        runner: RemoteRunner,
        disable_command: str,
        enable_command: str,
    ) -> None:
        self.runner = runner
        self.disable_command = disable_command
        self.enable_command = enable_command
        self.states: dict[str, LockState] = {}

    def suspended_nodes(self) -> list[str]:
        return [n for n, s in self.states.items() if s is not LockState.ACTIVE]

    def disable(self, nodes: Iterable[str]) -> None:
        """Suspend maintenance on every node.

        Nodes already suspended are skipped. The first failure raises; nodes
        suspended before it stay recorded so that enable() restores them.
        A node is marked pending before its command is sent, so an interrupt
        arriving mid-command still leaves it to be restored.

        Raises:
            MaintenanceError: If any node could not be suspended
        """
        for node in nodes:
            if self.states.get(node) is LockState.SUSPENDED:
                continue

            logger.info("Suspending maintenance on %s", node)
            self.states[node] = LockState.PENDING
            try:
                result = self.runner.run(node, self.disable_command)
            except RemoteError as e:
                self.states[node] = LockState.ACTIVE
                raise MaintenanceError(
                    f"Cannot suspend maintenance on {node}: {e}"
                ) from e
            if not result.ok:
                self.states[node] = LockState.ACTIVE
                raise MaintenanceError(
                    f"Cannot suspend maintenance on {node} "
                    f"(exit {result.returncode}): {result.stderr}"
                )
            self.states[node] = LockState.SUSPENDED

    def enable(self, nodes: Iterable[str] | None = None) -> list[str]:
        """Re-enable maintenance on suspended nodes.

        A failing node is reported with the command to run by hand and the
        loop moves on to the remaining nodes. A KeyboardInterrupt raised
        while one node is handled is held back until every node was tried.

        Returns:
            Nodes that are still suspended
        """
        suspended = self.suspended_nodes()
        if nodes is None:
            targets = suspended
        else:
            targets = [n for n in nodes if n in suspended]

        failed = []
        interrupted = None
        for node in targets:
            logger.info("Re-enabling maintenance on %s", node)
            try:
                result = self.runner.run(node, self.enable_command)
                error = None if result.ok else f"exit {result.returncode}: {result.stderr}"
            except RemoteError as e:
                error = str(e)
            except KeyboardInterrupt as e:
                interrupted = e
                error = "interrupted"

            if error is None:
                self.states[node] = LockState.ACTIVE
                continue

            failed.append(node)
            logger.error("Failed to re-enable maintenance on %s (%s)", node, error)
            logger.error(
                "Maintenance is still suspended on %s. Run '%s' on that node manually.",
                node,
                self.enable_command,
            )

        if interrupted is not None:
            raise interrupted
        return failed

    @contextlib.contextmanager
    def suspended(self, nodes: Iterable[str]) -> Iterator["MaintenanceLockCoordinator"]:
        """Suspend maintenance for the duration of the block.

        Re-enabling runs on normal exit, on exceptions, on KeyboardInterrupt
        and on SIGTERM/SIGHUP, which are turned into Terminated while the
        block is active. SIGINT is ignored along with them while maintenance
        is being restored.
        """
        with raise_on_signals():
            try:
                self.disable(nodes)
                yield self
            finally:
                with raise_on_signals(CLEANUP_SIGNALS, handler=signal.SIG_IGN):
                    self.enable()


@contextlib.contextmanager
def raise_on_signals(signals=HANDLED_SIGNALS, handler=None) -> Iterator[None]:
    """Turn termination signals into Terminated so cleanup code can run.

    With an explicit handler (e.g. SIG_IGN) that handler is installed instead.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum, frame):
        raise Terminated(signum)

    previous = {}
    for signum in signals:
        previous[signum] = signal.signal(signum, _handler if handler is None else handler)
    try:
        yield
    finally:
        for signum, prev in previous.items():
            signal.signal(signum, prev)
