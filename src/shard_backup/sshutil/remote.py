import getpass
import os
import shlex
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from shard_backup.__logger__ import logger
from shard_backup.__util__ import ShardBackupError


class RemoteError(ShardBackupError):
    """Raised when a remote command cannot be started at all."""


@dataclass
class RemoteResult:
    """Outcome of one remote command."""

    host: str
    command: str
    returncode: int
    stdout: Union[str, bytes] = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class RemoteRunner:
    """Run commands on cluster hosts over multiplexed OpenSSH connections.

    One control socket is kept per host so the many short commands of a run
    (maintenance toggles, owner probes) share a single authenticated session.
    """

    def __init__(
        self,
        username: Optional[str] = None,
        port: Optional[int] = None,
        ssh_opts: Optional[List[str]] = None,
        identity_file: Optional[str] = None,
        control_dir: Optional[str] = None,
        persist: str = "60",
        ssh_command: str = "ssh",
    ):
        self.username = username
        self.port = port
        self.ssh_opts = ssh_opts or []
        self.identity_file = identity_file
        self.persist = persist
        self.ssh_command_name = ssh_command

        if control_dir:
            self.control_dir = Path(control_dir)
        else:
            user = os.environ.get("SUDO_USER") or getpass.getuser()
            self.control_dir = Path(f"/tmp/shard-backup-ssh-{user}")
        self._lock = threading.Lock()
        self._hosts: set[str] = set()

    def _control_path(self) -> Path:
        return self.control_dir / f"cm_{os.getpid()}_%C.sock"

    def ssh_base_cmd(self, host: Optional[str] = None) -> List[str]:
        """Get the base SSH command with all transport options.

        Without a host the result is suitable for rsync's ``-e`` option,
        where rsync appends the host itself.
        """
        cmd = [self.ssh_command_name]

        opts = [
            f"ControlPath={self._control_path()}",
            "ControlMaster=auto",
            f"ControlPersist={self.persist}",
            "ServerAliveInterval=5",
            "ServerAliveCountMax=6",
            "ConnectTimeout=30",
            "BatchMode=yes",
            "StrictHostKeyChecking=accept-new",
        ]
        opts.extend(self.ssh_opts)
        for opt in opts:
            cmd.extend(["-o", opt])

        if self.port:
            cmd.extend(["-p", str(self.port)])
        if self.identity_file:
            cmd.extend(["-i", str(self.identity_file)])
        if self.username:
            cmd.extend(["-l", self.username])

        if host is not None:
            cmd.append(host)
        return cmd

    def ssh_command(self) -> str:
        """Transport command rendered as a single string for ``rsync -e``."""
        self._ensure_control_dir()
        return shlex.join(self.ssh_base_cmd())

    def _ensure_control_dir(self) -> None:
        with self._lock:
            self.control_dir.mkdir(mode=0o700, parents=True, exist_ok=True)

    def run(self, host: str, command: str, binary: bool = False) -> RemoteResult:
        """Execute a shell command on the given host.

        Args:
            host: Remote host name
            command: Shell command line, interpreted by the remote shell
            binary: Return stdout as bytes instead of text

        Returns:
            RemoteResult carrying stdout, stderr and the exit code

        Raises:
            RemoteError: If the local ssh client could not be started
        """
        self._ensure_control_dir()
        with self._lock:
            self._hosts.add(host)

        cmd = self.ssh_base_cmd(host) + ["--", command]
        logger.debug("Remote on %s: %s", host, command)
        try:
            proc = subprocess.run(cmd, capture_output=True, check=False)
        except OSError as e:
            raise RemoteError(f"Cannot execute {self.ssh_command_name}: {e}") from e

        stderr = proc.stderr.decode(errors="replace").strip()
        stdout: Union[str, bytes] = (
            proc.stdout if binary else proc.stdout.decode(errors="replace")
        )
        if proc.returncode != 0:
            logger.debug("Remote command on %s exited %d: %s", host, proc.returncode, stderr)
        return RemoteResult(
            host=host,
            command=command,
            returncode=proc.returncode,
            stdout=stdout,
            stderr=stderr,
        )

    def close(self) -> None:
        """Stop every multiplexing master this runner started."""
        with self._lock:
            hosts = sorted(self._hosts)
            self._hosts.clear()

        for host in hosts:
            cmd = self.ssh_base_cmd(host)
            cmd[1:1] = ["-O", "exit"]
            try:
                subprocess.run(cmd, capture_output=True, check=False)
            except OSError as e:
                logger.debug("Failed to stop SSH master for %s: %s", host, e)
