"""Pytest configuration and shared fixtures."""

import gzip
import shutil
from pathlib import Path

import pytest

from shard_backup.config import Config
from shard_backup.sshutil import RemoteResult


class FakeRunner:
    """Stand-in for RemoteRunner recording every remote command."""

    def __init__(self):
        self.calls = []
        self.handlers = []
        self.closed = False

    def on(self, match, stdout="", returncode=0, stderr="", host=None):
        """Answer commands containing ``match`` (optionally only on ``host``)."""
        self.handlers.append((match, host, stdout, returncode, stderr))
        return self

    def run(self, host, command, binary=False):
        self.calls.append((host, command))
        stdout, returncode, stderr = "", 0, ""
        for match, only_host, out, rc, err in reversed(self.handlers):
            if match in command and (only_host is None or only_host == host):
                stdout, returncode, stderr = out, rc, err
                break
        if callable(stdout):
            stdout = stdout(host, command)
        if binary and isinstance(stdout, str):
            stdout = stdout.encode()
        elif not binary and isinstance(stdout, bytes):
            stdout = stdout.decode()
        return RemoteResult(
            host=host,
            command=command,
            returncode=returncode,
            stdout=stdout,
            stderr=stderr,
        )

    def commands_for(self, host):
        return [c for h, c in self.calls if h == host]

    def ssh_command(self):
        return "ssh -o BatchMode=yes"

    def close(self):
        self.closed = True


class FakeProcess:
    """Popen look-alike that has already exited."""

    def __init__(self, returncode):
        self.returncode = returncode
        self.terminated = False

    def poll(self):
        return self.returncode

    def wait(self, timeout=None):
        return self.returncode

    def terminate(self):
        self.terminated = True

    def kill(self):
        self.terminated = True


class FakeRsync:
    """Popen replacement emulating rsync against a local "remote" tree.

    ``remote_root/<node>/<object path>`` plays the storage directory of each
    node. Listed objects that exist are copied, missing ones are skipped.
    """

    def __init__(self, remote_root, returncodes=None):
        self.remote_root = Path(remote_root)
        self.returncodes = returncodes or {}
        self.invocations = []

    def __call__(self, cmd, stdin=None, stdout=None, stderr=None):
        self.invocations.append(cmd)
        node = cmd[-2].split(":", 1)[0]
        destination = Path(cmd[-1])
        files_from = next(a for a in cmd if a.startswith("--files-from="))
        work_list = Path(files_from.split("=", 1)[1])

        returncode = self.returncodes.get(node, 0)
        if returncode not in (0, 24):
            if stdout is not None:
                stdout.write(b"rsync: connection unexpectedly closed\n")
            return FakeProcess(returncode)

        for line in work_list.read_text().splitlines():
            source = self.remote_root / node / line
            if source.is_file():
                target = destination / line
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(source, target)
        return FakeProcess(returncode)

    def for_node(self, node):
        return [c for c in self.invocations if c[-2].startswith(f"{node}:")]


def gzip_text(text):
    return gzip.compress(text.encode())


def make_objects(root, node, paths):
    """Create object files under ``root/node``."""
    for path in paths:
        target = Path(root) / node / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(f"{node}:{path}")


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def remote_root(tmp_path):
    root = tmp_path / "remote"
    root.mkdir()
    return root


@pytest.fixture
def backup_root(tmp_path):
    return tmp_path / "backup"


@pytest.fixture
def base_config(backup_root):
    """A runnable single-node configuration."""
    config = Config()
    config.source.host = "store01"
    config.global_config.backup_root = str(backup_root)
    return config


@pytest.fixture
def tmp_config_dir(tmp_path):
    """Create a temporary config directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def sample_config_toml():
    """Return a sample valid TOML configuration string."""
    return """
[global]
backup_root = "/srv/backup/objectstore"
timestamp_format = "%Y%m%d-%H%M%S"
skip_verify = false
log_file = "/var/log/shard-backup.log"

[source]
host = "store01.example.com"
clustered = true
storage_path = "/data/storage"
object_depth = 5
nodes = ["store01.example.com", "store02.example.com"]
ssh_user = "backup"
ssh_port = 2222
ssh_opts = ["Compression=no"]

[commands]
routes = "store-admin routes"
maintenance_disable = "store-admin gc off"
maintenance_enable = "store-admin gc on"

[transfer]
extra_args = "--bwlimit=50M --timeout=600"
compress_routes = false
default_owner = "objectstore"
"""


@pytest.fixture
def minimal_config_toml():
    """Return a minimal valid TOML configuration string."""
    return """
[source]
host = "store01"
"""


@pytest.fixture
def config_file(tmp_config_dir, sample_config_toml):
    """Create a temporary config file with sample content."""
    config_path = tmp_config_dir / "config.toml"
    config_path.write_text(sample_config_toml)
    return config_path


@pytest.fixture
def minimal_config_file(tmp_config_dir, minimal_config_toml):
    """Create a temporary config file with minimal content."""
    config_path = tmp_config_dir / "minimal.toml"
    config_path.write_text(minimal_config_toml)
    return config_path


@pytest.fixture
def fake_rsync(remote_root):
    return FakeRsync(remote_root)
