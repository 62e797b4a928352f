"""Tests for the SSH remote runner."""

import subprocess
from unittest import mock

import pytest

from shard_backup.sshutil import RemoteError, RemoteRunner


@pytest.fixture
def runner(tmp_path):
    return RemoteRunner(
        username="backup",
        port=2222,
        ssh_opts=["Compression=no"],
        identity_file="/keys/id",
        control_dir=str(tmp_path / "cm"),
    )


def completed(returncode=0, stdout=b"", stderr=b""):
    return subprocess.CompletedProcess([], returncode, stdout, stderr)


class TestSshBaseCmd:
    """Tests for ssh command construction."""

    def test_options(self, runner):
        cmd = runner.ssh_base_cmd("node1")

        assert cmd[0] == "ssh"
        assert cmd[-1] == "node1"
        assert "BatchMode=yes" in cmd
        assert "ControlMaster=auto" in cmd
        assert "Compression=no" in cmd
        assert cmd[cmd.index("-p") + 1] == "2222"
        assert cmd[cmd.index("-i") + 1] == "/keys/id"
        assert cmd[cmd.index("-l") + 1] == "backup"

    def test_without_host(self, runner):
        cmd = runner.ssh_base_cmd()
        assert cmd[-1] == "backup"

    def test_ssh_command_string(self, runner, tmp_path):
        rendered = runner.ssh_command()
        assert rendered.startswith("ssh -o ")
        assert "-p 2222" in rendered
        assert (tmp_path / "cm").is_dir()


class TestRun:
    """Tests for RemoteRunner.run."""

    def test_text_result(self, runner):
        with mock.patch("subprocess.run", return_value=completed(0, b"hello\n")) as run:
            result = runner.run("node1", "echo hello")

        assert result.ok
        assert result.stdout == "hello\n"
        cmd = run.call_args.args[0]
        assert cmd[-3:] == ["node1", "--", "echo hello"]

    def test_binary_result(self, runner):
        with mock.patch("subprocess.run", return_value=completed(0, b"\x1f\x8b")):
            result = runner.run("node1", "cat blob", binary=True)
        assert result.stdout == b"\x1f\x8b"

    def test_failure(self, runner):
        with mock.patch("subprocess.run", return_value=completed(255, b"", b"refused\n")):
            result = runner.run("node1", "true")
        assert not result.ok
        assert result.returncode == 255
        assert result.stderr == "refused"

    def test_missing_ssh(self, runner):
        with mock.patch("subprocess.run", side_effect=FileNotFoundError("ssh")):
            with pytest.raises(RemoteError, match="Cannot execute"):
                runner.run("node1", "true")

    def test_close_stops_masters(self, runner):
        with mock.patch("subprocess.run", return_value=completed()) as run:
            runner.run("node1", "true")
            runner.run("node2", "true")
            run.reset_mock()
            runner.close()

        stopped = [c.args[0] for c in run.call_args_list]
        assert len(stopped) == 2
        assert all(cmd[1:3] == ["-O", "exit"] for cmd in stopped)
        assert [cmd[-1] for cmd in stopped] == ["node1", "node2"]
