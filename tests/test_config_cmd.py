"""Tests for config command functionality."""

import argparse
from unittest import mock

import pytest

from shard_backup.cli.config_cmd import _init_config, _validate_config, execute_config


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in ("SHARD_BACKUP_HOST", "SHARD_BACKUP_ROOT", "SHARD_BACKUP_CLUSTERED"):
        monkeypatch.delenv(name, raising=False)


class TestInitConfig:
    """Tests for _init_config function."""

    def test_outputs_to_stdout(self, capsys):
        args = argparse.Namespace(output=None)
        result = _init_config(args)
        assert result == 0
        captured = capsys.readouterr()
        assert "[source]" in captured.out
        assert "[commands]" in captured.out

    def test_writes_to_file(self, tmp_path):
        output_file = tmp_path / "config.toml"
        args = argparse.Namespace(output=str(output_file))
        result = _init_config(args)
        assert result == 0
        assert "[transfer]" in output_file.read_text()

    def test_unwritable_location(self, tmp_path, capsys):
        args = argparse.Namespace(output=str(tmp_path / "missing" / "config.toml"))
        result = _init_config(args)
        assert result == 1
        assert "Error writing file" in capsys.readouterr().out


class TestValidateConfig:
    """Tests for _validate_config function."""

    def test_valid_file(self, config_file, capsys):
        args = argparse.Namespace(config=str(config_file))
        result = _validate_config(args)
        assert result == 0
        out = capsys.readouterr().out
        assert "Configuration is valid" in out
        assert "clustered" in out
        assert "also listed as a storage node" in out
        assert "Nodes: store01.example.com, store02.example.com" in out
        assert "Routes: store-admin routes" in out
        assert "'store-admin gc off' / 'store-admin gc on'" in out
        assert "Storage path: /data/storage (object depth 5)" in out

    def test_reports_node_discovery(self, minimal_config_file, monkeypatch, capsys):
        monkeypatch.setenv("SHARD_BACKUP_ROOT", "/srv/backup")
        monkeypatch.setenv("SHARD_BACKUP_CLUSTERED", "yes")
        args = argparse.Namespace(config=str(minimal_config_file))

        assert _validate_config(args) == 0

        out = capsys.readouterr().out
        assert "discovered with 'objectstore-admin nodes --role storage-server'" in out
        assert "Verification: enabled" in out

    def test_environment_completes_file(self, minimal_config_file, monkeypatch, capsys):
        monkeypatch.setenv("SHARD_BACKUP_ROOT", "/srv/backup")
        args = argparse.Namespace(config=str(minimal_config_file))
        assert _validate_config(args) == 0
        assert "/srv/backup" in capsys.readouterr().out

    def test_incomplete_file(self, minimal_config_file, capsys):
        args = argparse.Namespace(config=str(minimal_config_file))
        assert _validate_config(args) == 1
        assert "No backup root configured" in capsys.readouterr().out

    def test_invalid_toml(self, tmp_config_dir, capsys):
        path = tmp_config_dir / "broken.toml"
        path.write_text("[source\nhost = ")
        args = argparse.Namespace(config=str(path))
        assert _validate_config(args) == 1
        assert "Invalid TOML syntax" in capsys.readouterr().out

    def test_explicit_path_missing(self, tmp_path, capsys):
        args = argparse.Namespace(config=str(tmp_path / "nope.toml"))
        assert _validate_config(args) == 1
        assert "Config file not found" in capsys.readouterr().out


class TestExecuteConfig:
    """Tests for execute_config function."""

    def test_validate_with_no_config(self, capsys):
        args = argparse.Namespace(
            config=None, config_action="validate", verbose=False, quiet=False
        )
        with mock.patch(
            "shard_backup.cli.config_cmd.find_config_file",
            return_value=None,
        ):
            result = execute_config(args)
        assert result == 1
        captured = capsys.readouterr()
        assert "No configuration file found" in captured.out

    def test_init_action(self, capsys):
        args = argparse.Namespace(
            config_action="init",
            output=None,
            verbose=False,
            quiet=False,
        )
        result = execute_config(args)
        assert result == 0
        captured = capsys.readouterr()
        assert "[global]" in captured.out

    def test_unknown_action(self, capsys):
        args = argparse.Namespace(config_action=None, verbose=False, quiet=False)
        result = execute_config(args)
        assert result == 1
        captured = capsys.readouterr()
        assert "Usage:" in captured.out
