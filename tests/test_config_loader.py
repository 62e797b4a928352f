"""Tests for config loader module."""

from pathlib import Path

import pytest

from shard_backup.config import Config
from shard_backup.config.loader import (
    ConfigError,
    apply_environment,
    find_config_file,
    generate_example_config,
    load_config,
    validate_config,
)


class TestFindConfigFile:
    """Tests for find_config_file function."""

    def test_explicit_path_exists(self, config_file):
        """Test finding explicitly specified config file."""
        result = find_config_file(str(config_file))
        assert result == config_file

    def test_explicit_path_not_exists(self, tmp_path):
        """Test error when explicit path doesn't exist."""
        with pytest.raises(ConfigError, match="not found"):
            find_config_file(str(tmp_path / "nonexistent.toml"))

    def test_search_paths(self, tmp_path, monkeypatch, minimal_config_toml):
        """Test the first existing search path wins."""
        first = tmp_path / "first.toml"
        second = tmp_path / "second.toml"
        second.write_text(minimal_config_toml)
        monkeypatch.setattr(
            "shard_backup.config.loader.CONFIG_PATHS", [first, second]
        )

        assert find_config_file(None) == second

    def test_no_config_found(self, tmp_path, monkeypatch):
        """Test returning None when no search path exists."""
        monkeypatch.setattr(
            "shard_backup.config.loader.CONFIG_PATHS", [tmp_path / "missing.toml"]
        )
        assert find_config_file(None) is None


class TestLoadConfig:
    """Tests for load_config function."""

    def test_load_valid_config(self, config_file):
        """Test loading a valid configuration file."""
        config, warnings = load_config(config_file)

        assert config.global_config.backup_root == "/srv/backup/objectstore"
        assert config.global_config.log_file == "/var/log/shard-backup.log"

        source = config.source
        assert source.host == "store01.example.com"
        assert source.clustered is True
        assert source.storage_path == "/data/storage"
        assert source.nodes == ["store01.example.com", "store02.example.com"]
        assert source.ssh_user == "backup"
        assert source.ssh_port == 2222
        assert source.ssh_opts == ["Compression=no"]

        assert config.commands.routes == "store-admin routes"
        assert config.commands.maintenance_disable == "store-admin gc off"
        assert config.commands.maintenance_enable == "store-admin gc on"

        assert config.transfer.extra_args == ["--bwlimit=50M", "--timeout=600"]
        assert config.transfer.compress_routes is False
        assert config.transfer.default_owner == "objectstore"

    def test_host_in_node_list_warns(self, config_file):
        """Test that listing the route host as a node produces a warning."""
        _config, warnings = load_config(config_file)
        assert any("also listed" in w for w in warnings)

    def test_load_minimal_config(self, minimal_config_file):
        """Test loading a minimal configuration file gets defaults."""
        config, warnings = load_config(minimal_config_file)

        assert config.source.host == "store01"
        assert config.source.clustered is False
        assert config.source.object_depth == 5
        assert config.transfer.rsync_path == "rsync"
        assert config.commands.owner_probe == "stat -c %U {path}"
        assert warnings == []

    def test_invalid_toml(self, tmp_path):
        """Test invalid TOML raises ConfigError."""
        path = tmp_path / "bad.toml"
        path.write_text("[source\nhost = ")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(path)

    def test_bad_list_value(self, tmp_path):
        """Test a non-list, non-string value for a list option."""
        path = tmp_path / "bad.toml"
        path.write_text("[source]\nnodes = 3\n")
        with pytest.raises(ConfigError, match="source.nodes"):
            load_config(path)

    def test_checksum_extra_arg_warns(self, tmp_path):
        path = tmp_path / "checksum.toml"
        path.write_text('[transfer]\nextra_args = ["--checksum"]\n')
        _config, warnings = load_config(path)
        assert any("size-only" in w for w in warnings)

    def test_example_config_loads(self, tmp_path):
        """Test the generated example is itself a valid configuration."""
        path = tmp_path / "example.toml"
        path.write_text(generate_example_config())

        config, _warnings = load_config(path)
        validate_config(config)
        assert config.source.clustered is True


class TestApplyEnvironment:
    """Tests for environment overrides."""

    def test_overrides(self):
        config = Config()
        environ = {
            "SHARD_BACKUP_HOST": "store09",
            "SHARD_BACKUP_ROOT": "/backup",
            "SHARD_BACKUP_CLUSTERED": "yes",
            "SHARD_BACKUP_SKIP_VERIFY": "1",
            "SHARD_BACKUP_SSH_OPTS": "Compression=no Ciphers=aes128-ctr",
        }
        apply_environment(config, environ)

        assert config.source.host == "store09"
        assert config.global_config.backup_root == "/backup"
        assert config.source.clustered is True
        assert config.global_config.skip_verify is True
        assert config.source.ssh_opts == ["Compression=no", "Ciphers=aes128-ctr"]

    def test_false_flags(self):
        config = Config()
        config.source.clustered = True
        apply_environment(config, {"SHARD_BACKUP_CLUSTERED": "false"})
        assert config.source.clustered is False

    def test_empty_environment_keeps_values(self):
        config = Config()
        config.source.host = "store01"
        apply_environment(config, {})
        assert config.source.host == "store01"

    def test_invalid_flag(self):
        with pytest.raises(ConfigError, match="SHARD_BACKUP_CLUSTERED"):
            apply_environment(Config(), {"SHARD_BACKUP_CLUSTERED": "maybe"})


class TestValidateConfig:
    """Tests for validate_config function."""

    def test_valid(self, base_config):
        validate_config(base_config)

    def test_missing_host(self, base_config):
        base_config.source.host = ""
        with pytest.raises(ConfigError, match="source host"):
            validate_config(base_config)

    def test_missing_backup_root(self, base_config):
        base_config.global_config.backup_root = ""
        with pytest.raises(ConfigError, match="backup root"):
            validate_config(base_config)

    def test_relative_storage_path(self, base_config):
        base_config.source.storage_path = "data/storage"
        with pytest.raises(ConfigError, match="absolute"):
            validate_config(base_config)

    def test_object_depth(self, base_config):
        base_config.source.object_depth = 0
        with pytest.raises(ConfigError, match="object_depth"):
            validate_config(base_config)
