"""Configuration schema definitions using dataclasses.

Defines the structure for TOML configuration with sensible defaults.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class SourceConfig:
    """Source cluster configuration.

    Attributes:
        host: Host the route query and, in single-node mode, transfers run on
        clustered: Fan routes out to every owning node instead of one host
        storage_path: Object store root on each storage node
        object_depth: Number of hash-prefix directories above each object
        node_role: Role passed to the node listing command
        nodes: Static node list (skips the node listing command)
        ssh_user: Remote user for SSH and rsync
        ssh_port: SSH port
        ssh_key: Path to SSH private key
        ssh_opts: Extra SSH transport options (``-o`` values)
    """

    host: str = ""
    clustered: bool = False
    storage_path: str = "/var/lib/objectstore/storage"
    object_depth: int = 5
    node_role: str = "storage-server"
    nodes: list[str] = field(default_factory=list)
    ssh_user: Optional[str] = None
    ssh_port: Optional[int] = None
    ssh_key: Optional[str] = None
    ssh_opts: list[str] = field(default_factory=list)


@dataclass
class CommandsConfig:
    """Remote command templates.

    ``{role}`` and ``{path}`` are substituted where they appear.
    """

    routes: str = "objectstore-admin routes --all"
    list_nodes: str = "objectstore-admin nodes --role {role}"
    maintenance_disable: str = "objectstore-admin gc disable"
    maintenance_enable: str = "objectstore-admin gc enable"
    owner_probe: str = "stat -c %U {path}"


@dataclass
class TransferConfig:
    """Bulk transfer settings.

    Attributes:
        rsync_path: Local rsync binary
        remote_rsync_path: rsync binary on the storage nodes
        extra_args: Additional rsync arguments
        compress_routes: Compress the route batch in transit
        default_owner: Storage owner used when the remote probe fails
        use_sudo: Read remote storage as the probed owner via sudo
    """

    rsync_path: str = "rsync"
    remote_rsync_path: str = "rsync"
    extra_args: list[str] = field(default_factory=list)
    compress_routes: bool = True
    default_owner: str = "root"
    use_sudo: bool = True


@dataclass
class GlobalConfig:
    """Global configuration settings.

    Attributes:
        backup_root: Directory holding ``snapshots/`` and the ``current`` pointer
        timestamp_format: Format string for snapshot directory names
        skip_verify: Skip the post-transfer completeness check
        log_file: Path to log file (None for no file logging)
        quiet: Suppress non-essential output
        verbose: Enable verbose output
    """

    backup_root: str = ""
    timestamp_format: str = "%Y%m%d-%H%M%S"
    skip_verify: bool = False
    log_file: Optional[str] = None
    quiet: bool = False
    verbose: bool = False


@dataclass
class Config:
    """Root configuration object."""

    global_config: GlobalConfig = field(default_factory=GlobalConfig)
    source: SourceConfig = field(default_factory=SourceConfig)
    commands: CommandsConfig = field(default_factory=CommandsConfig)
    transfer: TransferConfig = field(default_factory=TransferConfig)
