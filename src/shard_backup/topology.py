"""Cluster node discovery."""

import logging

from .__util__ import ShardBackupError
from .config import Config
from .sshutil import RemoteRunner

logger = logging.getLogger(__name__)


class TopologyError(ShardBackupError):
    """Raised when the node list for a role cannot be determined."""


def list_nodes(runner: RemoteRunner, config: Config, role: str | None = None) -> list[str]:
    """Return the current member hosts for a role.

    A static ``source.nodes`` list takes precedence; otherwise the
    ``list_nodes`` command is run on the source host and read one host per
    line. In single-node mode the configured host is the only node.
    """
    source = config.source
    if not source.clustered:
        return [source.host]

    if source.nodes:
        return list(dict.fromkeys(source.nodes))

    role = role or source.node_role
    command = config.commands.list_nodes.format(role=role)
    result = runner.run(source.host, command)
    if not result.ok:
        raise TopologyError(
            f"Listing {role} nodes on {source.host} failed "
            f"(exit {result.returncode}): {result.stderr}"
        )

    nodes = []
    for line in str(result.stdout).splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            nodes.append(line)
    nodes = list(dict.fromkeys(nodes))

    if not nodes:
        raise TopologyError(f"No {role} nodes reported by {source.host}")

    logger.info("Found %d %s node(s): %s", len(nodes), role, ", ".join(nodes))
    return nodes
