"""shard-backup: shard_backup/__init__.py."""

__version__ = "0.1.0"


def encode_node_for_path(node: str) -> str:
    """Make a node id safe to use as a single path component."""
    return node.strip("/").replace("/", "_").replace(":", "_")
