"""Partition routes into per-node work lists.

Work lists are written as plain ``rsync --files-from`` files, one object path
per line, named after the node they will be requested from.
"""

import logging
from pathlib import Path
from typing import Iterable

from .. import encode_node_for_path
from .routes import Route

logger = logging.getLogger(__name__)

NodeWorkList = dict[str, list[str]]

WORK_LIST_SUFFIX = ".list"


def partition_routes(routes: Iterable[Route], clustered: bool, host: str) -> NodeWorkList:
    """Group object paths by the node they must be requested from.

    Clustered: every owning node gets the object, so a route naming three
    nodes produces three assignments. Single-node: every object is assigned
    once to ``host`` regardless of how many owners were reported.
    Duplicates within a node's list are dropped, first occurrence kept.
    """
    work_lists: dict[str, dict[str, None]] = {}

    for route in routes:
        owners = route.nodes if clustered else (host,)
        for node in owners:
            work_lists.setdefault(node, {})[route.object_path] = None

    return {node: list(paths) for node, paths in work_lists.items()}


def write_work_lists(work_lists: NodeWorkList, directory: Path) -> dict[str, Path]:
    """Serialize work lists, one file per node with objects to fetch.

    Returns:
        Mapping of node to its work list file; nodes with empty lists are absent
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    files = {}
    for node, paths in sorted(work_lists.items()):
        if not paths:
            continue
        path = directory / f"{encode_node_for_path(node)}{WORK_LIST_SUFFIX}"
        with open(path, "w", encoding="utf-8") as f:
            for object_path in paths:
                f.write(object_path + "\n")
        files[node] = path
        logger.debug("Wrote %d object(s) for %s to %s", len(paths), node, path)

    return files


def read_work_list(path: Path) -> list[str]:
    """Read a work list file back into object paths."""
    with open(path, encoding="utf-8") as f:
        return [line.rstrip("\n") for line in f if line.strip()]
