"""Route acquisition from the source cluster.

A route assigns one content-addressed object to the storage nodes that hold
it. The route index is computed on the source side by a single remote command
and shipped back as one batch, optionally gzip-compressed, one route per line:

    <object_path> <node> [<node> ...]

Nodes may also be separated by commas.

An empty index is a normal outcome and ends the run with nothing to do. A
route query that fails, or returns data that cannot be decoded, raises
RouteError and aborts the run with a non-zero exit status.
"""

import gzip
import logging
import re
import shlex
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Iterable

from ..__util__ import ShardBackupError
from ..sshutil import RemoteRunner

logger = logging.getLogger(__name__)

_FIELD_SPLIT = re.compile(r"[\s,]+")


class RouteError(ShardBackupError):
    """Raised when the route index cannot be retrieved."""


@dataclass(frozen=True)
class Route:
    """One object and the nodes that own it."""

    object_path: str
    nodes: tuple[str, ...]


def is_object_path(path: str, object_depth: int) -> bool:
    """Check that a path has the sharded object shape.

    ``object_depth`` directories followed by the object identifier, relative,
    without ``.`` or ``..`` components.
    """
    if not path or path.startswith("/"):
        return False
    parts = PurePosixPath(path).parts
    if len(parts) != object_depth + 1:
        return False
    return not any(part in (".", "..") for part in parts)


def parse_routes(text: str, object_depth: int = 5) -> list[Route]:
    """Decode a route batch into Route records.

    Blank lines and ``#`` comments are ignored. Malformed lines are logged and
    skipped so that one bad row does not cost the whole backup.
    """
    routes = []
    skipped = 0

    for lineno, line in enumerate(text.splitlines(), 1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        fields = [f for f in _FIELD_SPLIT.split(line) if f]
        if not fields:
            logger.warning("Route line %d has no object path, skipping: %r", lineno, line)
            skipped += 1
            continue
        path, nodes = fields[0], tuple(dict.fromkeys(fields[1:]))

        if not nodes:
            logger.warning("Route line %d has no owning node, skipping: %r", lineno, line)
            skipped += 1
            continue
        if not is_object_path(path, object_depth):
            logger.warning(
                "Route line %d is not an object path of depth %d, skipping: %r",
                lineno,
                object_depth,
                path,
            )
            skipped += 1
            continue

        routes.append(Route(object_path=path, nodes=nodes))

    if skipped:
        logger.warning("Skipped %d malformed route line(s)", skipped)
    return routes


def format_routes(routes: Iterable[Route]) -> str:
    """Encode routes back into the batch text format."""
    return "".join(f"{r.object_path} {' '.join(r.nodes)}\n" for r in routes)


def _decode_batch(payload: bytes, compressed: bool) -> str:
    if compressed and payload:
        try:
            payload = gzip.decompress(payload)
        except (OSError, EOFError) as e:
            raise RouteError(f"Route batch is not valid gzip data: {e}") from e
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise RouteError(f"Route batch is not valid UTF-8: {e}") from e


def resolve_routes(
    runner: RemoteRunner,
    host: str,
    command: str,
    object_depth: int = 5,
    compress: bool = True,
) -> list[Route]:
    """Fetch the current route list from the source cluster.

    Args:
        runner: Remote command runner
        host: Cluster host the route query runs on
        command: Remote command printing the route index
        object_depth: Number of hash-prefix directories above each object
        compress: Pipe the batch through gzip on the remote side

    Returns:
        List of Route records, possibly empty

    Raises:
        RouteError: If the remote query fails or returns undecodable data
    """
    if compress:
        remote_cmd = "bash -o pipefail -c " + shlex.quote(f"{command} | gzip -c")
    else:
        remote_cmd = command
    logger.info("Querying routes on %s ...", host)

    result = runner.run(host, remote_cmd, binary=True)
    if not result.ok:
        raise RouteError(
            f"Route query on {host} failed (exit {result.returncode}): {result.stderr}"
        )

    payload = result.stdout if isinstance(result.stdout, bytes) else result.stdout.encode()
    routes = parse_routes(_decode_batch(payload, compress), object_depth)
    logger.info("Received %d route(s) from %s", len(routes), host)
    return routes
