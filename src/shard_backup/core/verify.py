"""Post-transfer completeness verification.

Compares every object path requested from the storage nodes with the objects
actually present in the new snapshot. Missing objects are reported, never
acted upon: the snapshot is kept either way.
"""

import difflib
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from .partition import read_work_list

logger = logging.getLogger(__name__)

DIFF_LOG_LIMIT = 50


@dataclass
class VerifyReport:
    """Expected vs actual object paths for one snapshot."""

    location: str
    expected: list[str] = field(default_factory=list)
    actual: list[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    completed_at: float = 0.0

    @property
    def missing(self) -> list[str]:
        present = set(self.actual)
        return [p for p in self.expected if p not in present]

    @property
    def extra(self) -> list[str]:
        wanted = set(self.expected)
        return [p for p in self.actual if p not in wanted]

    @property
    def passed(self) -> bool:
        return not self.missing

    @property
    def duration(self) -> float:
        if self.completed_at:
            return self.completed_at - self.started_at
        return time.time() - self.started_at

    def diff(self) -> list[str]:
        """Line diff of expected against actual, for small reports."""
        return list(
            difflib.unified_diff(
                self.expected,
                self.actual,
                fromfile="expected",
                tofile="actual",
                lineterm="",
                n=0,
            )
        )


def collect_expected(work_list_files: Iterable[Path]) -> list[str]:
    """Sorted, deduplicated union of all work lists."""
    expected: set[str] = set()
    for path in work_list_files:
        expected.update(read_work_list(path))
    return sorted(expected)


def scan_snapshot(storage_dir: Path, object_depth: int = 5) -> list[str]:
    """Object paths found below each node directory of a snapshot.

    Only regular files exactly ``object_depth`` directories below a node
    directory count.
    """
    storage_dir = Path(storage_dir)
    if not storage_dir.is_dir():
        return []

    pattern = "/".join(["*"] * (object_depth + 1))
    found: set[str] = set()
    for node_dir in storage_dir.iterdir():
        if not node_dir.is_dir():
            continue
        for path in node_dir.glob(pattern):
            if path.is_file():
                found.add(path.relative_to(node_dir).as_posix())
    return sorted(found)


def verify_snapshot(
    work_list_files: Iterable[Path],
    storage_dir: Path,
    object_depth: int = 5,
) -> VerifyReport:
    """Check that every requested object arrived in the snapshot.

    Args:
        work_list_files: Work list files handed to the transfers
        storage_dir: ``storage`` directory of the new snapshot
        object_depth: Number of hash-prefix directories above each object

    Returns:
        VerifyReport; a failed report is only logged
    """
    report = VerifyReport(location=str(storage_dir))
    logger.info("Verifying snapshot contents in %s ...", storage_dir)

    report.expected = collect_expected(work_list_files)
    report.actual = scan_snapshot(storage_dir, object_depth)
    report.completed_at = time.time()

    missing = report.missing
    if not missing:
        logger.info(
            "Verification passed: %d object(s) present (%.1fs)",
            len(report.expected),
            report.duration,
        )
        if report.extra:
            logger.debug(
                "%d object(s) in snapshot were not requested this run",
                len(report.extra),
            )
        return report

    logger.warning(
        "Verification found %d of %d requested object(s) missing from %s",
        len(missing),
        len(report.expected),
        storage_dir,
    )
    for path in missing[:DIFF_LOG_LIMIT]:
        logger.warning("  missing: %s", path)
    if len(missing) > DIFF_LOG_LIMIT:
        logger.warning("  ... and %d more", len(missing) - DIFF_LOG_LIMIT)
    logger.warning(
        "The snapshot has been kept. If objects keep going missing across runs, "
        "contact support with the transfer logs and this list."
    )
    return report


def write_report(report: VerifyReport, path: Path) -> None:
    """Write the missing object paths next to the snapshot for later review.

    One path per line, in work list format.
    """
    with open(path, "w", encoding="utf-8") as f:
        for object_path in report.missing:
            f.write(object_path + "\n")
