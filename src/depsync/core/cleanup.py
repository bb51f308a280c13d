"""
Stale version cleanup.

After an export, every artifact family touched by the graph keeps only its
newest version, except for older versions some other (not just exported)
module still depends on.
"""

import logging
from typing import Dict, List

from ..errors import DepsyncError
from .graph import DependencyGraph

logger = logging.getLogger(__name__)


class VersionCleanupService:
    """
    Drives per-family cleanup on an export sink.

    A failure for one family is logged and recorded in `failures`; the
    remaining families are still processed.
    """

    def __init__(self, sink):
        self.sink = sink
        self.failures: Dict[str, str] = {}

    def cleanup_old_versions(self, graph: DependencyGraph) -> int:
        exported_gavs = {m.gav for m in graph.iter_modules()}
        families = sorted(graph.unique_families())
        self.failures = {}
        total = 0

        logger.info(f"Cleaning up old versions for {len(families)} artifact families")

        for family in families:
            group_id, artifact_id = family.split(":", 1)
            try:
                deleted = self.sink.cleanup_old_versions(group_id, artifact_id, exported_gavs)
            except DepsyncError as e:
                logger.warning(f"Cleanup failed for {family}: {e}")
                self.failures[family] = str(e)
                continue

            if deleted:
                logger.debug(f"Deleted {deleted} old versions of {family}")
            total += deleted

        logger.info(f"Cleanup deleted {total} old versions ({len(self.failures)} families failed)")
        return total

    @property
    def failed_families(self) -> List[str]:
        return sorted(self.failures)
