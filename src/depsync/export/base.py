"""
Export sink contract.

A sink owns one backend connection for one pipeline run. Lifecycle:

    connect() -> check_schema_version() -> export_graph(graph)
        -> [export_project_structure(structure)]
        -> [cleanup_old_versions(...) per family] -> close()

`export_graph` is a single transaction: nodes are upserted, the root's
outgoing edges are replaced, edges are written in batches, and any failure
rolls everything back. Cleanup runs in its own transaction afterwards.
"""

import logging
from abc import ABC, abstractmethod
from typing import Collection, List, Optional

from ..config import DEFAULT_BATCH_SIZE
from ..core.graph import DependencyGraph
from ..core.retry import RetryExecutor
from ..core.structure import ProjectStructure
from ..core.types import ExportResult, SchemaVersion

logger = logging.getLogger(__name__)


class ExportSink(ABC):
    """
    Abstract base for dependency graph backends.

    Args:
        retry: Executor for connection-level operations. Sinks extend its
            policy with their driver's transient and non-transient types.
        batch_size: Edge records per physical write.
    """

    database_type: str = ""

    def __init__(self, retry: Optional[RetryExecutor] = None, batch_size: int = DEFAULT_BATCH_SIZE):
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.retry = retry or RetryExecutor()
        self.batch_size = batch_size

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """True between a successful connect() and close()."""

    @abstractmethod
    def connect(self) -> None:
        """Open the backend connection, retrying transient failures."""

    @abstractmethod
    def check_schema_version(self) -> SchemaVersion:
        """
        Read the stored schema version, creating it when absent.

        A stored version that differs from the current one is returned with
        `compatible == False`; the caller decides how loudly to complain.
        """

    @abstractmethod
    def export_graph(self, graph: DependencyGraph) -> ExportResult:
        """Write the graph in one transaction."""

    @abstractmethod
    def export_project_structure(self, structure: ProjectStructure) -> int:
        """Write the build-unit overlay in one transaction. Returns units written."""

    @abstractmethod
    def fetch_versions(self, group_id: str, artifact_id: str) -> List[str]:
        """Every version of one family known to the backend."""

    @abstractmethod
    def cleanup_old_versions(self, group_id: str, artifact_id: str, exported_gavs: Collection[str]) -> int:
        """
        Delete stale versions of one family.

        The newest version (build-tool ordering) is kept, as is every older
        version still depended on by a module outside `exported_gavs`.
        Returns the number of versions deleted.
        """

    @abstractmethod
    def close(self) -> None:
        """Release the connection. Safe to call more than once."""

    def _require_connection(self) -> None:
        if not self.is_connected:
            raise RuntimeError(f"{self.database_type} sink is not connected; call connect() first")

    def _batches(self, rows: list) -> List[list]:
        return [rows[i:i + self.batch_size] for i in range(0, len(rows), self.batch_size)]

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
