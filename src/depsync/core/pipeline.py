"""
End-to-end export pipeline.

    validate config -> build graph -> filter -> connect -> check schema
        -> export graph -> [export project structure] -> [cleanup] -> close

Error policy: configuration errors always propagate. Any other depsync
failure propagates when `fail_on_error` is set; otherwise it is logged as a
warning and recorded in the returned summary.
"""

import logging
import time
from typing import Callable, List, Optional

from pydantic import BaseModel, Field

from ..config import ConfigurationValidator, ExportConfig
from ..errors import ConfigurationError, DepsyncError
from ..filtering.engine import FilterEngine
from .builder import GraphBuilder
from .cleanup import VersionCleanupService
from .graph import DependencyGraph
from .structure import ProjectStructure
from .tree import RawTree

logger = logging.getLogger(__name__)


class ExportSummary(BaseModel):
    """
    Structured outcome of one pipeline run.
    """
    root: str
    database_type: Optional[str] = None
    dry_run: bool = False
    success: bool = True
    error: Optional[str] = None

    modules_built: int = 0
    dependencies_built: int = 0
    cycles_skipped: int = 0
    max_depth_reached: int = -1
    dependencies_excluded: int = 0

    schema_version: Optional[str] = None
    schema_compatible: Optional[bool] = None

    modules_exported: int = 0
    dependencies_exported: int = 0
    conflicts_detected: int = 0
    project_modules_exported: int = 0
    versions_deleted: int = 0
    cleanup_failures: List[str] = Field(default_factory=list)

    duration_sec: float = 0.0


class ExportPipeline:
    """
    Runs one export with a single sink.

    Args:
        config: Export settings.
        sink_factory: Builds the sink from the config; defaults to
            `depsync.export.create_sink`.
    """

    def __init__(self, config: ExportConfig, sink_factory: Optional[Callable] = None):
        self.config = config
        if sink_factory is None:
            from ..export import create_sink
            sink_factory = create_sink
        self.sink_factory = sink_factory
        self.validator = ConfigurationValidator()
        self.graph: Optional[DependencyGraph] = None

    def run(
        self,
        tree: RawTree,
        structure: Optional[ProjectStructure] = None,
        dry_run: bool = False,
    ) -> ExportSummary:
        start = time.perf_counter()
        config = self.config

        self.validator.validate_or_raise(config, graph_only=dry_run)

        graph, stats = GraphBuilder(config.transitive_depth).build(tree)
        filtered = FilterEngine(config.include_filters, config.exclude_filters, config.scopes).filter(graph)
        self.graph = filtered.graph

        summary = ExportSummary(
            root=graph.root.gav,
            database_type=config.normalized_database_type or None,
            dry_run=dry_run,
            modules_built=stats.modules,
            dependencies_built=stats.dependencies,
            cycles_skipped=stats.cycles_skipped,
            max_depth_reached=stats.max_depth_reached,
            dependencies_excluded=filtered.total_excluded,
            conflicts_detected=len(filtered.graph.conflicted_dependencies),
        )

        if dry_run:
            logger.info(f"Dry run: {filtered.graph!r} not exported")
            summary.duration_sec = round(time.perf_counter() - start, 3)
            return summary

        logger.info(
            f"Exporting {graph.root.gav} to {config.normalized_database_type} "
            f"at {config.masked_url()}"
        )

        try:
            self._export(filtered.graph, structure, summary)
        except ConfigurationError:
            raise
        except DepsyncError as e:
            if config.fail_on_error:
                raise
            logger.warning(f"Export failed, continuing because fail_on_error is off: {e}")
            summary.success = False
            summary.error = str(e)

        summary.duration_sec = round(time.perf_counter() - start, 3)
        return summary

    def _export(
        self,
        graph: DependencyGraph,
        structure: Optional[ProjectStructure],
        summary: ExportSummary,
    ) -> None:
        with self.sink_factory(self.config) as sink:
            sink.connect()

            schema = sink.check_schema_version()
            summary.schema_version = schema.version
            summary.schema_compatible = schema.compatible
            if not schema.compatible:
                if schema.is_older_than_current():
                    logger.warning(f"Database schema {schema.version} is older than this tool's schema")
                elif schema.is_newer_than_current():
                    logger.warning(f"Database schema {schema.version} is newer than this tool's schema")
                else:
                    logger.warning(f"Database schema version {schema.version} is not recognized")

            result = sink.export_graph(graph)
            summary.modules_exported = result.modules_exported
            summary.dependencies_exported = result.dependencies_exported
            summary.conflicts_detected = result.conflicts_detected

            if structure is not None:
                summary.project_modules_exported = sink.export_project_structure(structure)

            if self.config.keep_only_latest_version:
                cleanup = VersionCleanupService(sink)
                summary.versions_deleted = cleanup.cleanup_old_versions(graph)
                summary.cleanup_failures = cleanup.failed_families
