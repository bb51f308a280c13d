"""
Export Command - Build, filter and persist the dependency graph.

Exit codes:
    0  success, or an export failure tolerated because fail-on-error is off
    1  export failure with fail-on-error, or an unreadable dependency tree
    2  configuration error
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from ...config import DEFAULT_MANIFEST, ExportConfig
from ...core.pipeline import ExportPipeline, ExportSummary
from ...core.structure import load_project_structure
from ...core.tree import load_tree
from ...errors import ConfigurationError, DepsyncError
from ..utils import configure_logging, echo_error, echo_info, echo_success, echo_warning

logger = logging.getLogger(__name__)

console = Console()

EXIT_EXPORT_FAILED = 1
EXIT_CONFIG_ERROR = 2


@click.command()
@click.argument("tree_file", type=click.Path(exists=True, dir_okay=False))
@click.option("-c", "--config", "config_path", type=click.Path(dir_okay=False),
              default=str(DEFAULT_MANIFEST), show_default=True, help="depsync.toml manifest")
@click.option("--database-type", type=click.Choice(["neo4j", "sqlite"], case_sensitive=False),
              help="Backend to export to")
@click.option("--url", "connection_url", help="Backend URL or SQLite file path")
@click.option("--username", help="Backend user (Neo4j)")
@click.option("--password", help="Backend password (prefer DEPSYNC_PASSWORD)")
@click.option("--depth", "transitive_depth", type=int,
              help="-1 unlimited, 0 direct only, N transitive levels")
@click.option("--scope", "scopes", multiple=True, help="Allowed scope (repeatable)")
@click.option("--include", "include_filters", multiple=True, help="groupId:artifactId glob to keep (repeatable)")
@click.option("--exclude", "exclude_filters", multiple=True, help="groupId:artifactId glob to drop (repeatable)")
@click.option("--keep-only-latest/--keep-all-versions", "keep_only_latest", default=None,
              help="Delete stale versions after the export")
@click.option("--fail-on-error/--continue-on-error", "fail_on_error", default=None,
              help="Fail the run when the export fails")
@click.option("--structure", "structure_file", type=click.Path(exists=True, dir_okay=False),
              help="Project structure JSON to export alongside the graph")
@click.option("--dry-run", is_flag=True, help="Build and filter only; write nothing")
@click.option("--json", "as_json", is_flag=True, help="Output the summary as JSON")
@click.option("-v", "--verbose", is_flag=True, help="Show detailed output")
@click.option("-q", "--quiet", is_flag=True, help="Only show errors")
def export(
    tree_file: str,
    config_path: str,
    database_type: Optional[str],
    connection_url: Optional[str],
    username: Optional[str],
    password: Optional[str],
    transitive_depth: Optional[int],
    scopes: Tuple[str, ...],
    include_filters: Tuple[str, ...],
    exclude_filters: Tuple[str, ...],
    keep_only_latest: Optional[bool],
    fail_on_error: Optional[bool],
    structure_file: Optional[str],
    dry_run: bool,
    as_json: bool,
    verbose: bool,
    quiet: bool,
):
    """
    Export a resolved dependency tree to a graph or relational database.

    Command-line options override values from the manifest.
    """
    configure_logging(verbose=verbose, quiet=quiet)

    try:
        config = ExportConfig.load(Path(config_path)).with_overrides(
            database_type=database_type,
            connection_url=connection_url,
            username=username,
            password=password,
            transitive_depth=transitive_depth,
            scopes=scopes,
            include_filters=include_filters,
            exclude_filters=exclude_filters,
            keep_only_latest_version=keep_only_latest,
            fail_on_error=fail_on_error,
        )

        tree = load_tree(Path(tree_file))
        structure = load_project_structure(Path(structure_file)) if structure_file else None

        if not as_json and not quiet:
            target = "dry run" if dry_run else f"{config.normalized_database_type} at {config.masked_url()}"
            click.echo(f"📦 Exporting {tree.root.gav} ({target})")

        pipeline = ExportPipeline(config)
        summary = pipeline.run(tree, structure=structure, dry_run=dry_run)

    except ConfigurationError as e:
        echo_error(str(e))
        sys.exit(EXIT_CONFIG_ERROR)
    except DepsyncError as e:
        echo_error(f"Export failed: {e}")
        sys.exit(EXIT_EXPORT_FAILED)

    if as_json:
        click.echo(summary.model_dump_json(indent=2))
        return

    if not quiet:
        _render_summary(summary)
        if verbose and pipeline.graph is not None:
            click.echo(pipeline.graph.to_detailed_string())


def _render_summary(summary: ExportSummary) -> None:
    table = Table(title=f"depsync export: {summary.root}", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Modules built", str(summary.modules_built))
    table.add_row("Dependencies built", str(summary.dependencies_built))
    table.add_row("Excluded by filters", str(summary.dependencies_excluded))
    table.add_row("Conflicts", str(summary.conflicts_detected))
    table.add_row("Cycles skipped", str(summary.cycles_skipped))
    if not summary.dry_run:
        table.add_row("Modules exported", str(summary.modules_exported))
        table.add_row("Dependencies exported", str(summary.dependencies_exported))
        if summary.project_modules_exported:
            table.add_row("Project modules", str(summary.project_modules_exported))
        table.add_row("Old versions deleted", str(summary.versions_deleted))
    table.add_row("Duration", f"{summary.duration_sec:.2f}s")
    console.print(table)

    if summary.dry_run:
        echo_info("Dry run: nothing was written")
        return

    if summary.schema_compatible is False:
        echo_warning(f"Database schema version {summary.schema_version} differs from the expected one")
    for family in summary.cleanup_failures:
        echo_warning(f"Cleanup failed for {family}")

    if summary.success:
        echo_success("Export complete")
    else:
        echo_warning(f"Export failed (continuing): {summary.error}")
