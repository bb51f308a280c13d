"""
depsync - Dependency graph export for multi-module builds.

depsync takes the resolved dependency tree of a build, reshapes it into a
versioned, conflict-aware graph, filters it, and writes it to a graph or
relational database so dependency questions can be answered with queries.

Key Components:
- core: Data types, graph builder, version ordering, retry, pipeline
- filtering: groupId:artifactId glob and scope filters
- export: Neo4j and SQLite sinks

Usage:
    from depsync import ExportConfig, ExportPipeline, load_tree

    config = ExportConfig(database_type="sqlite", connection_url="deps.db")
    summary = ExportPipeline(config).run(load_tree(Path("tree.json")))
"""

__version__ = "0.1.0"

from .config import ExportConfig
from .core.pipeline import ExportPipeline, ExportSummary
from .core.tree import load_tree
from .core.types import Dependency, Module, Scope
from .errors import DepsyncError

__all__ = [
    "__version__",
    "DepsyncError",
    "Dependency",
    "ExportConfig",
    "ExportPipeline",
    "ExportSummary",
    "Module",
    "Scope",
    "load_tree",
]
