"""
Core data model and algorithms: types, graph, builder, versions, retry.
"""

from .graph import DependencyGraph
from .types import Dependency, ExportResult, Module, SchemaVersion, Scope

__all__ = ["DependencyGraph", "Dependency", "ExportResult", "Module", "SchemaVersion", "Scope"]
