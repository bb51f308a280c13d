"""
Graph builder: raw upstream tree -> DependencyGraph.

Walks the arena depth-first from the root, bounded by a transitive depth
limit, and marks every edge resolved or conflicted from the resolver's
conflict marker. Traversal continues below conflicted nodes so both sides
of a version conflict keep their subtrees.
"""

import logging
from dataclasses import dataclass
from typing import FrozenSet, List, Tuple

from ..config import UNLIMITED_DEPTH
from .graph import DependencyGraph
from .tree import RawNode, RawTree
from .types import Dependency, Module, Scope

logger = logging.getLogger(__name__)


@dataclass
class BuildStats:
    """Counters collected while building one graph."""
    modules: int = 0
    dependencies: int = 0
    conflicts: int = 0
    max_depth_reached: int = -1
    cycles_skipped: int = 0

    def to_dict(self) -> dict:
        return {
            "modules": self.modules,
            "dependencies": self.dependencies,
            "conflicts": self.conflicts,
            "max_depth_reached": self.max_depth_reached,
            "cycles_skipped": self.cycles_skipped,
        }


def _to_module(node: RawNode) -> Module:
    return Module(
        group_id=node.group_id,
        artifact_id=node.artifact_id,
        version=node.version,
        packaging=node.packaging,
    )


class GraphBuilder:
    """
    Builds a DependencyGraph from a RawTree.

    Args:
        max_depth: -1 for unlimited, 0 for direct dependencies only,
            N for N levels of transitive dependencies.
    """

    def __init__(self, max_depth: int = UNLIMITED_DEPTH):
        if max_depth < UNLIMITED_DEPTH:
            raise ValueError(f"max_depth must be >= -1, got {max_depth}")
        self.max_depth = max_depth

    def build(self, tree: RawTree) -> Tuple[DependencyGraph, BuildStats]:
        root = _to_module(tree.root)
        graph = DependencyGraph(root)
        stats = BuildStats()

        # (source module, arena index whose children to visit, depth of those
        # children, coordinates already on this path)
        stack: List[Tuple[Module, int, int, FrozenSet[str]]] = [
            (root, RawTree.ROOT, 0, frozenset({root.gav}))
        ]

        while stack:
            source, node_idx, depth, path = stack.pop()
            if self.max_depth >= 0 and depth > self.max_depth:
                continue

            children = tree.node(node_idx).children
            frames = []
            for child_idx in children:
                child = tree.node(child_idx)
                if child.gav in path:
                    logger.debug(f"Skipping cycle back to {child.gav} at depth {depth}")
                    stats.cycles_skipped += 1
                    continue

                target = graph.add_module(_to_module(child))
                dependency = Dependency(
                    source=source,
                    target=target,
                    scope=Scope.parse(child.scope),
                    optional=child.optional,
                    depth=depth,
                    is_resolved=not child.is_conflicted,
                )
                if graph.add_dependency(dependency) and not dependency.is_resolved:
                    stats.conflicts += 1
                stats.max_depth_reached = max(stats.max_depth_reached, depth)

                frames.append((target, child_idx, depth + 1, path | {child.gav}))

            # Reversed so the first child is walked first
            stack.extend(reversed(frames))

        stats.modules = graph.module_count
        stats.dependencies = graph.dependency_count
        logger.info(
            f"Built graph for {root.gav}: {stats.modules} modules, "
            f"{stats.dependencies} dependencies, {stats.conflicts} conflicts"
        )
        return graph, stats
