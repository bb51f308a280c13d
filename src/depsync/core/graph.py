"""
Dependency Graph implementation backed by rustworkx.

It manages:
- The bimap between coordinates (group:artifact:version) and rustworkx indices.
- The designated root module, which is always a member of the graph.
- Edge deduplication on the (source, target, scope, depth) key used by the
  backends' uniqueness constraints.
"""

from collections import defaultdict
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, Tuple

import rustworkx as rx

from .types import Dependency, Module


class DependencyGraph:
    """
    Versioned, conflict-aware dependency graph of one exported root.

    Features:
    - O(1) module lookup via coordinate-to-index bimap
    - Family index (group:artifact -> versions) for cleanup
    - Edges kept in insertion order, which is also the export order
    """

    def __init__(self, root: Module):
        self._graph = rx.PyDiGraph(multigraph=True)
        self._gav_to_idx: Dict[str, int] = {}
        self._idx_to_gav: Dict[int, str] = {}
        self._families: Dict[str, Set[str]] = defaultdict(set)
        self._edge_keys: Set[Tuple[str, str, str, int]] = set()
        self._root = root
        self.add_module(root)

    @property
    def root(self) -> Module:
        return self._root

    def add_module(self, module: Module) -> Module:
        """
        Add a module if its coordinate is new.

        Returns the module instance stored in the graph, which is the first
        one added for that coordinate.
        """
        existing = self._gav_to_idx.get(module.gav)
        if existing is not None:
            return self._graph[existing]

        idx = self._graph.add_node(module)
        self._gav_to_idx[module.gav] = idx
        self._idx_to_gav[idx] = module.gav
        self._families[module.ga].add(module.gav)
        return module

    def add_dependency(self, dependency: Dependency) -> bool:
        """
        Add an edge, adding its endpoints first.

        Returns False when an edge with the same (source, target, scope, depth)
        key is already present; the first occurrence is kept.
        """
        if dependency.key in self._edge_keys:
            return False

        self.add_module(dependency.source)
        self.add_module(dependency.target)
        u_idx = self._gav_to_idx[dependency.source.gav]
        v_idx = self._gav_to_idx[dependency.target.gav]
        self._graph.add_edge(u_idx, v_idx, dependency)
        self._edge_keys.add(dependency.key)
        return True

    def has_module(self, gav: str) -> bool:
        return gav in self._gav_to_idx

    def get_module(self, gav: str) -> Optional[Module]:
        idx = self._gav_to_idx.get(gav)
        if idx is None:
            return None
        return self._graph[idx]

    def find_module(self, group_id: str, artifact_id: str, version: str) -> Optional[Module]:
        return self.get_module(f"{group_id}:{artifact_id}:{version}")

    def find_module_versions(self, group_id: str, artifact_id: str) -> List[Module]:
        """All modules in this graph belonging to one family."""
        gavs = self._families.get(f"{group_id}:{artifact_id}", set())
        return [self.get_module(gav) for gav in sorted(gavs)]

    def unique_families(self) -> Set[str]:
        return {ga for ga, gavs in self._families.items() if gavs}

    def iter_modules(self) -> Iterator[Module]:
        return iter(self._graph.nodes())

    def iter_dependencies(self) -> Iterator[Dependency]:
        return iter(self._graph.edges())

    @property
    def modules(self) -> List[Module]:
        return list(self._graph.nodes())

    @property
    def dependencies(self) -> List[Dependency]:
        return list(self._graph.edges())

    @property
    def module_count(self) -> int:
        return self._graph.num_nodes()

    @property
    def dependency_count(self) -> int:
        return self._graph.num_edges()

    @property
    def direct_dependencies(self) -> List[Dependency]:
        return [d for d in self.iter_dependencies() if d.depth == 0]

    @property
    def transitive_dependencies(self) -> List[Dependency]:
        return [d for d in self.iter_dependencies() if d.depth > 0]

    @property
    def resolved_dependencies(self) -> List[Dependency]:
        return [d for d in self.iter_dependencies() if d.is_resolved]

    @property
    def conflicted_dependencies(self) -> List[Dependency]:
        return [d for d in self.iter_dependencies() if not d.is_resolved]

    def dependencies_from(self, module: Module) -> List[Dependency]:
        idx = self._gav_to_idx.get(module.gav)
        if idx is None:
            return []
        return [data for _, _, data in self._graph.out_edges(idx)]

    def dependencies_to(self, module: Module) -> List[Dependency]:
        idx = self._gav_to_idx.get(module.gav)
        if idx is None:
            return []
        return [data for _, _, data in self._graph.in_edges(idx)]

    def get_descendants(self, gav: str) -> Set[str]:
        """Coordinates reachable from the given module."""
        if gav not in self._gav_to_idx:
            return set()
        indices = rx.descendants(self._graph, self._gav_to_idx[gav])
        return {self._idx_to_gav[idx] for idx in indices}

    def filter(
        self,
        kept_modules: Iterable[Module],
        kept_dependencies: Iterable[Dependency],
    ) -> "DependencyGraph":
        """
        Build a new graph with the same root from a subset of this one.

        The root is always part of the result, even when no kept edge
        references it.
        """
        filtered = DependencyGraph(self._root)
        for module in kept_modules:
            filtered.add_module(module)
        for dependency in kept_dependencies:
            filtered.add_dependency(dependency)
        return filtered

    def get_stats(self) -> Dict[str, Any]:
        scope_counts: Dict[str, int] = defaultdict(int)
        for dependency in self.iter_dependencies():
            scope_counts[dependency.scope.value] += 1

        return {
            "root": self._root.gav,
            "total_modules": self.module_count,
            "total_dependencies": self.dependency_count,
            "direct_dependencies": len(self.direct_dependencies),
            "transitive_dependencies": len(self.transitive_dependencies),
            "conflicts": len(self.conflicted_dependencies),
            "families": len(self.unique_families()),
            "dependencies_by_scope": dict(scope_counts),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root": self._root.model_dump(mode="json"),
            "modules": [m.model_dump(mode="json") for m in self.iter_modules()],
            "dependencies": [
                {
                    "source": d.source.gav,
                    "target": d.target.gav,
                    "scope": d.scope.value,
                    "optional": d.optional,
                    "depth": d.depth,
                    "is_resolved": d.is_resolved,
                }
                for d in self.iter_dependencies()
            ],
            "stats": self.get_stats(),
        }

    def to_detailed_string(self) -> str:
        lines = [f"DependencyGraph: root {self._root.gav}"]
        lines.append(f"  Modules ({self.module_count}):")
        lines.extend(f"    - {m.gav}" for m in self.iter_modules())
        lines.append(f"  Dependencies ({self.dependency_count}):")
        lines.extend(f"    - {d.describe()}" for d in self.iter_dependencies())
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"DependencyGraph(root={self._root.gav}, modules={self.module_count}, "
            f"dependencies={self.dependency_count}, conflicts={len(self.conflicted_dependencies)})"
        )
