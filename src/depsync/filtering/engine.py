"""
Filter engine.

Applies include/exclude patterns and a scope allow-list to the edges of an
already-built graph. Filtering only shapes the output: traversal and
conflict marking happened on the unfiltered graph and are not repeated.

Decision order per edge (first match wins):
1. target matches an exclude pattern       -> dropped
2. include patterns given, none match      -> dropped
3. scope allow-list given, scope not in it -> dropped
4. kept
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set

from ..core.graph import DependencyGraph
from ..core.types import Dependency, Module
from .patterns import PatternMatcher

logger = logging.getLogger(__name__)


@dataclass
class FilterResult:
    """Filtered graph plus the reason counts for every dropped edge."""
    graph: DependencyGraph
    original_count: int
    kept_count: int
    excluded_by_pattern: int = 0
    excluded_by_include: int = 0
    excluded_by_scope: int = 0

    @property
    def total_excluded(self) -> int:
        return self.excluded_by_pattern + self.excluded_by_include + self.excluded_by_scope

    @property
    def has_exclusions(self) -> bool:
        return self.total_excluded > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original_count": self.original_count,
            "kept_count": self.kept_count,
            "excluded_by_pattern": self.excluded_by_pattern,
            "excluded_by_include": self.excluded_by_include,
            "excluded_by_scope": self.excluded_by_scope,
            "total_excluded": self.total_excluded,
        }


def _non_blank(values: Optional[Iterable[str]]) -> List[str]:
    return [v.strip() for v in (values or []) if v and v.strip()]


class FilterEngine:
    """
    Args:
        include: groupId:artifactId globs; when non-empty only matching
            targets are kept.
        exclude: groupId:artifactId globs; matching targets are always dropped.
        scopes: Allowed scopes (case-insensitive); empty allows every scope.
    """

    def __init__(
        self,
        include: Optional[Iterable[str]] = None,
        exclude: Optional[Iterable[str]] = None,
        scopes: Optional[Iterable[str]] = None,
    ):
        self.include = [PatternMatcher(p) for p in _non_blank(include)]
        self.exclude = [PatternMatcher(p) for p in _non_blank(exclude)]
        self.scopes: Set[str] = {s.lower() for s in _non_blank(scopes)}

    @property
    def is_active(self) -> bool:
        return bool(self.include or self.exclude or self.scopes)

    def filter(self, graph: DependencyGraph) -> FilterResult:
        original_count = graph.dependency_count

        if not self.is_active:
            return FilterResult(graph=graph, original_count=original_count, kept_count=original_count)

        kept_dependencies: List[Dependency] = []
        kept_modules: Dict[str, Module] = {graph.root.gav: graph.root}
        by_pattern = by_include = by_scope = 0

        for dependency in graph.iter_dependencies():
            target = dependency.target

            if self._matches_any(self.exclude, target):
                by_pattern += 1
                continue

            if self.include and not self._matches_any(self.include, target):
                by_include += 1
                continue

            if self.scopes and dependency.scope.value.lower() not in self.scopes:
                by_scope += 1
                continue

            kept_dependencies.append(dependency)
            kept_modules.setdefault(dependency.source.gav, dependency.source)
            kept_modules.setdefault(target.gav, target)

        filtered = graph.filter(kept_modules.values(), kept_dependencies)
        result = FilterResult(
            graph=filtered,
            original_count=original_count,
            kept_count=len(kept_dependencies),
            excluded_by_pattern=by_pattern,
            excluded_by_include=by_include,
            excluded_by_scope=by_scope,
        )

        if result.has_exclusions:
            logger.info(
                f"Filtered {result.total_excluded} of {original_count} dependencies "
                f"(pattern: {by_pattern}, include: {by_include}, scope: {by_scope})"
            )
        return result

    @staticmethod
    def _matches_any(matchers: List[PatternMatcher], module: Module) -> bool:
        return any(m.matches(module.group_id, module.artifact_id) for m in matchers)
