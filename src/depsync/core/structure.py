"""
Project structure overlay.

A multi-module build is a tree of build units: one root project that
contains submodules, which may contain submodules of their own. These units
share the coordinate scheme of Module but are a separate node type and are
exported to their own tables/labels, never merged with Module records.
"""

from __future__ import annotations

import json
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from ..errors import ResolutionError
from .types import format_gav


@dataclass
class ProjectModule:
    """A build unit in the project structure."""

    group_id: str
    artifact_id: str
    version: str
    is_root_project: bool = False
    submodules: List[ProjectModule] = field(default_factory=list)

    @property
    def gav(self) -> str:
        return format_gav(self.group_id, self.artifact_id, self.version)

    @property
    def ga(self) -> str:
        return f"{self.group_id}:{self.artifact_id}"

    def add_submodule(self, submodule: ProjectModule) -> None:
        self.submodules.append(submodule)

    def iter_descendants(self) -> Iterator[ProjectModule]:
        """Depth-first, pre-order walk over every nested submodule."""
        for sub in self.submodules:
            yield sub
            yield from sub.iter_descendants()

    def __hash__(self):
        return hash(self.gav)

    def __eq__(self, other):
        if isinstance(other, ProjectModule):
            return self.gav == other.gav
        return False


@dataclass(frozen=True)
class ModuleRelationship:
    """Containment edge: parent contains child."""
    parent: ProjectModule
    child: ProjectModule


class ProjectStructure:
    """
    The containment tree of one build, indexed by coordinate.
    """

    def __init__(self, root: ProjectModule):
        self._root = root
        self._by_gav: Dict[str, ProjectModule] = {root.gav: root}
        for module in root.iter_descendants():
            self._by_gav.setdefault(module.gav, module)

    @classmethod
    def single_module(cls, group_id: str, artifact_id: str, version: str) -> ProjectStructure:
        return cls(ProjectModule(group_id, artifact_id, version, is_root_project=True))

    @property
    def root(self) -> ProjectModule:
        return self._root

    @property
    def modules(self) -> List[ProjectModule]:
        return list(self._by_gav.values())

    @property
    def module_count(self) -> int:
        return len(self._by_gav)

    @property
    def is_multi_module(self) -> bool:
        return len(self._by_gav) > 1

    def find_module(self, group_id: str, artifact_id: str, version: str) -> Optional[ProjectModule]:
        return self._by_gav.get(format_gav(group_id, artifact_id, version))

    def relationships(self) -> List[ModuleRelationship]:
        """Every parent -> child containment edge, parents before children."""
        result: List[ModuleRelationship] = []
        queue = deque([self._root])
        while queue:
            parent = queue.popleft()
            for child in parent.submodules:
                result.append(ModuleRelationship(parent, child))
                queue.append(child)
        return result

    def __repr__(self) -> str:
        return (
            f"ProjectStructure(root={self._root.gav}, modules={self.module_count}, "
            f"multi_module={self.is_multi_module})"
        )


class ProjectStructureBuilder:
    """
    Assembles a ProjectStructure from submodules addressed by relative path.

    A submodule at "services/api" becomes a child of the submodule at
    "services", or of the root when no such parent path was registered.
    """

    def __init__(self):
        self._root: Optional[ProjectModule] = None
        self._by_path: Dict[str, ProjectModule] = {}

    def root_module(self, group_id: str, artifact_id: str, version: str) -> ProjectStructureBuilder:
        self._root = ProjectModule(group_id, artifact_id, version, is_root_project=True)
        self._by_path[""] = self._root
        return self

    def submodule(self, relative_path: str, group_id: str, artifact_id: str, version: str) -> ProjectStructureBuilder:
        path = relative_path.strip("/")
        self._by_path[path] = ProjectModule(group_id, artifact_id, version)
        return self

    def build(self) -> ProjectStructure:
        if self._root is None:
            raise ValueError("Root module must be specified")

        # Shorter paths first so every parent is linked before its children
        for path in sorted(self._by_path, key=lambda p: (p.count("/"), p)):
            if not path:
                continue
            parent = self._by_path[self._parent_path(path)]
            parent.add_submodule(self._by_path[path])

        return ProjectStructure(self._root)

    def _parent_path(self, path: str) -> str:
        candidate = path
        while "/" in candidate:
            candidate = candidate.rsplit("/", 1)[0]
            if candidate in self._by_path:
                return candidate
        return ""


def project_structure_from_dict(data: Dict[str, Any]) -> ProjectStructure:
    """
    Parse a nested structure document.

    Shape: {"groupId", "artifactId", "version", "modules": [<same shape>...]}.
    A child without a groupId or version inherits its parent's.
    """
    def parse(node: Dict[str, Any], parent: Optional[ProjectModule]) -> ProjectModule:
        try:
            group_id = node.get("groupId") or (parent.group_id if parent else None)
            version = node.get("version") or (parent.version if parent else None)
            artifact_id = node["artifactId"]
        except (KeyError, AttributeError, TypeError) as e:
            raise ResolutionError(f"Malformed project structure entry: {node!r}") from e
        if not group_id or not version:
            raise ResolutionError(f"Project structure entry lacks a coordinate: {node!r}")

        module = ProjectModule(group_id, artifact_id, version, is_root_project=parent is None)
        for child in node.get("modules", []):
            module.add_submodule(parse(child, module))
        return module

    return ProjectStructure(parse(data, None))


def load_project_structure(path: Path) -> ProjectStructure:
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise ResolutionError(f"Cannot read project structure {path}: {e}") from e
    return project_structure_from_dict(data)
