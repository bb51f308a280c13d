"""
Raw upstream dependency tree.

The upstream resolver hands over a nested JSON document. It is flattened into
an arena: a list of RawNode records whose children are list indices, so the
graph builder can walk it without recursion into the source document.

Document shape (every level):

    {
      "groupId": "com.acme", "artifactId": "app", "version": "1.0",
      "packaging": "jar", "scope": "compile", "optional": false,
      "conflictWinner": "com.acme:lib:2.0",
      "children": [ ... ]
    }
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import ResolutionError
from .types import format_gav

logger = logging.getLogger(__name__)


class _TreeEntry(BaseModel):
    """Validation model for a single level of the upstream document."""
    group_id: str = Field(alias="groupId", min_length=1)
    artifact_id: str = Field(alias="artifactId", min_length=1)
    version: str = Field(min_length=1)
    packaging: str = "jar"
    scope: Optional[str] = None
    optional: bool = False
    conflict_winner: Optional[str] = Field(default=None, alias="conflictWinner")
    children: List[Dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


@dataclass
class RawNode:
    """One node of the upstream tree with index-based child references."""
    group_id: str
    artifact_id: str
    version: str
    packaging: str = "jar"
    scope: Optional[str] = None
    optional: bool = False
    conflict_winner: Optional[str] = None
    children: List[int] = field(default_factory=list)

    @property
    def gav(self) -> str:
        return format_gav(self.group_id, self.artifact_id, self.version)

    @property
    def is_conflicted(self) -> bool:
        """True when the resolver superseded this node with another version."""
        return self.conflict_winner is not None


class RawTree:
    """Arena of RawNode records. Index 0 is always the root."""

    ROOT = 0

    def __init__(self, nodes: List[RawNode]):
        if not nodes:
            raise ResolutionError("Dependency tree has no root")
        self._nodes = nodes

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawTree":
        """
        Flatten a parsed upstream document into an arena.

        Raises:
            ResolutionError: If any level lacks a coordinate or has the wrong shape.
        """
        if not isinstance(data, dict):
            raise ResolutionError(f"Dependency tree root must be an object, got {type(data).__name__}")

        nodes: List[RawNode] = []
        # (document entry, index of the parent node to link into)
        pending: List[Tuple[Any, Optional[int]]] = [(data, None)]

        while pending:
            raw, parent_idx = pending.pop()
            entry = _parse_entry(raw)
            idx = len(nodes)
            nodes.append(RawNode(
                group_id=entry.group_id,
                artifact_id=entry.artifact_id,
                version=entry.version,
                packaging=entry.packaging,
                scope=entry.scope,
                optional=entry.optional,
                conflict_winner=entry.conflict_winner,
            ))
            if parent_idx is not None:
                nodes[parent_idx].children.append(idx)
            # Reversed so children pop (and get linked) in document order
            for child in reversed(entry.children):
                pending.append((child, idx))

        logger.debug(f"Loaded dependency tree with {len(nodes)} nodes, root {nodes[0].gav}")
        return cls(nodes)

    @property
    def root(self) -> RawNode:
        return self._nodes[self.ROOT]

    def node(self, idx: int) -> RawNode:
        return self._nodes[idx]

    def children_of(self, idx: int) -> List[RawNode]:
        return [self._nodes[c] for c in self._nodes[idx].children]

    def __len__(self) -> int:
        return len(self._nodes)


def _parse_entry(raw: Any) -> _TreeEntry:
    if not isinstance(raw, dict):
        raise ResolutionError(f"Dependency tree entry must be an object, got {raw!r}")
    try:
        return _TreeEntry.model_validate(raw)
    except ValidationError as e:
        label = ":".join(str(raw.get(k, "?")) for k in ("groupId", "artifactId", "version"))
        raise ResolutionError(f"Malformed dependency tree entry {label}: {e}") from e


def load_tree(path: Path) -> RawTree:
    """Read the upstream resolver's JSON output."""
    try:
        data = json.loads(Path(path).read_text())
    except OSError as e:
        raise ResolutionError(f"Cannot read dependency tree {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ResolutionError(f"Dependency tree {path} is not valid JSON: {e}") from e
    return RawTree.from_dict(data)
