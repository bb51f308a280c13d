"""
Core type definitions for depsync.

Models the artifacts and relationships exported to the backends:
- Module: a build artifact identified by its (group, artifact, version) coordinate
- Dependency: a directed, scoped, depth-tagged edge between two modules
- SchemaVersion: the single version record kept by every backend
- ExportResult: statistics returned by a sink after an export
"""

import logging
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Dict, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..config import SCHEMA_VERSION

logger = logging.getLogger(__name__)


class Scope(StrEnum):
    """Dependency scopes understood by the upstream resolver."""
    COMPILE = "compile"
    RUNTIME = "runtime"
    TEST = "test"
    PROVIDED = "provided"
    SYSTEM = "system"
    IMPORT = "import"

    @classmethod
    def parse(cls, value: str | None) -> "Scope":
        """Parse a scope string case-insensitively, defaulting to compile."""
        if not value:
            return cls.COMPILE
        try:
            return cls(value.strip().lower())
        except ValueError:
            logger.warning(f"Unknown dependency scope '{value}', treating it as compile")
            return cls.COMPILE


def format_gav(group_id: str, artifact_id: str, version: str) -> str:
    return f"{group_id}:{artifact_id}:{version}"


class Module(BaseModel):
    """
    A build artifact in the dependency graph.

    Identity is the coordinate triple. The export timestamp and the latest
    flag are bookkeeping fields refreshed on every re-export.
    """
    group_id: str = Field(min_length=1)
    artifact_id: str = Field(min_length=1)
    version: str = Field(min_length=1)
    packaging: str = "jar"
    export_timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    is_latest: bool = True

    model_config = ConfigDict(frozen=False, extra="ignore")

    @property
    def gav(self) -> str:
        return format_gav(self.group_id, self.artifact_id, self.version)

    @property
    def ga(self) -> str:
        return f"{self.group_id}:{self.artifact_id}"

    @property
    def coordinate(self) -> Tuple[str, str, str]:
        return (self.group_id, self.artifact_id, self.version)

    def __hash__(self):
        return hash(self.coordinate)

    def __eq__(self, other):
        if isinstance(other, Module):
            return self.coordinate == other.coordinate
        return False

    def __str__(self) -> str:
        return self.gav


class Dependency(BaseModel):
    """
    Directed dependency from a source module to a target module.

    `depth` is the distance from the exported root: 0 for the root's direct
    dependencies. `is_resolved` is False when the upstream resolver superseded
    the target with another version of the same artifact.
    """
    source: Module
    target: Module
    scope: Scope = Scope.COMPILE
    optional: bool = False
    depth: int = Field(default=0, ge=0)
    is_resolved: bool = True
    export_timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> Tuple[str, str, str, int]:
        """Overwrite identity: (source, target, scope, depth)."""
        return (self.source.gav, self.target.gav, self.scope.value, self.depth)

    @property
    def is_direct(self) -> bool:
        return self.depth == 0

    def describe(self) -> str:
        status = "resolved" if self.is_resolved else "conflict"
        flags = f"{self.scope.value}, depth={self.depth}, {status}"
        if self.optional:
            flags += ", optional"
        return f"{self.source.gav} -> {self.target.gav} ({flags})"


class SchemaVersion(BaseModel):
    """
    Schema version record stored in the backend.

    A mismatch is not fatal; the caller decides whether to warn.
    """
    version: str
    applied_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def compatible(self) -> bool:
        return self.version == SCHEMA_VERSION

    def is_older_than_current(self) -> bool:
        return _compare_numeric(self.version, SCHEMA_VERSION) < 0

    def is_newer_than_current(self) -> bool:
        return _compare_numeric(self.version, SCHEMA_VERSION) > 0


def _compare_numeric(v1: str, v2: str) -> int:
    """Dot-separated numeric comparison for schema versions; non-numeric parts count as 0."""
    def parse(part: str) -> int:
        return int(part) if part.isdigit() else 0

    parts1 = [parse(p) for p in v1.split(".")]
    parts2 = [parse(p) for p in v2.split(".")]
    length = max(len(parts1), len(parts2))
    parts1 += [0] * (length - len(parts1))
    parts2 += [0] * (length - len(parts2))
    return (parts1 > parts2) - (parts1 < parts2)


class ExportResult(BaseModel):
    """Statistics for one export_graph call."""
    modules_exported: int = 0
    dependencies_exported: int = 0
    conflicts_detected: int = 0
    execution_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()
