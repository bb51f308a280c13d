"""
SQLite export sink.

Relational backend for the dependency graph:
- modules / dependencies tables with a unique coordinate triple and a unique
  (source, target, scope, depth) edge key
- cascading deletes from modules to their edges
- explicit BEGIN IMMEDIATE / COMMIT / ROLLBACK so a whole export is one
  transaction regardless of how many edge batches it writes
"""

import logging
import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Collection, Dict, List, Optional

from ..config import DEFAULT_BATCH_SIZE, DEFAULT_CONNECTION_TIMEOUT, SCHEMA_VERSION
from ..core.graph import DependencyGraph
from ..core.retry import RetryExecutor
from ..core.structure import ProjectStructure
from ..core.types import Dependency, ExportResult, Module, SchemaVersion
from ..core.versions import sort_versions_descending
from ..errors import ConstraintError, DepsyncError, ExportConnectionError, TransactionError
from .base import ExportSink

logger = logging.getLogger(__name__)

URL_PREFIX = "sqlite:///"

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS schema_version (
        version TEXT PRIMARY KEY,
        applied_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS modules (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        group_id TEXT NOT NULL,
        artifact_id TEXT NOT NULL,
        version TEXT NOT NULL,
        packaging TEXT NOT NULL DEFAULT 'jar',
        export_timestamp TEXT NOT NULL,
        is_latest INTEGER NOT NULL DEFAULT 1,
        UNIQUE (group_id, artifact_id, version)
    );

    CREATE TABLE IF NOT EXISTS dependencies (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        source_id INTEGER NOT NULL REFERENCES modules(id) ON DELETE CASCADE,
        target_id INTEGER NOT NULL REFERENCES modules(id) ON DELETE CASCADE,
        scope TEXT NOT NULL,
        optional INTEGER NOT NULL DEFAULT 0,
        depth INTEGER NOT NULL,
        is_resolved INTEGER NOT NULL DEFAULT 1,
        export_timestamp TEXT NOT NULL,
        UNIQUE (source_id, target_id, scope, depth)
    );

    CREATE TABLE IF NOT EXISTS project_modules (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        group_id TEXT NOT NULL,
        artifact_id TEXT NOT NULL,
        version TEXT NOT NULL,
        is_root_project INTEGER NOT NULL DEFAULT 0,
        export_timestamp TEXT NOT NULL,
        UNIQUE (group_id, artifact_id, version)
    );

    CREATE TABLE IF NOT EXISTS project_module_links (
        parent_id INTEGER NOT NULL REFERENCES project_modules(id) ON DELETE CASCADE,
        child_id INTEGER NOT NULL REFERENCES project_modules(id) ON DELETE CASCADE,
        PRIMARY KEY (parent_id, child_id)
    );

    CREATE INDEX IF NOT EXISTS idx_modules_family ON modules(group_id, artifact_id);
    CREATE INDEX IF NOT EXISTS idx_modules_latest ON modules(is_latest);
    CREATE INDEX IF NOT EXISTS idx_dependencies_source ON dependencies(source_id);
    CREATE INDEX IF NOT EXISTS idx_dependencies_target ON dependencies(target_id);
"""

_UPSERT_MODULE = """
    INSERT INTO modules (group_id, artifact_id, version, packaging, export_timestamp, is_latest)
    VALUES (?, ?, ?, ?, ?, 1)
    ON CONFLICT (group_id, artifact_id, version) DO UPDATE SET
        packaging = excluded.packaging,
        export_timestamp = excluded.export_timestamp,
        is_latest = 1
"""

_UPSERT_DEPENDENCY = """
    INSERT INTO dependencies
        (source_id, target_id, scope, optional, depth, is_resolved, export_timestamp)
    VALUES (?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT (source_id, target_id, scope, depth) DO UPDATE SET
        optional = excluded.optional,
        is_resolved = excluded.is_resolved,
        export_timestamp = excluded.export_timestamp
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_busy(error: sqlite3.OperationalError) -> bool:
    """Another connection holds the write lock past our busy timeout."""
    message = str(error).lower()
    return "database is locked" in message or "database is busy" in message


def database_path(url: str) -> str:
    """Accept either a plain file path or a sqlite:///path URL."""
    url = url.strip()
    if url.startswith(URL_PREFIX):
        return url[len(URL_PREFIX):]
    return url


class SQLiteSink(ExportSink):
    """
    Export sink writing to a local SQLite file.

    Args:
        url: File path, ``sqlite:///path`` or ``:memory:``.
        timeout: Seconds to wait on a locked database.
    """

    database_type = "sqlite"

    def __init__(
        self,
        url: str,
        retry: Optional[RetryExecutor] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        timeout: float = DEFAULT_CONNECTION_TIMEOUT,
    ):
        retry = (retry or RetryExecutor()).with_types(
            non_transient=(sqlite3.IntegrityError, sqlite3.ProgrammingError),
        )
        super().__init__(retry=retry, batch_size=batch_size)
        self.db_path = database_path(url)
        self.timeout = timeout
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    def connect(self) -> None:
        if self._conn is not None:
            return
        self._conn = self.retry.execute(self._open, f"Connecting to SQLite database {self.db_path}")
        logger.info(f"Connected to SQLite database {self.db_path}")

    def _open(self) -> sqlite3.Connection:
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        # Autocommit mode; transactions are opened explicitly
        conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        try:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys=ON")
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.executescript(_SCHEMA)
        except Exception:
            conn.close()
            raise
        return conn

    @contextmanager
    def _transaction(self, description: str):
        """One explicit transaction; any failure rolls it back and is translated."""
        self._require_connection()
        conn = self._conn
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except Exception as e:
            # SQLite may already have rolled back on its own
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            logger.error(f"{description} failed, transaction rolled back: {e}")
            if isinstance(e, DepsyncError):
                raise
            raise self._translate_error(e, description) from e

    def _translate_error(self, error: Exception, description: str) -> Exception:
        if isinstance(error, sqlite3.IntegrityError):
            return ConstraintError(f"{description} violated a constraint: {error}")
        if isinstance(error, sqlite3.OperationalError) and _is_busy(error):
            return ExportConnectionError(f"{description} could not lock the database: {error}", attempts=1)
        if self.retry.is_transient(error):
            return ExportConnectionError(f"{description} lost the connection: {error}", attempts=1)
        return TransactionError(f"{description} failed and was rolled back: {error}")

    def check_schema_version(self) -> SchemaVersion:
        return self.retry.execute(self._check_schema_version, "Checking schema version")

    def _check_schema_version(self) -> SchemaVersion:
        with self._transaction("Schema version check") as conn:
            row = conn.execute(
                "SELECT version, applied_at FROM schema_version ORDER BY applied_at DESC LIMIT 1"
            ).fetchone()
            if row is None:
                applied_at = _now()
                conn.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (SCHEMA_VERSION, applied_at),
                )
                logger.info(f"Initialized schema version {SCHEMA_VERSION}")
                return SchemaVersion(version=SCHEMA_VERSION, applied_at=datetime.fromisoformat(applied_at))

        return SchemaVersion(version=row["version"], applied_at=datetime.fromisoformat(row["applied_at"]))

    def export_graph(self, graph: DependencyGraph) -> ExportResult:
        start = time.perf_counter()
        modules = graph.modules
        dependencies = graph.dependencies

        with self._transaction(f"Export of {graph.root.gav}") as conn:
            ids = self._upsert_modules(conn, modules)

            deleted = conn.execute(
                "DELETE FROM dependencies WHERE source_id = ?", (ids[graph.root.gav],)
            ).rowcount
            logger.debug(f"Removed {deleted} existing dependencies of {graph.root.gav}")

            rows = [self._dependency_row(d, ids) for d in dependencies]
            batches = self._batches(rows)
            for number, batch in enumerate(batches, start=1):
                self._write_dependency_batch(conn, batch)
                logger.debug(f"Wrote dependency batch {number}/{len(batches)} ({len(batch)} rows)")

        result = ExportResult(
            modules_exported=len(modules),
            dependencies_exported=len(dependencies),
            conflicts_detected=len(graph.conflicted_dependencies),
            execution_time_ms=(time.perf_counter() - start) * 1000,
        )
        logger.info(
            f"Committed {result.modules_exported} modules and "
            f"{result.dependencies_exported} dependencies for {graph.root.gav}"
        )
        return result

    def _upsert_modules(self, conn: sqlite3.Connection, modules: List[Module]) -> Dict[str, int]:
        conn.executemany(_UPSERT_MODULE, [
            (m.group_id, m.artifact_id, m.version, m.packaging, m.export_timestamp.isoformat())
            for m in modules
        ])
        ids: Dict[str, int] = {}
        for m in modules:
            row = conn.execute(
                "SELECT id FROM modules WHERE group_id = ? AND artifact_id = ? AND version = ?",
                m.coordinate,
            ).fetchone()
            ids[m.gav] = row["id"]
        return ids

    @staticmethod
    def _dependency_row(dependency: Dependency, ids: Dict[str, int]) -> tuple:
        return (
            ids[dependency.source.gav],
            ids[dependency.target.gav],
            dependency.scope.value,
            int(dependency.optional),
            dependency.depth,
            int(dependency.is_resolved),
            dependency.export_timestamp.isoformat(),
        )

    def _write_dependency_batch(self, conn: sqlite3.Connection, batch: List[tuple]) -> None:
        conn.executemany(_UPSERT_DEPENDENCY, batch)

    def export_project_structure(self, structure: ProjectStructure) -> int:
        timestamp = _now()
        modules = structure.modules

        with self._transaction(f"Project structure export of {structure.root.gav}") as conn:
            conn.executemany("""
                INSERT INTO project_modules
                    (group_id, artifact_id, version, is_root_project, export_timestamp)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (group_id, artifact_id, version) DO UPDATE SET
                    is_root_project = excluded.is_root_project,
                    export_timestamp = excluded.export_timestamp
            """, [
                (m.group_id, m.artifact_id, m.version, int(m.is_root_project), timestamp)
                for m in modules
            ])

            ids: Dict[str, int] = {}
            for m in modules:
                row = conn.execute(
                    "SELECT id FROM project_modules WHERE group_id = ? AND artifact_id = ? AND version = ?",
                    (m.group_id, m.artifact_id, m.version),
                ).fetchone()
                ids[m.gav] = row["id"]

            conn.executemany(
                "INSERT OR IGNORE INTO project_module_links (parent_id, child_id) VALUES (?, ?)",
                [(ids[r.parent.gav], ids[r.child.gav]) for r in structure.relationships()],
            )

        logger.info(f"Exported project structure with {len(modules)} modules")
        return len(modules)

    def fetch_versions(self, group_id: str, artifact_id: str) -> List[str]:
        self._require_connection()
        rows = self._conn.execute(
            "SELECT version FROM modules WHERE group_id = ? AND artifact_id = ?",
            (group_id, artifact_id),
        ).fetchall()
        return [row["version"] for row in rows]

    def cleanup_old_versions(self, group_id: str, artifact_id: str, exported_gavs: Collection[str]) -> int:
        return self.retry.execute(
            lambda: self._cleanup_old_versions(group_id, artifact_id, set(exported_gavs)),
            f"Cleanup of {group_id}:{artifact_id}",
        )

    def _cleanup_old_versions(self, group_id: str, artifact_id: str, exported_gavs: set) -> int:
        versions = sort_versions_descending(self.fetch_versions(group_id, artifact_id))
        if len(versions) <= 1:
            return 0

        latest, stale = versions[0], versions[1:]
        deleted = 0

        with self._transaction(f"Cleanup of {group_id}:{artifact_id}") as conn:
            conn.execute(
                "UPDATE modules SET is_latest = (version = ?) WHERE group_id = ? AND artifact_id = ?",
                (latest, group_id, artifact_id),
            )

            for version in stale:
                referrers = self._external_referrers(conn, group_id, artifact_id, version, exported_gavs)
                if referrers:
                    logger.warning(
                        f"Keeping {group_id}:{artifact_id}:{version}: still used by {', '.join(referrers)}"
                    )
                    continue

                conn.execute(
                    "DELETE FROM modules WHERE group_id = ? AND artifact_id = ? AND version = ?",
                    (group_id, artifact_id, version),
                )
                deleted += 1
                logger.debug(f"Deleted stale version {group_id}:{artifact_id}:{version}")

        return deleted

    @staticmethod
    def _external_referrers(
        conn: sqlite3.Connection,
        group_id: str,
        artifact_id: str,
        version: str,
        exported_gavs: set,
    ) -> List[str]:
        rows = conn.execute("""
            SELECT s.group_id || ':' || s.artifact_id || ':' || s.version AS gav
            FROM dependencies d
            JOIN modules s ON s.id = d.source_id
            JOIN modules t ON t.id = d.target_id
            WHERE t.group_id = ? AND t.artifact_id = ? AND t.version = ?
        """, (group_id, artifact_id, version)).fetchall()
        return sorted({row["gav"] for row in rows} - exported_gavs)

    def fetch_dependencies(self, group_id: str, artifact_id: str, version: str) -> List[Dict[str, Any]]:
        """Outgoing edges of one module, as stored."""
        self._require_connection()
        rows = self._conn.execute("""
            SELECT t.group_id || ':' || t.artifact_id || ':' || t.version AS target,
                   d.scope, d.optional, d.depth, d.is_resolved
            FROM dependencies d
            JOIN modules s ON s.id = d.source_id
            JOIN modules t ON t.id = d.target_id
            WHERE s.group_id = ? AND s.artifact_id = ? AND s.version = ?
            ORDER BY d.id
        """, (group_id, artifact_id, version)).fetchall()
        return [
            {
                "target": row["target"],
                "scope": row["scope"],
                "optional": bool(row["optional"]),
                "depth": row["depth"],
                "is_resolved": bool(row["is_resolved"]),
            }
            for row in rows
        ]

    def get_stats(self) -> Dict[str, Any]:
        self._require_connection()
        conn = self._conn
        return {
            "modules": conn.execute("SELECT COUNT(*) FROM modules").fetchone()[0],
            "dependencies": conn.execute("SELECT COUNT(*) FROM dependencies").fetchone()[0],
            "project_modules": conn.execute("SELECT COUNT(*) FROM project_modules").fetchone()[0],
            "project_module_links": conn.execute("SELECT COUNT(*) FROM project_module_links").fetchone()[0],
            "db_path": self.db_path,
        }

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.debug(f"Closed SQLite database {self.db_path}")
