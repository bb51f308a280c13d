"""
Neo4j export sink.

Property-graph backend for the dependency graph. Data model:

    (:MavenModule {groupId, artifactId, version, packaging, exportTimestamp, isLatest})
    (:MavenModule)-[:DEPENDS_ON {scope, optional, depth, isResolved, exportTimestamp}]->(:MavenModule)
    (:SchemaVersion {id: 'current', version, appliedAt})
    (:ProjectModule {groupId, artifactId, version, isRootProject, exportTimestamp})
    (:ProjectModule)-[:CONTAINS_MODULE]->(:ProjectModule)

Writes go through explicit transactions and UNWIND batches so an export
commits or rolls back as a whole.
"""

import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Collection, List, Optional

from neo4j import GraphDatabase
from neo4j.exceptions import AuthError as Neo4jAuthError
from neo4j.exceptions import ClientError, Forbidden, ServiceUnavailable, SessionExpired, TransientError

from ..config import DEFAULT_BATCH_SIZE, DEFAULT_CONNECTION_TIMEOUT, SCHEMA_VERSION, mask_url
from ..core.graph import DependencyGraph
from ..core.retry import RetryExecutor
from ..core.structure import ProjectStructure
from ..core.types import ExportResult, SchemaVersion
from ..core.versions import sort_versions_descending
from ..errors import AuthError, ConstraintError, DepsyncError, ExportConnectionError, TransactionError
from .base import ExportSink

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = [
    "CREATE CONSTRAINT maven_module_unique IF NOT EXISTS "
    "FOR (m:MavenModule) REQUIRE (m.groupId, m.artifactId, m.version) IS UNIQUE",
    "CREATE CONSTRAINT project_module_unique IF NOT EXISTS "
    "FOR (p:ProjectModule) REQUIRE (p.groupId, p.artifactId, p.version) IS UNIQUE",
    "CREATE INDEX maven_module_family IF NOT EXISTS FOR (m:MavenModule) ON (m.groupId, m.artifactId)",
    "CREATE INDEX maven_module_latest IF NOT EXISTS FOR (m:MavenModule) ON (m.isLatest)",
]

READ_SCHEMA_VERSION = """
MATCH (s:SchemaVersion {id: 'current'})
RETURN s.version AS version, s.appliedAt AS appliedAt
"""

CREATE_SCHEMA_VERSION = """
MERGE (s:SchemaVersion {id: 'current'})
ON CREATE SET s.version = $version, s.appliedAt = $applied_at
RETURN s.version AS version, s.appliedAt AS appliedAt
"""

UPSERT_MODULES = """
UNWIND $rows AS row
MERGE (m:MavenModule {groupId: row.groupId, artifactId: row.artifactId, version: row.version})
SET m.packaging = row.packaging,
    m.exportTimestamp = row.exportTimestamp,
    m.isLatest = true
"""

DELETE_ROOT_DEPENDENCIES = """
MATCH (m:MavenModule {groupId: $groupId, artifactId: $artifactId, version: $version})-[r:DEPENDS_ON]->()
DELETE r
"""

UPSERT_DEPENDENCIES = """
UNWIND $rows AS row
MATCH (s:MavenModule {groupId: row.sourceGroupId, artifactId: row.sourceArtifactId, version: row.sourceVersion})
MATCH (t:MavenModule {groupId: row.targetGroupId, artifactId: row.targetArtifactId, version: row.targetVersion})
MERGE (s)-[r:DEPENDS_ON {scope: row.scope, depth: row.depth}]->(t)
SET r.optional = row.optional,
    r.isResolved = row.isResolved,
    r.exportTimestamp = row.exportTimestamp
"""

UPSERT_PROJECT_MODULES = """
UNWIND $rows AS row
MERGE (p:ProjectModule {groupId: row.groupId, artifactId: row.artifactId, version: row.version})
SET p.isRootProject = row.isRootProject,
    p.exportTimestamp = row.exportTimestamp
"""

LINK_PROJECT_MODULES = """
UNWIND $rows AS row
MATCH (parent:ProjectModule {groupId: row.parentGroupId, artifactId: row.parentArtifactId, version: row.parentVersion})
MATCH (child:ProjectModule {groupId: row.childGroupId, artifactId: row.childArtifactId, version: row.childVersion})
MERGE (parent)-[:CONTAINS_MODULE]->(child)
"""

FETCH_VERSIONS = """
MATCH (m:MavenModule {groupId: $groupId, artifactId: $artifactId})
RETURN m.version AS version
"""

MARK_LATEST = """
MATCH (m:MavenModule {groupId: $groupId, artifactId: $artifactId})
SET m.isLatest = (m.version = $latest)
"""

FIND_REFERRERS = """
MATCH (s:MavenModule)-[:DEPENDS_ON]->(t:MavenModule {groupId: $groupId, artifactId: $artifactId, version: $version})
RETURN DISTINCT s.groupId + ':' + s.artifactId + ':' + s.version AS gav
"""

DELETE_MODULE = """
MATCH (m:MavenModule {groupId: $groupId, artifactId: $artifactId, version: $version})
DETACH DELETE m
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Neo4jSink(ExportSink):
    """
    Export sink writing to a Neo4j database through the official driver.

    Args:
        url: bolt:// or neo4j:// URL (TLS variants accepted).
        username: Database user.
        password: Database password. Never logged.
        database: Target database name; the server default when None.
        timeout: Driver connection timeout in seconds.
    """

    database_type = "neo4j"

    def __init__(
        self,
        url: str,
        username: str,
        password: str,
        retry: Optional[RetryExecutor] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        database: Optional[str] = None,
        timeout: float = DEFAULT_CONNECTION_TIMEOUT,
    ):
        retry = (retry or RetryExecutor()).with_types(
            transient=(ServiceUnavailable, SessionExpired, TransientError),
            non_transient=(Neo4jAuthError, Forbidden, ClientError),
        )
        super().__init__(retry=retry, batch_size=batch_size)
        self.url = url
        self.username = username
        self._password = password
        self.database = database
        self.timeout = timeout
        self._driver = None

    @property
    def is_connected(self) -> bool:
        return self._driver is not None

    def connect(self) -> None:
        if self._driver is not None:
            return
        self._driver = self.retry.execute(self._open, f"Connecting to Neo4j at {mask_url(self.url)}")
        logger.info(f"Connected to Neo4j at {mask_url(self.url)}")

    def _open(self):
        driver = GraphDatabase.driver(
            self.url,
            auth=(self.username, self._password),
            connection_timeout=self.timeout,
        )
        try:
            driver.verify_connectivity()
        except Neo4jAuthError as e:
            driver.close()
            raise AuthError(f"Neo4j rejected the credentials for user '{self.username}'") from e
        except Exception:
            driver.close()
            raise
        return driver

    def _session(self):
        self._require_connection()
        if self.database:
            return self._driver.session(database=self.database)
        return self._driver.session()

    @contextmanager
    def _transaction(self, description: str):
        """Explicit write transaction; failures roll back and are translated."""
        self._require_connection()
        try:
            with self._session() as session:
                tx = session.begin_transaction()
                try:
                    yield tx
                    tx.commit()
                except Exception:
                    if not tx.closed():
                        tx.rollback()
                    raise
        except Exception as e:
            logger.error(f"{description} failed, transaction rolled back: {e}")
            if isinstance(e, DepsyncError):
                raise
            raise self._translate_error(e, description) from e

    @staticmethod
    def _translate_error(error: Exception, description: str) -> Exception:
        if isinstance(error, (Neo4jAuthError, Forbidden)):
            return AuthError(f"{description} was denied: {error}")
        if isinstance(error, ClientError):
            return ConstraintError(f"{description} was rejected by Neo4j: {error}")
        if isinstance(error, (ServiceUnavailable, SessionExpired, TransientError)):
            return ExportConnectionError(f"{description} lost the connection: {error}", attempts=1)
        return TransactionError(f"{description} failed and was rolled back: {error}")

    def check_schema_version(self) -> SchemaVersion:
        return self.retry.execute(self._check_schema_version, "Checking schema version")

    def _check_schema_version(self) -> SchemaVersion:
        with self._session() as session:
            for statement in SCHEMA_STATEMENTS:
                session.run(statement).consume()

        with self._transaction("Schema version check") as tx:
            record = tx.run(READ_SCHEMA_VERSION).single()
            if record is None:
                record = tx.run(CREATE_SCHEMA_VERSION, version=SCHEMA_VERSION, applied_at=_now()).single()
                logger.info(f"Initialized schema version {SCHEMA_VERSION}")

        return SchemaVersion(
            version=record["version"],
            applied_at=datetime.fromisoformat(str(record["appliedAt"])),
        )

    def export_graph(self, graph: DependencyGraph) -> ExportResult:
        start = time.perf_counter()
        root = graph.root

        module_rows = [
            {
                "groupId": m.group_id,
                "artifactId": m.artifact_id,
                "version": m.version,
                "packaging": m.packaging,
                "exportTimestamp": m.export_timestamp.isoformat(),
            }
            for m in graph.iter_modules()
        ]
        dependency_rows = [
            {
                "sourceGroupId": d.source.group_id,
                "sourceArtifactId": d.source.artifact_id,
                "sourceVersion": d.source.version,
                "targetGroupId": d.target.group_id,
                "targetArtifactId": d.target.artifact_id,
                "targetVersion": d.target.version,
                "scope": d.scope.value,
                "optional": d.optional,
                "depth": d.depth,
                "isResolved": d.is_resolved,
                "exportTimestamp": d.export_timestamp.isoformat(),
            }
            for d in graph.iter_dependencies()
        ]

        with self._transaction(f"Export of {root.gav}") as tx:
            for batch in self._batches(module_rows):
                tx.run(UPSERT_MODULES, rows=batch).consume()

            tx.run(
                DELETE_ROOT_DEPENDENCIES,
                groupId=root.group_id, artifactId=root.artifact_id, version=root.version,
            ).consume()

            batches = self._batches(dependency_rows)
            for number, batch in enumerate(batches, start=1):
                tx.run(UPSERT_DEPENDENCIES, rows=batch).consume()
                logger.debug(f"Wrote dependency batch {number}/{len(batches)} ({len(batch)} rows)")

        result = ExportResult(
            modules_exported=len(module_rows),
            dependencies_exported=len(dependency_rows),
            conflicts_detected=len(graph.conflicted_dependencies),
            execution_time_ms=(time.perf_counter() - start) * 1000,
        )
        logger.info(
            f"Committed {result.modules_exported} modules and "
            f"{result.dependencies_exported} dependencies for {root.gav}"
        )
        return result

    def export_project_structure(self, structure: ProjectStructure) -> int:
        timestamp = _now()
        rows = [
            {
                "groupId": m.group_id,
                "artifactId": m.artifact_id,
                "version": m.version,
                "isRootProject": m.is_root_project,
                "exportTimestamp": timestamp,
            }
            for m in structure.modules
        ]
        links = [
            {
                "parentGroupId": r.parent.group_id,
                "parentArtifactId": r.parent.artifact_id,
                "parentVersion": r.parent.version,
                "childGroupId": r.child.group_id,
                "childArtifactId": r.child.artifact_id,
                "childVersion": r.child.version,
            }
            for r in structure.relationships()
        ]

        with self._transaction(f"Project structure export of {structure.root.gav}") as tx:
            for batch in self._batches(rows):
                tx.run(UPSERT_PROJECT_MODULES, rows=batch).consume()
            for batch in self._batches(links):
                tx.run(LINK_PROJECT_MODULES, rows=batch).consume()

        logger.info(f"Exported project structure with {len(rows)} modules")
        return len(rows)

    def fetch_versions(self, group_id: str, artifact_id: str) -> List[str]:
        with self._session() as session:
            result = session.run(FETCH_VERSIONS, groupId=group_id, artifactId=artifact_id)
            return [record["version"] for record in result]

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
        family = {"groupId": group_id, "artifactId": artifact_id}
        deleted = 0

        with self._transaction(f"Cleanup of {group_id}:{artifact_id}") as tx:
            tx.run(MARK_LATEST, latest=latest, **family).consume()

            for version in stale:
                referrers = {
                    record["gav"] for record in tx.run(FIND_REFERRERS, version=version, **family)
                }
                external = sorted(referrers - exported_gavs)
                if external:
                    logger.warning(
                        f"Keeping {group_id}:{artifact_id}:{version}: still used by {', '.join(external)}"
                    )
                    continue

                tx.run(DELETE_MODULE, version=version, **family).consume()
                deleted += 1
                logger.debug(f"Deleted stale version {group_id}:{artifact_id}:{version}")

        return deleted

    def close(self) -> None:
        if self._driver is not None:
            self._driver.close()
            self._driver = None
            logger.debug(f"Closed Neo4j driver for {mask_url(self.url)}")
