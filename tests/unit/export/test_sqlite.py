"""Unit tests for the SQLite export sink."""

import sqlite3
from unittest.mock import MagicMock, patch

import pytest

from depsync.core.graph import DependencyGraph
from depsync.core.retry import RetryExecutor, RetryPolicy
from depsync.core.structure import project_structure_from_dict
from depsync.core.types import Scope
from depsync.errors import ConstraintError, ExportConnectionError, TransactionError
from depsync.export.sqlite import SQLiteSink, database_path

from tests.conftest import dependency, module


def graph_of(root, *targets, depth=0):
    graph = DependencyGraph(module(root))
    for target in targets:
        graph.add_dependency(dependency(root, target, depth=depth))
    return graph


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "deps.db"


@pytest.fixture
def sink(db_path):
    sink = SQLiteSink(str(db_path), retry=RetryExecutor(RetryPolicy(max_attempts=1), sleep=MagicMock()))
    sink.connect()
    yield sink
    sink.close()


def query(db_path, sql, params=()):
    conn = sqlite3.connect(db_path)
    try:
        return conn.execute(sql, params).fetchall()
    finally:
        conn.close()


class TestConnection:
    def test_connect_and_close(self, db_path):
        sink = SQLiteSink(str(db_path))
        assert not sink.is_connected
        sink.connect()
        assert sink.is_connected
        assert db_path.exists()
        sink.close()
        assert not sink.is_connected
        sink.close()

    def test_context_manager_closes(self, db_path):
        with SQLiteSink(str(db_path)) as sink:
            sink.connect()
        assert not sink.is_connected

    def test_requires_connection(self, db_path):
        with pytest.raises(RuntimeError, match="not connected"):
            SQLiteSink(str(db_path)).export_graph(graph_of("g:root:1"))

    def test_url_forms(self):
        assert database_path("sqlite:///data/deps.db") == "data/deps.db"
        assert database_path("deps.db") == "deps.db"
        assert database_path(":memory:") == ":memory:"

    def test_database_type(self, sink):
        assert sink.database_type == "sqlite"
        assert sink.batch_size == 500


class TestSchemaVersion:
    def test_created_when_absent(self, sink, db_path):
        version = sink.check_schema_version()
        assert version.version == "1.0.0"
        assert version.compatible
        assert query(db_path, "SELECT COUNT(*) FROM schema_version") == [(1,)]

    def test_idempotent(self, sink, db_path):
        sink.check_schema_version()
        sink.check_schema_version()
        assert query(db_path, "SELECT COUNT(*) FROM schema_version") == [(1,)]

    def test_mismatch_reported(self, sink):
        sink._conn.execute(
            "INSERT INTO schema_version (version, applied_at) VALUES ('0.9.0', '2020-01-01T00:00:00+00:00')"
        )
        version = sink.check_schema_version()
        assert version.version == "0.9.0"
        assert not version.compatible
        assert version.is_older_than_current()


class TestExportGraph:
    def test_writes_modules_and_dependencies(self, sink):
        graph = graph_of("com.acme:app:1.0", "org.a:core:1.0", "org.b:web:2.0")
        result = sink.export_graph(graph)

        assert result.modules_exported == 3
        assert result.dependencies_exported == 2
        assert result.execution_time_ms >= 0
        stats = sink.get_stats()
        assert stats["modules"] == 3
        assert stats["dependencies"] == 2

    def test_edge_attributes_round_trip(self, sink):
        graph = DependencyGraph(module("com.acme:app:1.0"))
        graph.add_dependency(dependency(
            "com.acme:app:1.0", "org.c:c:2.0", scope=Scope.TEST, optional=True, is_resolved=False,
        ))
        result = sink.export_graph(graph)

        assert result.conflicts_detected == 1
        assert sink.fetch_dependencies("com.acme", "app", "1.0") == [{
            "target": "org.c:c:2.0",
            "scope": "test",
            "optional": True,
            "depth": 0,
            "is_resolved": False,
        }]

    def test_reexport_overwrites_root_edges(self, sink, db_path):
        sink.export_graph(graph_of("com.acme:app:1.0", "org.a:a:1.0", "org.b:b:1.0"))
        sink.export_graph(graph_of("com.acme:app:1.0", "org.b:b:1.0", "org.c:c:1.0"))

        rows = query(
            db_path,
            "SELECT COUNT(*) FROM modules WHERE group_id = 'com.acme' AND artifact_id = 'app' AND version = '1.0'",
        )
        assert rows == [(1,)]
        targets = [d["target"] for d in sink.fetch_dependencies("com.acme", "app", "1.0")]
        assert sorted(targets) == ["org.b:b:1.0", "org.c:c:1.0"]

    def test_reexport_updates_bookkeeping(self, sink, db_path):
        sink.export_graph(graph_of("com.acme:app:1.0", "org.a:a:1.0"))
        sink._conn.execute("UPDATE modules SET is_latest = 0")
        sink.export_graph(graph_of("com.acme:app:1.0", "org.a:a:1.0"))
        assert query(db_path, "SELECT DISTINCT is_latest FROM modules") == [(1,)]

    def test_shared_transitive_edges_are_upserted(self, sink):
        first = DependencyGraph(module("com.acme:app:1.0"))
        first.add_dependency(dependency("com.acme:app:1.0", "org.a:lib:1.0"))
        first.add_dependency(dependency("org.a:lib:1.0", "org.u:util:1.0", depth=1))

        second = DependencyGraph(module("com.acme:svc:1.0"))
        second.add_dependency(dependency("com.acme:svc:1.0", "org.a:lib:1.0"))
        second.add_dependency(dependency("org.a:lib:1.0", "org.u:util:1.0", depth=1))

        sink.export_graph(first)
        sink.export_graph(second)

        assert len(sink.fetch_dependencies("org.a", "lib", "1.0")) == 1
        assert sink.get_stats()["modules"] == 4

    def test_writes_in_batches(self, db_path):
        sink = SQLiteSink(str(db_path), batch_size=2)
        sink.connect()
        targets = [f"org.x:m{i}:1.0" for i in range(5)]
        with patch.object(SQLiteSink, "_write_dependency_batch", autospec=True,
                          side_effect=SQLiteSink._write_dependency_batch) as write:
            sink.export_graph(graph_of("com.acme:app:1.0", *targets))
        assert [len(c.args[2]) for c in write.call_args_list] == [2, 2, 1]
        assert sink.get_stats()["dependencies"] == 5
        sink.close()


class TestAtomicity:
    def test_failed_batch_rolls_back_everything(self, db_path):
        sink = SQLiteSink(str(db_path), batch_size=2)
        sink.connect()
        original = SQLiteSink._write_dependency_batch
        calls = []

        def flaky(self, conn, batch):
            calls.append(batch)
            if len(calls) == 3:
                raise sqlite3.OperationalError("disk I/O error")
            original(self, conn, batch)

        targets = [f"org.x:m{i}:1.0" for i in range(10)]
        with patch.object(SQLiteSink, "_write_dependency_batch", flaky):
            with pytest.raises(TransactionError, match="rolled back"):
                sink.export_graph(graph_of("com.acme:app:1.0", *targets))

        assert len(calls) == 3
        stats = sink.get_stats()
        assert stats["modules"] == 0
        assert stats["dependencies"] == 0
        sink.close()

    def test_failure_keeps_previous_export(self, sink):
        sink.export_graph(graph_of("com.acme:app:1.0", "org.a:a:1.0"))
        with patch.object(SQLiteSink, "_write_dependency_batch", side_effect=sqlite3.OperationalError("boom")):
            with pytest.raises(TransactionError):
                sink.export_graph(graph_of("com.acme:app:1.0", "org.b:b:1.0"))

        targets = [d["target"] for d in sink.fetch_dependencies("com.acme", "app", "1.0")]
        assert targets == ["org.a:a:1.0"]

    def test_integrity_error_is_constraint_error(self, sink):
        with patch.object(SQLiteSink, "_write_dependency_batch", side_effect=sqlite3.IntegrityError("UNIQUE")):
            with pytest.raises(ConstraintError):
                sink.export_graph(graph_of("com.acme:app:1.0", "org.a:a:1.0"))


class TestLocking:
    @pytest.fixture
    def locked_sink(self, db_path):
        sink = SQLiteSink(str(db_path), retry=RetryExecutor(RetryPolicy(max_attempts=1), sleep=MagicMock()), timeout=0.1)
        sink.connect()
        writer = sqlite3.connect(db_path, isolation_level=None)
        writer.execute("BEGIN IMMEDIATE")
        yield sink, writer
        writer.close()
        sink.close()

    def test_locked_database_is_connection_error(self, locked_sink):
        sink, _ = locked_sink
        with pytest.raises(ExportConnectionError, match="could not lock the database"):
            sink.export_graph(graph_of("com.acme:app:1.0", "org.a:a:1.0"))
        assert not sink._conn.in_transaction

    def test_sink_usable_after_lock_is_released(self, locked_sink):
        sink, writer = locked_sink
        with pytest.raises(ExportConnectionError):
            sink.export_graph(graph_of("com.acme:app:1.0", "org.a:a:1.0"))
        writer.execute("ROLLBACK")

        result = sink.export_graph(graph_of("com.acme:app:1.0", "org.a:a:1.0"))
        assert result.dependencies_exported == 1


class TestCleanup:
    def test_deletes_unreferenced_old_versions(self, sink):
        sink.export_graph(graph_of("com.acme:app:1.0", "org.a:lib:1.9"))
        sink.export_graph(graph_of("com.acme:app:1.0", "org.a:lib:1.10"))

        deleted = sink.cleanup_old_versions("org.a", "lib", {"com.acme:app:1.0", "org.a:lib:1.10"})

        assert deleted == 1
        assert sink.fetch_versions("org.a", "lib") == ["1.10"]

    def test_keeps_versions_referenced_from_outside_the_export(self, sink, db_path):
        sink.export_graph(graph_of("com.acme:app:1.0", "org.a:lib:1.0"))
        sink.export_graph(graph_of("com.acme:other:1.0", "org.a:lib:1.0"))
        sink.export_graph(graph_of("com.acme:app:1.0", "org.a:lib:2.0"))

        deleted = sink.cleanup_old_versions("org.a", "lib", {"com.acme:app:1.0", "org.a:lib:2.0"})

        assert deleted == 0
        assert sorted(sink.fetch_versions("org.a", "lib")) == ["1.0", "2.0"]
        flags = dict(query(
            db_path, "SELECT version, is_latest FROM modules WHERE group_id = 'org.a' AND artifact_id = 'lib'",
        ))
        assert flags == {"1.0": 0, "2.0": 1}

    def test_deleting_module_cascades_to_edges(self, sink):
        old = DependencyGraph(module("com.acme:app:1.0"))
        old.add_dependency(dependency("com.acme:app:1.0", "org.a:lib:1.0"))
        old.add_dependency(dependency("org.a:lib:1.0", "org.u:util:1.0", depth=1))
        sink.export_graph(old)
        sink.export_graph(graph_of("com.acme:app:1.0", "org.a:lib:2.0"))

        assert sink.cleanup_old_versions("org.a", "lib", {"com.acme:app:1.0", "org.a:lib:2.0"}) == 1
        assert sink.get_stats()["dependencies"] == 1

    def test_single_version_is_noop(self, sink):
        sink.export_graph(graph_of("com.acme:app:1.0", "org.a:lib:1.0"))
        assert sink.cleanup_old_versions("org.a", "lib", set()) == 0
        assert sink.cleanup_old_versions("no", "such", set()) == 0


class TestProjectStructure:
    @pytest.fixture
    def structure(self):
        return project_structure_from_dict({
            "groupId": "com.acme", "artifactId": "parent", "version": "1.0",
            "modules": [
                {"artifactId": "api", "modules": [{"artifactId": "api-client"}]},
                {"artifactId": "web"},
            ],
        })

    def test_export(self, sink, structure, db_path):
        assert sink.export_project_structure(structure) == 4
        stats = sink.get_stats()
        assert stats["project_modules"] == 4
        assert stats["project_module_links"] == 3
        # Build units never land in the modules table
        assert stats["modules"] == 0
        roots = query(db_path, "SELECT artifact_id FROM project_modules WHERE is_root_project = 1")
        assert roots == [("parent",)]

    def test_reexport_is_idempotent(self, sink, structure):
        sink.export_project_structure(structure)
        sink.export_project_structure(structure)
        stats = sink.get_stats()
        assert stats["project_modules"] == 4
        assert stats["project_module_links"] == 3
