"""Unit tests for core data types."""

import logging
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from depsync.config import SCHEMA_VERSION
from depsync.core.types import Dependency, ExportResult, Module, SchemaVersion, Scope


class TestScope:
    def test_parse_known_values_case_insensitive(self):
        assert Scope.parse("runtime") is Scope.RUNTIME
        assert Scope.parse("TEST") is Scope.TEST
        assert Scope.parse(" provided ") is Scope.PROVIDED
        assert Scope.parse("import") is Scope.IMPORT

    def test_parse_defaults_to_compile(self):
        assert Scope.parse(None) is Scope.COMPILE
        assert Scope.parse("") is Scope.COMPILE

    def test_unknown_scope_is_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="depsync.core.types"):
            assert Scope.parse("bundle") is Scope.COMPILE
        assert "Unknown dependency scope 'bundle'" in caplog.text


class TestModule:
    def test_coordinates(self):
        m = Module(group_id="org.a", artifact_id="core", version="1.0")
        assert m.gav == "org.a:core:1.0"
        assert m.ga == "org.a:core"
        assert m.packaging == "jar"
        assert m.is_latest is True
        assert str(m) == "org.a:core:1.0"

    def test_identity_ignores_bookkeeping_fields(self):
        a = Module(group_id="org.a", artifact_id="core", version="1.0", packaging="pom")
        b = Module(
            group_id="org.a", artifact_id="core", version="1.0",
            export_timestamp=datetime(2020, 1, 1, tzinfo=timezone.utc), is_latest=False,
        )
        assert a == b
        assert hash(a) == hash(b)
        assert len({a, b}) == 1

    def test_different_versions_are_different_modules(self):
        a = Module(group_id="org.a", artifact_id="core", version="1.0")
        b = Module(group_id="org.a", artifact_id="core", version="2.0")
        assert a != b

    def test_empty_coordinate_rejected(self):
        with pytest.raises(ValidationError):
            Module(group_id="", artifact_id="core", version="1.0")


class TestDependency:
    @pytest.fixture
    def modules(self):
        return (
            Module(group_id="com.acme", artifact_id="app", version="1.0"),
            Module(group_id="org.a", artifact_id="core", version="2.0"),
        )

    def test_defaults(self, modules):
        dep = Dependency(source=modules[0], target=modules[1])
        assert dep.scope is Scope.COMPILE
        assert dep.depth == 0
        assert dep.is_direct
        assert dep.is_resolved
        assert not dep.optional

    def test_key_includes_scope_and_depth(self, modules):
        a = Dependency(source=modules[0], target=modules[1], depth=0)
        b = Dependency(source=modules[0], target=modules[1], depth=2)
        assert a.key == ("com.acme:app:1.0", "org.a:core:2.0", "compile", 0)
        assert a.key != b.key

    def test_negative_depth_rejected(self, modules):
        with pytest.raises(ValidationError):
            Dependency(source=modules[0], target=modules[1], depth=-1)

    def test_describe(self, modules):
        dep = Dependency(source=modules[0], target=modules[1], depth=1, is_resolved=False, optional=True)
        assert dep.describe() == "com.acme:app:1.0 -> org.a:core:2.0 (compile, depth=1, conflict, optional)"


class TestSchemaVersion:
    def test_current_is_compatible(self):
        sv = SchemaVersion(version=SCHEMA_VERSION)
        assert sv.compatible
        assert not sv.is_older_than_current()
        assert not sv.is_newer_than_current()

    def test_older(self):
        sv = SchemaVersion(version="0.9.0")
        assert not sv.compatible
        assert sv.is_older_than_current()

    def test_newer(self):
        sv = SchemaVersion(version="1.1")
        assert sv.is_newer_than_current()
        assert not sv.is_older_than_current()

    def test_missing_parts_count_as_zero(self):
        sv = SchemaVersion(version="1")
        assert not sv.compatible
        assert not sv.is_older_than_current()
        assert not sv.is_newer_than_current()


class TestExportResult:
    def test_to_dict(self):
        result = ExportResult(modules_exported=3, dependencies_exported=2, conflicts_detected=1, execution_time_ms=5.0)
        assert result.to_dict() == {
            "modules_exported": 3,
            "dependencies_exported": 2,
            "conflicts_detected": 1,
            "execution_time_ms": 5.0,
        }
