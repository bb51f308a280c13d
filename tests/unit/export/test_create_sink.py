"""Unit tests for the sink factory."""

import pytest

from depsync.config import ExportConfig
from depsync.errors import ConfigurationError
from depsync.export import Neo4jSink, SQLiteSink, create_sink


class TestCreateSink:

    def test_sqlite(self, tmp_path):
        config = ExportConfig(database_type="SQLite", connection_url=f"sqlite:///{tmp_path / 'deps.db'}")
        sink = create_sink(config)

        assert isinstance(sink, SQLiteSink)
        assert sink.db_path == str(tmp_path / "deps.db")
        assert not sink.is_connected

    def test_neo4j_uses_config_retry_settings(self):
        config = ExportConfig(
            database_type="neo4j", connection_url="bolt://db:7687", username="neo4j", password="pw",
            max_attempts=5, backoff_seconds=0.5, connection_timeout=10.0,
        )
        sink = create_sink(config)

        assert isinstance(sink, Neo4jSink)
        assert sink.retry.policy.max_attempts == 5
        assert sink.retry.policy.backoff_seconds == 0.5
        assert sink.timeout == 10.0
        assert not sink.is_connected

    def test_unknown_type(self):
        with pytest.raises(ConfigurationError, match="Unsupported database type"):
            create_sink(ExportConfig(database_type="oracle", connection_url="x"))
