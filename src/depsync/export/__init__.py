"""
Export sinks and the factory that picks one from an ExportConfig.
"""

from typing import Optional

from ..config import ExportConfig
from ..core.retry import RetryExecutor, RetryPolicy
from ..errors import ConfigurationError
from .base import ExportSink
from .neo4j import Neo4jSink
from .sqlite import SQLiteSink

__all__ = ["ExportSink", "Neo4jSink", "SQLiteSink", "create_sink"]


def create_sink(config: ExportConfig, retry: Optional[RetryExecutor] = None) -> ExportSink:
    """
    Build the sink named by `config.database_type`.

    Raises:
        ConfigurationError: If the database type is unknown.
    """
    retry = retry or RetryExecutor(RetryPolicy(
        max_attempts=config.max_attempts,
        backoff_seconds=config.backoff_seconds,
    ))
    db_type = config.normalized_database_type

    if db_type == "neo4j":
        return Neo4jSink(
            url=config.connection_url,
            username=config.username,
            password=config.password,
            retry=retry,
            timeout=config.connection_timeout,
        )
    if db_type == "sqlite":
        return SQLiteSink(config.connection_url, retry=retry, timeout=config.connection_timeout)

    raise ConfigurationError(
        f"Unsupported database type: {config.database_type}",
        [f"database_type must be one of neo4j, sqlite, but was: {config.database_type}"],
    )
