"""
Global Configuration and Safe Defaults.

This module centralizes the export defaults and the `depsync.toml` loader.
Values here are the fallbacks used when neither the manifest nor the
command line sets them.

Example manifest:

    [export]
    database_type = "neo4j"
    connection_url = "bolt://localhost:7687"
    username = "neo4j"
    transitive_depth = 2
    scopes = ["compile", "runtime"]
    keep_only_latest_version = true

    [export.filters]
    include = ["com.acme:*"]
    exclude = ["*:*-test"]

    [export.retry]
    max_attempts = 5
    backoff_seconds = 1.5
"""

from __future__ import annotations

import logging
import os
import re
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Set
from urllib.parse import urlsplit, urlunsplit

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# --- Export Defaults ---
# Edges written per physical write operation
DEFAULT_BATCH_SIZE = 500

# Connection retry: attempts and fixed pause between them
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_SECONDS = 2.0

# Driver-level connection timeout
DEFAULT_CONNECTION_TIMEOUT = 30.0

# -1 = unlimited, 0 = direct dependencies only
UNLIMITED_DEPTH = -1

# Version record written into every backend
SCHEMA_VERSION = "1.0.0"

DEFAULT_MANIFEST = Path("depsync.toml")
PASSWORD_ENV_VAR = "DEPSYNC_PASSWORD"

# --- Allowed Values ---
VALID_DATABASE_TYPES: Set[str] = {"neo4j", "sqlite"}

VALID_SCOPES: Set[str] = {"compile", "runtime", "test", "provided", "system", "import"}

NEO4J_URL_SCHEMES = ("bolt://", "bolt+s://", "bolt+ssc://", "neo4j://", "neo4j+s://", "neo4j+ssc://")

FILTER_PATTERN = re.compile(r"^[a-zA-Z0-9.*?_-]+:[a-zA-Z0-9.*?_-]+$")

# Expected value kind per ExportConfig field
FIELD_TYPES: Dict[str, str] = {
    "database_type": "str",
    "connection_url": "str",
    "username": "str",
    "password": "str",
    "transitive_depth": "int",
    "scopes": "str_list",
    "include_filters": "str_list",
    "exclude_filters": "str_list",
    "keep_only_latest_version": "bool",
    "fail_on_error": "bool",
    "max_attempts": "int",
    "backoff_seconds": "number",
    "connection_timeout": "number",
}

# Fields that shape the graph; the only ones a dry run checks
GRAPH_FIELDS = ("transitive_depth", "scopes", "include_filters", "exclude_filters")

_KIND_NAMES = {
    "str": "a string",
    "int": "an integer",
    "number": "a number",
    "bool": "true or false",
    "str_list": "a list of strings",
}


@dataclass
class ExportConfig:
    """
    Settings for one export run.

    Attributes:
        database_type: Backend selector ("neo4j" or "sqlite").
        connection_url: Backend URL or SQLite file path.
        username: Backend user (Neo4j only).
        password: Backend password (Neo4j only).
        transitive_depth: -1 unlimited, 0 direct only, N transitive levels.
        scopes: Allowed scopes; empty means all scopes.
        include_filters: groupId:artifactId globs to keep.
        exclude_filters: groupId:artifactId globs to drop; wins over include.
        keep_only_latest_version: Delete stale versions after the export.
        fail_on_error: Raise export failures instead of logging a warning.
        max_attempts: Retry attempts for transient connection failures.
        backoff_seconds: Pause between retry attempts.
        connection_timeout: Driver connection timeout in seconds.
    """

    database_type: Optional[str] = None
    connection_url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    transitive_depth: int = UNLIMITED_DEPTH
    scopes: List[str] = field(default_factory=list)
    include_filters: List[str] = field(default_factory=list)
    exclude_filters: List[str] = field(default_factory=list)
    keep_only_latest_version: bool = False
    fail_on_error: bool = False
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS
    connection_timeout: float = DEFAULT_CONNECTION_TIMEOUT

    @classmethod
    def load(cls, path: Path) -> "ExportConfig":
        """
        Load configuration from a depsync.toml manifest.

        A missing file yields the defaults. The password falls back to the
        DEPSYNC_PASSWORD environment variable when the manifest omits it.

        Raises:
            ConfigurationError: If the file is not valid TOML.
        """
        if not path.exists():
            logger.debug(f"No manifest at {path}, using defaults")
            return cls(password=os.getenv(PASSWORD_ENV_VAR))

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML in {path}: {e}", [str(e)]) from e

        return cls.from_dict(data.get("export", {}))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExportConfig":
        """
        Build a config from the [export] table of a manifest.

        Values are copied as found; ConfigurationValidator reports wrong types.

        Raises:
            ConfigurationError: If [export] or one of its sub-tables is not a table.
        """
        _require_table("export", data)
        _require_table("export.filters", data.get("filters", {}))
        _require_table("export.retry", data.get("retry", {}))

        filters = data.get("filters", {})
        retry = data.get("retry", {})

        return cls(
            database_type=data.get("database_type"),
            connection_url=data.get("connection_url"),
            username=data.get("username"),
            password=data.get("password", os.getenv(PASSWORD_ENV_VAR)),
            transitive_depth=data.get("transitive_depth", UNLIMITED_DEPTH),
            scopes=_as_list(data.get("scopes", [])),
            include_filters=_as_list(filters.get("include", [])),
            exclude_filters=_as_list(filters.get("exclude", [])),
            keep_only_latest_version=data.get("keep_only_latest_version", False),
            fail_on_error=data.get("fail_on_error", False),
            max_attempts=retry.get("max_attempts", DEFAULT_MAX_ATTEMPTS),
            backoff_seconds=retry.get("backoff_seconds", DEFAULT_BACKOFF_SECONDS),
            connection_timeout=data.get("connection_timeout", DEFAULT_CONNECTION_TIMEOUT),
        )

    def with_overrides(self, **overrides: Any) -> "ExportConfig":
        """
        Return a copy with every non-None override applied.

        Empty lists count as "not given" so command-line defaults never
        erase values from the manifest.
        """
        known = {f.name for f in fields(self)}
        changes = {
            name: value
            for name, value in overrides.items()
            if name in known and value is not None and value != [] and value != ()
        }
        for name, value in changes.items():
            if isinstance(value, tuple):
                changes[name] = list(value)
        return replace(self, **changes)

    @property
    def normalized_database_type(self) -> str:
        if not isinstance(self.database_type, str):
            return ""
        return self.database_type.strip().lower()

    def masked_url(self) -> str:
        url = self.connection_url
        return mask_url(url if url is None else str(url))


def _require_table(name: str, value: Any) -> None:
    if not isinstance(value, dict):
        message = f"[{name}] must be a table, but was: {value!r}"
        raise ConfigurationError(message, [message])


def _as_list(value: Any) -> Any:
    """Copy list-like values; anything else is kept for the validator to reject."""
    if isinstance(value, (list, tuple)):
        return list(value)
    return value


def mask_url(url: Optional[str]) -> str:
    """Strip embedded credentials from a URL before it reaches the logs."""
    if url is None:
        return "null"
    parts = urlsplit(url)
    if not parts.username and not parts.password:
        return url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, f"***@{host}", parts.path, parts.query, parts.fragment))


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


class ConfigurationValidator:
    """
    Validates an ExportConfig and collects every problem at once.

    Validation never stops at the first error so the user can fix the whole
    manifest in one pass.
    """

    def validate(self, config: ExportConfig) -> List[str]:
        errors: List[str] = []
        self._validate_types(config, FIELD_TYPES, errors)
        if errors:
            # Value checks assume well-typed fields
            return errors
        self._validate_required(config, errors)
        self._validate_values(config, errors)
        return errors

    def validate_graph_options(self, config: ExportConfig) -> List[str]:
        """Only the options that shape the graph; used when nothing is exported."""
        errors: List[str] = []
        self._validate_types(config, {name: FIELD_TYPES[name] for name in GRAPH_FIELDS}, errors)
        if errors:
            return errors
        self._validate_graph_options(config, errors)
        return errors

    def _validate_types(self, config: ExportConfig, expected: Dict[str, str], errors: List[str]) -> None:
        for name, kind in expected.items():
            value = getattr(config, name)
            if kind == "str":
                ok = value is None or isinstance(value, str)
            elif kind == "int":
                ok = isinstance(value, int) and not isinstance(value, bool)
            elif kind == "number":
                ok = isinstance(value, (int, float)) and not isinstance(value, bool)
            elif kind == "bool":
                ok = isinstance(value, bool)
            else:
                ok = isinstance(value, list) and all(isinstance(item, str) for item in value)

            if not ok:
                shown = "<hidden>" if name == "password" else repr(value)
                errors.append(f"{name} must be {_KIND_NAMES[kind]}, but was: {shown}")

    def validate_or_raise(self, config: ExportConfig, graph_only: bool = False) -> None:
        errors = self.validate_graph_options(config) if graph_only else self.validate(config)
        if errors:
            raise ConfigurationError(
                "Invalid export configuration:\n- " + "\n- ".join(errors),
                errors,
            )

    def _validate_required(self, config: ExportConfig, errors: List[str]) -> None:
        if _is_blank(config.database_type):
            errors.append("database_type is required")

        if _is_blank(config.connection_url):
            errors.append("connection_url is required")

        # SQLite has no accounts
        if config.normalized_database_type == "neo4j":
            if _is_blank(config.username):
                errors.append("username is required for neo4j")
            if config.password is None:
                errors.append(
                    f"password is required for neo4j (set it in the manifest or {PASSWORD_ENV_VAR})"
                )

    def _validate_values(self, config: ExportConfig, errors: List[str]) -> None:
        db_type = config.normalized_database_type
        if db_type and db_type not in VALID_DATABASE_TYPES:
            errors.append(
                f"database_type must be one of {sorted(VALID_DATABASE_TYPES)}, "
                f"but was: {config.database_type}"
            )

        self._validate_graph_options(config, errors)

        if config.max_attempts < 1:
            errors.append(f"retry max_attempts must be >= 1, but was: {config.max_attempts}")
        if config.backoff_seconds < 0:
            errors.append(f"retry backoff_seconds must be >= 0, but was: {config.backoff_seconds}")

        self._validate_connection_url(config, errors)

    def _validate_graph_options(self, config: ExportConfig, errors: List[str]) -> None:
        if config.transitive_depth < UNLIMITED_DEPTH:
            errors.append(
                f"transitive_depth must be -1 (unlimited) or >= 0, but was: {config.transitive_depth}"
            )

        for scope in config.scopes:
            if scope.strip().lower() not in VALID_SCOPES:
                errors.append(f"Invalid scope: {scope}. Must be one of {sorted(VALID_SCOPES)}")

        self._validate_filters(config.include_filters, "include_filters", errors)
        self._validate_filters(config.exclude_filters, "exclude_filters", errors)

    def _validate_filters(self, filters: List[str], name: str, errors: List[str]) -> None:
        for pattern in filters:
            if _is_blank(pattern):
                errors.append(f"{name} contains an empty filter")
            elif not FILTER_PATTERN.match(pattern.strip()):
                errors.append(
                    f"{name} contains invalid pattern: {pattern}. "
                    "Expected groupId:artifactId with optional * or ? wildcards"
                )

    def _validate_connection_url(self, config: ExportConfig, errors: List[str]) -> None:
        if _is_blank(config.connection_url):
            return

        url = config.connection_url.strip()
        db_type = config.normalized_database_type

        if db_type == "neo4j" and not url.startswith(NEO4J_URL_SCHEMES):
            errors.append(
                "connection_url for neo4j must start with one of "
                f"{', '.join(NEO4J_URL_SCHEMES)}, but was: {mask_url(url)}"
            )
        elif db_type == "sqlite" and "://" in url and not url.startswith("sqlite:///"):
            errors.append(
                f"connection_url for sqlite must be a file path or sqlite:///path, but was: {url}"
            )
