"""
Configuration classes for access event migrations.

This module provides:
- MigrationSettings: Batching, concurrency and error policy for a job
- ElasticsearchSettings: Connection and scroll settings for the document source
- PostgreSQLSettings: Connection settings for the relational sink

All settings are frozen dataclasses validated on construction. Each class
also offers ``from_dict`` and ``from_env`` constructors; environment values
override defaults, and explicit keyword overrides win over both.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from accessmigrate.exceptions import SettingsError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

DEFAULT_TABLE_NAME = "access_logs"

MAX_BATCH_SIZE = 10_000
MAX_PARALLEL_BATCH_SIZE = 1000

_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")
_SCROLL_TIMEOUT_PATTERN = re.compile(r"^\d+(d|h|m|s|ms|micros|nanos)$")
_INDEX_FORBIDDEN_CHARS = frozenset('\\/*?"<>|,# ')

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def parse_bool(name: str, value: str) -> bool:
    """Parse a boolean environment value."""
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise SettingsError(f"{name} must be a boolean (true/false/1/0), got {value!r}")


def parse_int(name: str, value: str) -> int:
    """Parse an integer environment value."""
    try:
        return int(value.strip())
    except ValueError:
        raise SettingsError(f"{name} must be an integer, got {value!r}") from None


def is_valid_identifier(name: str) -> bool:
    """Check that a table name is a plain, unquoted SQL identifier."""
    return bool(_IDENTIFIER_PATTERN.match(name))


def _default_concurrency() -> int:
    return os.cpu_count() or 4


@dataclass(frozen=True)
class MigrationSettings:
    """
    Settings for a single migration job.

    Attributes:
        batch_size: Records per batch (1-10000)
        enable_parallel_processing: Run batches on a bounded worker pool
        max_concurrency: Worker pool size in parallel mode
        stop_on_error: Abort the job on the first failed batch, and fail a
            batch that contains any invalid record
        ignore_duplicates: Run the duplicate cleanup pass after loading
        dry_run: Only sample and validate the source; never write the target
        truncate_before_migration: Empty the target table before loading
        validate_records: Run field rules on every record before insertion
        streaming_threshold: Configured batch sizes above this use the
            streaming COPY transport, others use statement inserts
        dry_run_sample_limit: Upper bound on the dry-run sample size
        table_name: Target table name

    Example:
        >>> settings = MigrationSettings(batch_size=500, stop_on_error=False)
        >>> settings.dry_run_sample_size
        500
    """

    batch_size: int = 1000
    enable_parallel_processing: bool = False
    max_concurrency: int = field(default_factory=_default_concurrency)
    stop_on_error: bool = True
    ignore_duplicates: bool = True
    dry_run: bool = False
    truncate_before_migration: bool = False
    validate_records: bool = True
    streaming_threshold: int = 100
    dry_run_sample_limit: int = 1000
    table_name: str = DEFAULT_TABLE_NAME

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not 1 <= self.batch_size <= MAX_BATCH_SIZE:
            raise SettingsError(
                f"batch_size must be between 1 and {MAX_BATCH_SIZE}, got {self.batch_size}"
            )

        if self.max_concurrency < 1:
            raise SettingsError(f"max_concurrency must be >= 1, got {self.max_concurrency}")

        if self.enable_parallel_processing and self.batch_size > MAX_PARALLEL_BATCH_SIZE:
            raise SettingsError(
                f"batch_size must be <= {MAX_PARALLEL_BATCH_SIZE} when parallel processing "
                f"is enabled, got {self.batch_size}. Lower the batch size or run sequentially."
            )

        if self.streaming_threshold < 0:
            raise SettingsError(
                f"streaming_threshold must be >= 0, got {self.streaming_threshold}"
            )

        if self.dry_run_sample_limit < 1:
            raise SettingsError(
                f"dry_run_sample_limit must be >= 1, got {self.dry_run_sample_limit}"
            )

        if not is_valid_identifier(self.table_name):
            raise SettingsError(
                f"table_name must be a plain SQL identifier, got {self.table_name!r}"
            )

    @property
    def dry_run_sample_size(self) -> int:
        """Number of records analyzed by a dry run."""
        return min(self.dry_run_sample_limit, self.batch_size)

    @property
    def uses_streaming_transport(self) -> bool:
        """True when the configured batch size selects the COPY transport."""
        return self.batch_size > self.streaming_threshold

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_size": self.batch_size,
            "enable_parallel_processing": self.enable_parallel_processing,
            "max_concurrency": self.max_concurrency,
            "stop_on_error": self.stop_on_error,
            "ignore_duplicates": self.ignore_duplicates,
            "dry_run": self.dry_run,
            "truncate_before_migration": self.truncate_before_migration,
            "validate_records": self.validate_records,
            "streaming_threshold": self.streaming_threshold,
            "dry_run_sample_limit": self.dry_run_sample_limit,
            "table_name": self.table_name,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MigrationSettings:
        """
        Create from a dictionary.

        Unknown keys are ignored so that a larger application config section
        can be passed through unchanged.
        """
        defaults = cls()
        values = {key: data.get(key, value) for key, value in defaults.to_dict().items()}
        return cls(**values)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> MigrationSettings:
        """
        Create from environment variables.

        Recognized variables: BATCH_SIZE, ENABLE_PARALLEL_PROCESSING,
        MAX_CONCURRENCY, STOP_ON_ERROR, IGNORE_DUPLICATES, DRY_RUN,
        TRUNCATE_BEFORE_MIGRATION, VALIDATE_RECORDS, TABLE_NAME.

        Args:
            environ: Mapping to read from (defaults to ``os.environ``)
            **overrides: Explicit values that take precedence

        Raises:
            SettingsError: If a variable cannot be parsed or the result is invalid
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}

        int_vars = {"BATCH_SIZE": "batch_size", "MAX_CONCURRENCY": "max_concurrency"}
        bool_vars = {
            "ENABLE_PARALLEL_PROCESSING": "enable_parallel_processing",
            "STOP_ON_ERROR": "stop_on_error",
            "IGNORE_DUPLICATES": "ignore_duplicates",
            "DRY_RUN": "dry_run",
            "TRUNCATE_BEFORE_MIGRATION": "truncate_before_migration",
            "VALIDATE_RECORDS": "validate_records",
        }

        for var, attr in int_vars.items():
            if env.get(var):
                values[attr] = parse_int(var, env[var])
        for var, attr in bool_vars.items():
            if env.get(var):
                values[attr] = parse_bool(var, env[var])
        if env.get("TABLE_NAME"):
            values["table_name"] = env["TABLE_NAME"].strip()

        values.update(overrides)
        return cls(**values)


def validate_index_name(index_name: str) -> None:
    """
    Validate an Elasticsearch index name.

    Raises:
        SettingsError: If the name breaks any index naming rule
    """
    if not index_name or not index_name.strip():
        raise SettingsError("index_name must not be empty")
    if index_name != index_name.lower():
        raise SettingsError(f"index_name must be lowercase, got {index_name!r}")
    if any(char in _INDEX_FORBIDDEN_CHARS for char in index_name):
        raise SettingsError(
            f"index_name must not contain any of \\ / * ? \" < > | , # or spaces, "
            f"got {index_name!r}"
        )
    if index_name[0] in "-_+":
        raise SettingsError(f"index_name must not start with -, _ or +, got {index_name!r}")
    if index_name in (".", ".."):
        raise SettingsError("index_name must not be '.' or '..'")
    if len(index_name.encode("utf-8")) > 255:
        raise SettingsError("index_name must be at most 255 bytes")


@dataclass(frozen=True)
class ElasticsearchSettings:
    """
    Connection and pagination settings for the Elasticsearch source.

    Attributes:
        hosts: Cluster URLs
        index_name: Index holding the access log documents
        scroll_timeout: How long each scroll context is kept alive (e.g. "10m")
        request_timeout: Per-request timeout in seconds (60-3600)
        page_size: Documents per scroll page (1-10000)
        api_key: Optional API key
        basic_auth: Optional (username, password) pair
        verify_certs: Verify TLS certificates
    """

    hosts: tuple[str, ...] = ("http://localhost:9200",)
    index_name: str = "access_logs"
    scroll_timeout: str = "10m"
    request_timeout: int = 300
    page_size: int = 1000
    api_key: str | None = None
    basic_auth: tuple[str, str] | None = None
    verify_certs: bool = True

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not self.hosts:
            raise SettingsError("hosts must contain at least one URL")
        for host in self.hosts:
            if not host.startswith(("http://", "https://")):
                raise SettingsError(f"host must be an http(s) URL, got {host!r}")

        validate_index_name(self.index_name)

        if not _SCROLL_TIMEOUT_PATTERN.match(self.scroll_timeout):
            raise SettingsError(
                f"scroll_timeout must look like '10m', '30s' or '1h', got {self.scroll_timeout!r}"
            )

        if not 60 <= self.request_timeout <= 3600:
            raise SettingsError(
                f"request_timeout must be between 60 and 3600 seconds, got {self.request_timeout}"
            )

        if not 1 <= self.page_size <= MAX_BATCH_SIZE:
            raise SettingsError(
                f"page_size must be between 1 and {MAX_BATCH_SIZE}, got {self.page_size}"
            )

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> ElasticsearchSettings:
        """
        Create from environment variables.

        Recognized variables: ELASTICSEARCH_HOSTS (comma separated),
        ELASTICSEARCH_INDEX, ELASTICSEARCH_API_KEY, ELASTICSEARCH_USERNAME,
        ELASTICSEARCH_PASSWORD, ELASTICSEARCH_SCROLL_TIMEOUT.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}

        if env.get("ELASTICSEARCH_HOSTS"):
            values["hosts"] = tuple(
                host.strip() for host in env["ELASTICSEARCH_HOSTS"].split(",") if host.strip()
            )
        if env.get("ELASTICSEARCH_INDEX"):
            values["index_name"] = env["ELASTICSEARCH_INDEX"].strip()
        if env.get("ELASTICSEARCH_SCROLL_TIMEOUT"):
            values["scroll_timeout"] = env["ELASTICSEARCH_SCROLL_TIMEOUT"].strip()
        if env.get("ELASTICSEARCH_API_KEY"):
            values["api_key"] = env["ELASTICSEARCH_API_KEY"]
        if env.get("ELASTICSEARCH_USERNAME"):
            values["basic_auth"] = (
                env["ELASTICSEARCH_USERNAME"],
                env.get("ELASTICSEARCH_PASSWORD", ""),
            )

        values.update(overrides)
        return cls(**values)


@dataclass(frozen=True)
class PostgreSQLSettings:
    """
    Connection settings for the PostgreSQL sink.

    Attributes:
        url: SQLAlchemy URL; plain ``postgresql://`` URLs are switched to the
            asyncpg driver
        pool_size: Connection pool size
        max_overflow: Extra connections allowed beyond the pool size
    """

    url: str
    pool_size: int = 5
    max_overflow: int = 10

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not self.url or not self.url.strip():
            raise SettingsError("url must not be empty")
        if not self.url.startswith(("postgresql://", "postgresql+asyncpg://", "postgres://")):
            raise SettingsError(f"url must be a PostgreSQL URL, got {self.url.split('@')[-1]!r}")
        if self.pool_size < 1:
            raise SettingsError(f"pool_size must be >= 1, got {self.pool_size}")
        if self.max_overflow < 0:
            raise SettingsError(f"max_overflow must be >= 0, got {self.max_overflow}")

    @property
    def async_url(self) -> str:
        """The connection URL using the asyncpg driver."""
        url = self.url
        if url.startswith("postgres://"):
            url = "postgresql://" + url[len("postgres://") :]
        if url.startswith("postgresql://"):
            url = "postgresql+asyncpg://" + url[len("postgresql://") :]
        return url

    def create_engine(self) -> AsyncEngine:
        """Create an AsyncEngine for these settings."""
        from sqlalchemy.ext.asyncio import create_async_engine

        return create_async_engine(
            self.async_url,
            echo=False,
            pool_size=self.pool_size,
            max_overflow=self.max_overflow,
        )

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> PostgreSQLSettings:
        """
        Create from the POSTGRESQL_CONNECTION environment variable.

        Raises:
            SettingsError: If no URL is configured
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        if env.get("POSTGRESQL_CONNECTION"):
            values["url"] = env["POSTGRESQL_CONNECTION"].strip()
        values.update(overrides)
        if "url" not in values:
            raise SettingsError("POSTGRESQL_CONNECTION is not set")
        return cls(**values)


__all__ = [
    "DEFAULT_TABLE_NAME",
    "MAX_BATCH_SIZE",
    "MAX_PARALLEL_BATCH_SIZE",
    "MigrationSettings",
    "ElasticsearchSettings",
    "PostgreSQLSettings",
    "is_valid_identifier",
    "parse_bool",
    "parse_int",
    "validate_index_name",
]
