"""
PostgreSQL sink.

Writes access event records into a PostgreSQL table through a SQLAlchemy
AsyncEngine using the asyncpg driver. The table layout comes from
``accessmigrate.sinks.schema``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, cast

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from accessmigrate._connection import execute_with_connection
from accessmigrate.config import DEFAULT_TABLE_NAME, is_valid_identifier
from accessmigrate.exceptions import SettingsError
from accessmigrate.observability import (
    ATTR_DB_NAME,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    Tracer,
    create_tracer,
)
from accessmigrate.records import NATURAL_KEY, AccessEventRecord
from accessmigrate.sinks.interface import BatchInsertResult, RecordSink
from accessmigrate.sinks.loader import BulkLoader, InsertStrategy, select_strategy
from accessmigrate.sinks.schema import generate_schema_statements

if TYPE_CHECKING:
    from accessmigrate.config import MigrationSettings

logger = logging.getLogger(__name__)


class PostgreSQLSink(RecordSink):
    """
    RecordSink for a PostgreSQL table.

    Each ``insert_batch`` call acquires its own connection from the engine
    and runs in its own transaction.

    Args:
        conn: AsyncEngine (or an AsyncConnection whose transaction the
            caller manages)
        table_name: Target table, validated as an SQL identifier
        strategy: Insert transport; defaults to the one selected for a
            batch size of 1000
        tracer: Optional custom Tracer instance
        enable_tracing: Whether to enable OpenTelemetry tracing

    Example:
        >>> sink = PostgreSQLSink.from_settings(engine, MigrationSettings())
        >>> if not await sink.table_exists():
        ...     await sink.create_table()
        >>> result = await sink.insert_batch(records)
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        table_name: str = DEFAULT_TABLE_NAME,
        strategy: InsertStrategy | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        if not is_valid_identifier(table_name):
            raise SettingsError(f"table_name must be a plain SQL identifier, got {table_name!r}")
        self._conn = conn
        self._table_name = table_name
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._loader = BulkLoader(
            conn,
            table_name,
            strategy or select_strategy(1000),
            tracer=self._tracer,
        )

    @classmethod
    def from_settings(
        cls,
        conn: AsyncConnection | AsyncEngine,
        settings: MigrationSettings,
        *,
        enable_tracing: bool = True,
    ) -> PostgreSQLSink:
        """Create a sink whose transport follows the job settings."""
        strategy = select_strategy(
            settings.batch_size,
            settings.streaming_threshold,
            stop_on_error=settings.stop_on_error,
        )
        return cls(
            conn,
            settings.table_name,
            strategy=strategy,
            enable_tracing=enable_tracing,
        )

    @property
    def table_name(self) -> str:
        return self._table_name

    @property
    def strategy(self) -> InsertStrategy:
        return self._loader.strategy

    async def test_connection(self) -> bool:
        try:
            async with execute_with_connection(self._conn, transactional=False) as conn:
                result = await conn.execute(text("SELECT version()"))
                version = result.scalar()
        except Exception as e:
            logger.error("PostgreSQL connection test failed: %s", e)
            return False
        logger.info("PostgreSQL connection established: %s", version)
        return True

    async def table_exists(self) -> bool:
        async with execute_with_connection(self._conn, transactional=False) as conn:
            result = await conn.execute(
                text("SELECT to_regclass(:name) IS NOT NULL"),
                {"name": self._table_name},
            )
            return bool(result.scalar())

    async def create_table(self) -> None:
        with self._tracer.span(
            "sink.create_table",
            {
                ATTR_DB_SYSTEM: "postgresql",
                ATTR_DB_NAME: self._table_name,
                ATTR_DB_OPERATION: "CREATE",
            },
        ):
            # asyncpg executes one statement per call
            async with execute_with_connection(self._conn, transactional=True) as conn:
                for statement in generate_schema_statements(self._table_name):
                    await conn.execute(text(statement))
        logger.info("Created table %s", self._table_name)

    async def truncate_table(self) -> None:
        async with execute_with_connection(self._conn, transactional=True) as conn:
            await conn.execute(
                text(f"TRUNCATE TABLE {self._table_name} RESTART IDENTITY")  # nosec B608
            )
        logger.info("Truncated table %s", self._table_name)

    async def count(self) -> int:
        async with execute_with_connection(self._conn, transactional=False) as conn:
            result = await conn.execute(
                text(f"SELECT COUNT(*) FROM {self._table_name}")  # nosec B608
            )
            return int(result.scalar() or 0)

    async def insert_batch(self, records: Sequence[AccessEventRecord]) -> BatchInsertResult:
        return await self._loader.load(records)

    async def cleanup_duplicates(self) -> int:
        with self._tracer.span(
            "sink.cleanup_duplicates",
            {
                ATTR_DB_SYSTEM: "postgresql",
                ATTR_DB_NAME: self._table_name,
                ATTR_DB_OPERATION: "DELETE",
            },
        ):
            query = text(f"""
                DELETE FROM {self._table_name} a
                USING {self._table_name} b
                WHERE a.id > b.id
                  AND a.{NATURAL_KEY} = b.{NATURAL_KEY}
                  AND a.{NATURAL_KEY} IS NOT NULL
                  AND a.{NATURAL_KEY} <> ''
            """)  # nosec B608

            async with execute_with_connection(self._conn, transactional=True) as conn:
                result = await conn.execute(query)
                removed = cast(int, result.rowcount)

        if removed > 0:
            logger.info("Removed %d duplicate rows from %s", removed, self._table_name)
        return removed


__all__ = ["PostgreSQLSink"]
