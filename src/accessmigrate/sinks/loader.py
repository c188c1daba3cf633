"""
Bulk loader for the PostgreSQL target.

Two transports load a batch, both behind the InsertStrategy protocol:

- CopyInsertStrategy streams pre-encoded rows with the asyncpg COPY
  protocol into a temporary staging table, then moves them into the target
  with ``INSERT ... SELECT ... ON CONFLICT DO NOTHING``.
- StatementInsertStrategy issues one parameterized INSERT per row, each
  inside a savepoint so a failing row can be rolled back alone.

The transport is chosen from the configured batch size, not from the
length of an individual batch, so every batch of a job uses the same one.

Both strategies run on a connection that is already inside a transaction.
BulkLoader gives each batch its own transaction, or its own savepoint when
it was handed a connection whose transaction the caller holds open.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Protocol

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from accessmigrate._connection import execute_with_connection
from accessmigrate.exceptions import RowEncodingError
from accessmigrate.observability import (
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_RECORD_COUNT,
    ATTR_RECORDS_INSERTED,
    ATTR_TRANSPORT,
    Tracer,
    create_tracer,
)
from accessmigrate.records import TARGET_COLUMNS, AccessEventRecord
from accessmigrate.sinks.interface import BatchInsertResult

logger = logging.getLogger(__name__)

INT4_MIN = -(2**31)
INT4_MAX = 2**31 - 1

# Columns declared with a bounded numeric type: column -> (precision, scale)
NUMERIC_COLUMNS: dict[str, tuple[int, int]] = {
    "passage_duration": (10, 2),
}

STREAMING_STRATEGY = "copy"
STATEMENT_STRATEGY = "statement"


def encode_row(record: AccessEventRecord) -> tuple[Any, ...]:
    """
    Encode a record as a COPY row in TARGET_COLUMNS order.

    Raises:
        RowEncodingError: If a value cannot be stored in its column
    """
    values: list[Any] = []
    for column, value in zip(TARGET_COLUMNS, record.to_row(), strict=True):
        values.append(_encode_value(column, value))
    return tuple(values)


def _encode_value(column: str, value: Any) -> Any:
    if value is None or isinstance(value, bool):
        return value

    if isinstance(value, str):
        if "\x00" in value:
            raise RowEncodingError(column, "text contains a NUL character")
        return value

    if isinstance(value, int):
        if not INT4_MIN <= value <= INT4_MAX:
            raise RowEncodingError(column, f"{value} does not fit in a 32-bit integer")
        return value

    if isinstance(value, Decimal):
        if not value.is_finite():
            raise RowEncodingError(column, f"{value} is not a finite number")
        bounds = NUMERIC_COLUMNS.get(column)
        if bounds is not None:
            precision, scale = bounds
            quantized = value.quantize(Decimal(1).scaleb(-scale), rounding=ROUND_HALF_UP)
            if abs(quantized) >= Decimal(10) ** (precision - scale):
                raise RowEncodingError(
                    column, f"{value} overflows numeric({precision},{scale})"
                )
            return quantized
        return value

    if isinstance(value, float) and not math.isfinite(value):
        raise RowEncodingError(column, f"{value} is not a finite number")

    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)

    return value


class InsertStrategy(Protocol):
    """Transport that writes one batch on an open transaction."""

    @property
    def name(self) -> str: ...

    async def insert(
        self,
        conn: AsyncConnection,
        table_name: str,
        records: Sequence[AccessEventRecord],
    ) -> BatchInsertResult: ...


class CopyInsertStrategy:
    """
    Streaming transport using the COPY protocol.

    Rows that fail encoding are logged and rejected; the rest of the batch
    is still streamed.
    """

    name = STREAMING_STRATEGY

    async def insert(
        self,
        conn: AsyncConnection,
        table_name: str,
        records: Sequence[AccessEventRecord],
    ) -> BatchInsertResult:
        rows: list[tuple[Any, ...]] = []
        rejected = 0
        for record in records:
            try:
                rows.append(encode_row(record))
            except RowEncodingError as e:
                rejected += 1
                logger.warning(
                    "Skipping record %s: %s",
                    record.source_id,
                    e,
                    extra={"source_id": record.source_id, "column": e.column},
                )

        if not rows:
            return BatchInsertResult(inserted=0, rejected=rejected, strategy=self.name)

        staging_table = f"{table_name}_staging"
        columns = ", ".join(TARGET_COLUMNS)

        await conn.execute(
            text(f"""
                CREATE TEMP TABLE {staging_table} ON COMMIT DROP AS
                SELECT {columns} FROM {table_name} WITH NO DATA
            """)  # nosec B608 - table name validated as identifier
        )

        raw_conn = await conn.get_raw_connection()
        driver_conn = raw_conn.driver_connection
        if driver_conn is None:
            raise RuntimeError("No asyncpg connection available for COPY")
        await driver_conn.copy_records_to_table(
            staging_table,
            records=rows,
            columns=list(TARGET_COLUMNS),
        )

        result = await conn.execute(
            text(f"""
                INSERT INTO {table_name} ({columns})
                SELECT {columns} FROM {staging_table}
                ON CONFLICT DO NOTHING
            """)  # nosec B608
        )
        # several batches can share one connection and transaction
        await conn.execute(text(f"DROP TABLE {staging_table}"))  # nosec B608
        return BatchInsertResult(
            inserted=max(result.rowcount, 0),
            rejected=rejected,
            strategy=self.name,
        )


class StatementInsertStrategy:
    """
    Parameterized INSERT per row.

    Args:
        stop_on_error: Re-raise the first row failure (failing the batch)
            instead of rejecting the row and continuing
    """

    name = STATEMENT_STRATEGY

    def __init__(self, stop_on_error: bool = True) -> None:
        self._stop_on_error = stop_on_error

    async def insert(
        self,
        conn: AsyncConnection,
        table_name: str,
        records: Sequence[AccessEventRecord],
    ) -> BatchInsertResult:
        columns = ", ".join(TARGET_COLUMNS)
        placeholders = ", ".join(f":{column}" for column in TARGET_COLUMNS)
        query = text(f"""
            INSERT INTO {table_name} ({columns})
            VALUES ({placeholders})
            ON CONFLICT DO NOTHING
        """)  # nosec B608

        inserted = 0
        rejected = 0
        for record in records:
            try:
                async with conn.begin_nested():
                    result = await conn.execute(query, record.to_params())
            except Exception as e:
                if self._stop_on_error:
                    raise
                rejected += 1
                logger.warning(
                    "Rejected record %s: %s",
                    record.source_id,
                    e,
                    extra={"source_id": record.source_id},
                )
                continue
            inserted += max(result.rowcount, 0)

        return BatchInsertResult(inserted=inserted, rejected=rejected, strategy=self.name)


def select_strategy(
    configured_batch_size: int,
    streaming_threshold: int = 100,
    stop_on_error: bool = True,
) -> InsertStrategy:
    """
    Pick the transport for a job.

    Args:
        configured_batch_size: Batch size from settings (not the length of
            any particular batch)
        streaming_threshold: Sizes strictly above this stream with COPY
        stop_on_error: Passed to the statement transport
    """
    if configured_batch_size > streaming_threshold:
        return CopyInsertStrategy()
    return StatementInsertStrategy(stop_on_error=stop_on_error)


class BulkLoader:
    """
    Loads batches into one table, one transaction (or savepoint) per batch.

    Example:
        >>> loader = BulkLoader(engine, "access_logs", select_strategy(1000))
        >>> result = await loader.load(records)
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        table_name: str,
        strategy: InsertStrategy,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._conn = conn
        self._table_name = table_name
        self._strategy = strategy
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def strategy(self) -> InsertStrategy:
        return self._strategy

    async def load(self, records: Sequence[AccessEventRecord]) -> BatchInsertResult:
        if not records:
            return BatchInsertResult(inserted=0, strategy=self._strategy.name)

        with self._tracer.span(
            "sink.insert_batch",
            {
                ATTR_DB_SYSTEM: "postgresql",
                ATTR_DB_OPERATION: "INSERT",
                ATTR_TRANSPORT: self._strategy.name,
                ATTR_RECORD_COUNT: len(records),
            },
        ) as span:
            async with execute_with_connection(self._conn, transactional=True) as conn:
                result = await self._strategy.insert(conn, self._table_name, records)

            if span is not None:
                span.set_attribute(ATTR_RECORDS_INSERTED, result.inserted)

        logger.debug(
            "Loaded %d of %d records into %s via %s (%d rejected)",
            result.inserted,
            len(records),
            self._table_name,
            result.strategy,
            result.rejected,
            extra={"table": self._table_name, "transport": result.strategy},
        )
        return result


__all__ = [
    "BulkLoader",
    "CopyInsertStrategy",
    "InsertStrategy",
    "NUMERIC_COLUMNS",
    "STATEMENT_STRATEGY",
    "STREAMING_STRATEGY",
    "StatementInsertStrategy",
    "encode_row",
    "select_strategy",
]
