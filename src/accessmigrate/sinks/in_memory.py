"""
In-memory sink for testing.

Mirrors the PostgreSQL sink's observable behavior: identities are assigned
in insertion order, natural-key conflicts are skipped when uniqueness is
enforced, and duplicate cleanup keeps the lowest identity per key.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Sequence

from accessmigrate.config import DEFAULT_TABLE_NAME
from accessmigrate.records import AccessEventRecord
from accessmigrate.sinks.interface import BatchInsertResult, RecordSink


class InMemoryRecordSink(RecordSink):
    """
    RecordSink that keeps rows in a list.

    Args:
        table_name: Label used in results
        enforce_unique: Skip rows whose natural key is already stored
        reachable: Value returned by ``test_connection``
        table_exists: Whether the table is considered to exist initially
        insert_hook: Called with each batch before it is stored; raising
            from it fails the batch
        rejected_source_ids: Natural keys the sink rejects row by row

    Example:
        >>> sink = InMemoryRecordSink()
        >>> result = await sink.insert_batch([AccessEventRecord(source_id="a")])
        >>> result.inserted
        1
    """

    def __init__(
        self,
        table_name: str = DEFAULT_TABLE_NAME,
        *,
        enforce_unique: bool = True,
        reachable: bool = True,
        table_exists: bool = False,
        insert_hook: Callable[[Sequence[AccessEventRecord]], None] | None = None,
        rejected_source_ids: Iterable[str] = (),
    ) -> None:
        self._table_name = table_name
        self._enforce_unique = enforce_unique
        self._reachable = reachable
        self._table_exists = table_exists
        self._insert_hook = insert_hook
        self._rejected_source_ids = frozenset(rejected_source_ids)
        self._rows: list[AccessEventRecord] = []
        self._next_id = 1
        self._lock = asyncio.Lock()

        self.insert_calls = 0
        self.cleanup_calls = 0
        self.truncate_calls = 0
        self.create_calls = 0

    @property
    def table_name(self) -> str:
        return self._table_name

    @property
    def rows(self) -> list[AccessEventRecord]:
        """Stored rows in identity order."""
        return list(self._rows)

    def seed(self, records: Iterable[AccessEventRecord]) -> None:
        """Store rows directly, ignoring uniqueness."""
        self._table_exists = True
        for record in records:
            self._store(record)

    def _store(self, record: AccessEventRecord) -> None:
        self._rows.append(record.model_copy(update={"id": self._next_id}))
        self._next_id += 1

    async def test_connection(self) -> bool:
        return self._reachable

    async def table_exists(self) -> bool:
        return self._table_exists

    async def create_table(self) -> None:
        self.create_calls += 1
        self._table_exists = True

    async def truncate_table(self) -> None:
        async with self._lock:
            self.truncate_calls += 1
            self._rows.clear()
            self._next_id = 1

    async def count(self) -> int:
        return len(self._rows)

    async def insert_batch(self, records: Sequence[AccessEventRecord]) -> BatchInsertResult:
        async with self._lock:
            self.insert_calls += 1
            if self._insert_hook is not None:
                self._insert_hook(records)

            existing = {row.source_id for row in self._rows if row.source_id}
            inserted = 0
            rejected = 0
            for record in records:
                if record.source_id in self._rejected_source_ids:
                    rejected += 1
                    continue
                if self._enforce_unique and record.source_id in existing:
                    continue
                self._store(record)
                existing.add(record.source_id)
                inserted += 1

        return BatchInsertResult(inserted=inserted, rejected=rejected, strategy="memory")

    async def cleanup_duplicates(self) -> int:
        async with self._lock:
            self.cleanup_calls += 1
            seen: set[str] = set()
            kept: list[AccessEventRecord] = []
            for row in sorted(self._rows, key=lambda r: r.id or 0):
                key = row.source_id
                if key:
                    if key in seen:
                        continue
                    seen.add(key)
                kept.append(row)
            removed = len(self._rows) - len(kept)
            self._rows = kept
        return removed


__all__ = ["InMemoryRecordSink"]
