"""
In-memory record source.

Serves a fixed list of records. Used by tests and for migrating records
that were produced programmatically.
"""

from __future__ import annotations

from collections.abc import Iterable

from accessmigrate.records import AccessEventRecord
from accessmigrate.result import SourceType
from accessmigrate.sources.interface import RecordSource


class InMemoryRecordSource(RecordSource):
    """
    RecordSource backed by a list.

    Args:
        records: Records to serve, in order
        reachable: Value returned by ``test_connection``
        healthy: Value returned by ``check_health``
        identifier: Label used in reports

    Example:
        >>> source = InMemoryRecordSource([AccessEventRecord(source_id="a")])
        >>> await source.count()
        1
    """

    source_type = SourceType.MEMORY

    def __init__(
        self,
        records: Iterable[AccessEventRecord] = (),
        *,
        reachable: bool = True,
        healthy: bool = True,
        identifier: str = "memory",
    ) -> None:
        self._records = list(records)
        self._reachable = reachable
        self._healthy = healthy
        self._identifier = identifier
        self.fetch_count = 0
        self.closed = False

    @property
    def identifier(self) -> str:
        return self._identifier

    async def test_connection(self) -> bool:
        return self._reachable

    async def check_health(self) -> bool:
        return self._healthy

    async def count(self) -> int:
        return len(self._records)

    async def fetch_all(self) -> list[AccessEventRecord]:
        self.fetch_count += 1
        return list(self._records)

    async def fetch_sample(self, limit: int) -> list[AccessEventRecord]:
        self.fetch_count += 1
        return self._records[:limit]

    async def close(self) -> None:
        self.closed = True


__all__ = ["InMemoryRecordSource"]
