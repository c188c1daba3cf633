"""
Record source interface.

A RecordSource produces the complete, materialized set of records for a
job. The orchestrator only talks to this interface; Elasticsearch, CSV and
in-memory sources implement it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from accessmigrate.records import AccessEventRecord
from accessmigrate.result import SourceType


class RecordSource(ABC):
    """
    Abstract base class for record sources.

    Implementations must be finite: ``fetch_all`` returns once every
    record has been read.
    """

    source_type: SourceType

    @property
    @abstractmethod
    def identifier(self) -> str:
        """Index name, file path or other label for reports."""
        pass

    @abstractmethod
    async def test_connection(self) -> bool:
        """
        Check whether the source can be reached.

        Returns:
            True if reachable. Implementations do not raise for an
            unreachable source.
        """
        pass

    async def check_health(self) -> bool:
        """
        Optional health check.

        A False result is reported as a warning and never blocks a job.
        """
        return True

    @abstractmethod
    async def count(self) -> int:
        """Number of records available in the source."""
        pass

    @abstractmethod
    async def fetch_all(self) -> list[AccessEventRecord]:
        """
        Read every record.

        Raises:
            ParseThresholdExceededError: If a strict source sees too many bad rows
        """
        pass

    async def fetch_sample(self, limit: int) -> list[AccessEventRecord]:
        """
        Read at most ``limit`` records from the start of the source.

        The default reads everything and truncates; sources that can stop
        early override it.
        """
        records = await self.fetch_all()
        return records[:limit]

    async def close(self) -> None:
        """Release any client resources."""
        return None


__all__ = ["RecordSource"]
