"""
Record sink interface.

A RecordSink owns the target table: it checks it, prepares it, loads
batches into it and reconciles duplicates after the load.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

from accessmigrate.records import AccessEventRecord


@dataclass(frozen=True)
class BatchInsertResult:
    """
    Outcome of loading one batch.

    Attributes:
        inserted: Rows the target reported as written
        rejected: Rows refused by the loader (encoding or per-row errors)
        strategy: Name of the transport that loaded the batch
    """

    inserted: int
    rejected: int = 0
    strategy: str = ""

    def __post_init__(self) -> None:
        if self.inserted < 0 or self.rejected < 0:
            raise ValueError("inserted and rejected must be non-negative")


class RecordSink(ABC):
    """Abstract base class for migration targets."""

    @property
    @abstractmethod
    def table_name(self) -> str:
        pass

    @abstractmethod
    async def test_connection(self) -> bool:
        """
        Check whether the target can be reached.

        Returns:
            True if reachable. Implementations do not raise for an
            unreachable target.
        """
        pass

    @abstractmethod
    async def table_exists(self) -> bool:
        pass

    @abstractmethod
    async def create_table(self) -> None:
        """Create the target table and its indexes."""
        pass

    @abstractmethod
    async def truncate_table(self) -> None:
        """Remove every row and reset the identity sequence."""
        pass

    @abstractmethod
    async def count(self) -> int:
        pass

    @abstractmethod
    async def insert_batch(self, records: Sequence[AccessEventRecord]) -> BatchInsertResult:
        """
        Load one batch in a single transaction.

        Rows whose natural key already exists are skipped: they count as
        neither inserted nor rejected.

        Raises:
            Exception: Any loader-level failure; the batch is rolled back
        """
        pass

    @abstractmethod
    async def cleanup_duplicates(self) -> int:
        """
        Delete all but the lowest-identity row per non-empty natural key.

        Returns:
            Number of rows deleted
        """
        pass


__all__ = ["BatchInsertResult", "RecordSink"]
