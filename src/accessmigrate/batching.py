"""
Batch splitting for migration jobs.

The splitter partitions a fully materialized record sequence into
contiguous, 1-based sequence-numbered batches. It never reorders or filters
records; only the final batch may be shorter than the batch size.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Batch(Generic[T]):
    """
    An ordered slice of records.

    Attributes:
        number: 1-based sequence number
        records: Records in source order
    """

    number: int
    records: tuple[T, ...]

    @property
    def size(self) -> int:
        return len(self.records)


def batch_count(total: int, batch_size: int) -> int:
    """Number of batches ``total`` records split into."""
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    return math.ceil(total / batch_size)


def split_into_batches(records: Sequence[T], batch_size: int) -> list[Batch[T]]:
    """
    Split records into sequence-numbered batches.

    Args:
        records: Materialized, ordered records
        batch_size: Maximum records per batch

    Returns:
        ``ceil(len(records) / batch_size)`` batches whose sizes sum to
        ``len(records)``

    Raises:
        ValueError: If batch_size is not positive

    Example:
        >>> [b.size for b in split_into_batches(list(range(2500)), 1000)]
        [1000, 1000, 500]
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    return [
        Batch(number=index + 1, records=tuple(records[start : start + batch_size]))
        for index, start in enumerate(range(0, len(records), batch_size))
    ]


__all__ = ["Batch", "batch_count", "split_into_batches"]
