"""Aggregate statistics over a batch of validation outcomes."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field

from accessmigrate.validation.validator import ValidationOutcome

TOP_MESSAGES = 10


@dataclass(frozen=True)
class BatchValidationStats:
    """
    Counts and most frequent messages for a set of outcomes.

    ``most_common_errors`` and ``most_common_warnings`` hold at most ten
    entries each, ordered by frequency; equal counts keep first-seen order.
    """

    total_records: int = 0
    valid_records: int = 0
    invalid_records: int = 0
    records_with_warnings: int = 0
    most_common_errors: dict[str, int] = field(default_factory=dict)
    most_common_warnings: dict[str, int] = field(default_factory=dict)

    @property
    def valid_percentage(self) -> float:
        if self.total_records == 0:
            return 0.0
        return self.valid_records / self.total_records * 100

    @property
    def invalid_percentage(self) -> float:
        if self.total_records == 0:
            return 0.0
        return self.invalid_records / self.total_records * 100

    def describe(self) -> str:
        return (
            f"{self.valid_records}/{self.total_records} valid "
            f"({self.valid_percentage:.1f}%), {self.invalid_records} invalid, "
            f"{self.records_with_warnings} with warnings"
        )


def compute_batch_stats(outcomes: Iterable[ValidationOutcome]) -> BatchValidationStats:
    """Aggregate outcomes into BatchValidationStats."""
    total = valid = warned = 0
    errors: Counter[str] = Counter()
    warnings: Counter[str] = Counter()

    for outcome in outcomes:
        total += 1
        if outcome.is_valid:
            valid += 1
        if outcome.warnings:
            warned += 1
        errors.update(outcome.errors)
        warnings.update(outcome.warnings)

    return BatchValidationStats(
        total_records=total,
        valid_records=valid,
        invalid_records=total - valid,
        records_with_warnings=warned,
        most_common_errors=dict(errors.most_common(TOP_MESSAGES)),
        most_common_warnings=dict(warnings.most_common(TOP_MESSAGES)),
    )


__all__ = ["BatchValidationStats", "TOP_MESSAGES", "compute_batch_stats"]
