"""
Record validation for access event migrations.

- RecordValidator: rule evaluation and advisory warnings
- ValidationOutcome: per-record pass/fail with messages
- BatchValidationStats: aggregate counts and most frequent messages
"""

from accessmigrate.validation.rules import ACCESS_EVENT_RULES, Rule
from accessmigrate.validation.stats import BatchValidationStats, compute_batch_stats
from accessmigrate.validation.validator import RecordValidator, ValidationOutcome

__all__ = [
    "ACCESS_EVENT_RULES",
    "BatchValidationStats",
    "RecordValidator",
    "Rule",
    "ValidationOutcome",
    "compute_batch_stats",
]
