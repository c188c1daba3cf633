"""
Record validation.

RecordValidator runs a rule set against records and reports a
ValidationOutcome per record. Outcomes carry errors only when the record
failed; warnings are advisory and may accompany a pass.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field

from accessmigrate.records import AccessEventRecord
from accessmigrate.validation.rules import ACCESS_EVENT_RULES, Rule, is_valid_ip

logger = logging.getLogger(__name__)

PASSAGE_DURATION_WARNING_SECONDS = 300
TIMESTAMP_SKEW_WARNING_MINUTES = 60


@dataclass(frozen=True)
class ValidationOutcome:
    """
    Result of validating one record.

    Attributes:
        is_valid: True if every rule passed
        errors: Rule failures in rule order (empty when valid)
        warnings: Advisory findings in check order
        record: The validated record (None if the input was None)
    """

    is_valid: bool
    record: AccessEventRecord | None = None
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @classmethod
    def success(
        cls,
        record: AccessEventRecord,
        warnings: Iterable[str] = (),
    ) -> ValidationOutcome:
        return cls(is_valid=True, record=record, warnings=tuple(warnings))

    @classmethod
    def failure(
        cls,
        errors: Iterable[str],
        record: AccessEventRecord | None = None,
    ) -> ValidationOutcome:
        return cls(is_valid=False, record=record, errors=tuple(errors))

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    @property
    def error_summary(self) -> str:
        return "; ".join(self.errors)


@dataclass
class RecordValidator:
    """
    Validates access event records against a rule set.

    Args:
        rules: Rules to apply, in order (defaults to ACCESS_EVENT_RULES)
        passage_duration_warning: Seconds above which a passage is flagged
        timestamp_skew_warning_minutes: Allowed drift between ``timestamp``
            and ``transaction_time`` before a warning is raised

    Example:
        >>> validator = RecordValidator()
        >>> outcome = validator.validate(AccessEventRecord(source_id="doc-1"))
        >>> outcome.is_valid
        True
    """

    rules: Sequence[Rule] = field(default=ACCESS_EVENT_RULES)
    passage_duration_warning: int = PASSAGE_DURATION_WARNING_SECONDS
    timestamp_skew_warning_minutes: int = TIMESTAMP_SKEW_WARNING_MINUTES

    def validate(self, record: AccessEventRecord | None) -> ValidationOutcome:
        """Run every rule against a record."""
        if record is None:
            return ValidationOutcome.failure(["Record must not be None"])

        try:
            errors = [message for rule in self.rules if (message := rule(record)) is not None]
        except Exception as e:
            logger.error(
                "Validation of record %s raised: %s",
                record.source_id,
                e,
                exc_info=True,
            )
            return ValidationOutcome.failure([f"Validation error: {e}"], record)

        if errors:
            return ValidationOutcome.failure(errors, record)
        return ValidationOutcome.success(record)

    def validate_with_warnings(self, record: AccessEventRecord | None) -> ValidationOutcome:
        """Validate, then run the advisory checks on records that passed."""
        outcome = self.validate(record)
        if not outcome.is_valid or outcome.record is None:
            return outcome
        return ValidationOutcome.success(outcome.record, self._collect_warnings(outcome.record))

    def validate_batch(
        self,
        records: Iterable[AccessEventRecord | None],
        with_warnings: bool = False,
    ) -> Iterator[ValidationOutcome]:
        """
        Lazily validate records, one outcome per input, in input order.

        Args:
            records: Records to validate; None entries produce failures
            with_warnings: Also run the advisory checks
        """
        check = self.validate_with_warnings if with_warnings else self.validate
        for record in records:
            yield check(record)

    def _collect_warnings(self, record: AccessEventRecord) -> list[str]:
        warnings: list[str] = []

        if not (record.event_name and record.event_name.strip()):
            warnings.append("Event name is empty")
        if not (record.gate_name and record.gate_name.strip()):
            warnings.append("Gate name is empty")
        if not (record.reader_name and record.reader_name.strip()):
            warnings.append("Reader name is empty")

        if record.event_id is None:
            warnings.append("Event ID is missing")
        if record.stadium_id is None:
            warnings.append("Stadium ID is missing")
        if record.transaction_id is None:
            warnings.append("Transaction ID is missing")
        if record.timestamp is None:
            warnings.append("Timestamp is missing")

        if (
            record.passage_duration is not None
            and record.passage_duration > self.passage_duration_warning
        ):
            warnings.append(
                f"Passage duration is unusually long: {record.passage_duration} seconds"
            )

        if record.timestamp is not None and record.transaction_time is not None:
            try:
                skew = abs(record.transaction_time - record.timestamp).total_seconds() / 60
            except TypeError:
                # naive and aware datetimes cannot be compared
                skew = None
            if skew is not None and skew > self.timestamp_skew_warning_minutes:
                warnings.append(
                    f"Transaction time differs from timestamp by {skew:.0f} minutes"
                )

        if record.ip and not is_valid_ip(record.ip):
            warnings.append(f"Invalid IP address format: {record.ip}")

        if record.port:
            try:
                port = int(record.port)
            except ValueError:
                port = None
            if port is not None and (port < 1024 or port > 65535):
                warnings.append(f"Port is outside the expected range: {port}")

        return warnings


__all__ = [
    "PASSAGE_DURATION_WARNING_SECONDS",
    "TIMESTAMP_SKEW_WARNING_MINUTES",
    "RecordValidator",
    "ValidationOutcome",
]
