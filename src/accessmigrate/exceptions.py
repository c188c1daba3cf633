"""
Exceptions for the accessmigrate package.

Exception Hierarchy:
    MigrationError (base)
    +-- ConnectivityError
    +-- RecordParseError
    +-- ParseThresholdExceededError
    +-- BatchFailedError
    |   +-- InvalidRecordsError
    +-- RowEncodingError
    +-- InvalidStateTransitionError
    +-- ResultSealedError
    SettingsError (ValueError)

Only ConnectivityError and ParseThresholdExceededError are fatal to a
migration job. Row and batch level errors are absorbed by the orchestrator
into the MigrationResult counters and message lists.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from accessmigrate.result import MigrationState


class MigrationError(Exception):
    """Base exception for accessmigrate."""

    pass


class ConnectivityError(MigrationError):
    """Raised when the source or the sink cannot be reached."""

    def __init__(self, component: str, detail: str) -> None:
        self.component = component
        self.detail = detail
        super().__init__(f"Cannot connect to {component}: {detail}")


class RecordParseError(MigrationError):
    """Raised when a single source row cannot be turned into a record."""

    def __init__(self, line_number: int, detail: str) -> None:
        self.line_number = line_number
        self.detail = detail
        super().__init__(f"Line {line_number}: {detail}")


class ParseThresholdExceededError(MigrationError):
    """Raised when too many source rows fail to parse under strict stop."""

    def __init__(self, error_count: int, tolerance: int) -> None:
        self.error_count = error_count
        self.tolerance = tolerance
        super().__init__(
            f"Too many parse errors ({error_count}), tolerance is {tolerance}; stopping"
        )


class BatchFailedError(MigrationError):
    """Raised when a batch cannot be loaded into the target."""

    def __init__(self, batch_number: int, detail: str) -> None:
        self.batch_number = batch_number
        self.detail = detail
        super().__init__(f"Batch {batch_number} failed: {detail}")


class InvalidRecordsError(BatchFailedError):
    """Raised for a batch holding invalid records when stop-on-error is set."""

    def __init__(self, batch_number: int, invalid_count: int) -> None:
        self.invalid_count = invalid_count
        super().__init__(batch_number, f"{invalid_count} invalid records found")


class RowEncodingError(MigrationError):
    """Raised when a record value cannot be encoded for the target column."""

    def __init__(self, column: str, detail: str) -> None:
        self.column = column
        self.detail = detail
        super().__init__(f"Cannot encode column {column}: {detail}")


class InvalidStateTransitionError(MigrationError):
    """Raised when the orchestrator attempts an illegal state change."""

    def __init__(self, from_state: MigrationState, to_state: MigrationState) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid migration state transition: {from_state.value} -> {to_state.value}"
        )


class ResultSealedError(MigrationError):
    """Raised when a completed MigrationResult is mutated."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Cannot {operation}: migration result is already complete")


class SettingsError(ValueError):
    """Raised for invalid settings or environment values."""

    pass


__all__ = [
    "MigrationError",
    "ConnectivityError",
    "RecordParseError",
    "ParseThresholdExceededError",
    "BatchFailedError",
    "InvalidRecordsError",
    "RowEncodingError",
    "InvalidStateTransitionError",
    "ResultSealedError",
    "SettingsError",
]
