"""
Unit tests for exceptions module.

Tests all exception types and their error messages.
"""

import pytest

from accessmigrate.exceptions import (
    BatchFailedError,
    ConnectivityError,
    InvalidRecordsError,
    InvalidStateTransitionError,
    MigrationError,
    ParseThresholdExceededError,
    RecordParseError,
    ResultSealedError,
    RowEncodingError,
    SettingsError,
)
from accessmigrate.result import MigrationState


class TestMigrationError:
    """Tests for the base MigrationError."""

    def test_base_exception(self):
        with pytest.raises(MigrationError) as exc_info:
            raise MigrationError("Test error")
        assert str(exc_info.value) == "Test error"

    @pytest.mark.parametrize(
        "error_type",
        [
            ConnectivityError,
            RecordParseError,
            ParseThresholdExceededError,
            BatchFailedError,
            InvalidRecordsError,
            RowEncodingError,
            InvalidStateTransitionError,
            ResultSealedError,
        ],
    )
    def test_hierarchy(self, error_type):
        assert issubclass(error_type, MigrationError)


class TestConnectivityError:
    def test_message_and_attributes(self):
        error = ConnectivityError("target table access_logs", "connection test failed")

        assert error.component == "target table access_logs"
        assert error.detail == "connection test failed"
        assert str(error) == "Cannot connect to target table access_logs: connection test failed"


class TestParseErrors:
    """Tests for row parse errors and the parse threshold."""

    def test_record_parse_error(self):
        error = RecordParseError(12, "invalid timestamp 'yesterday'")

        assert error.line_number == 12
        assert str(error) == "Line 12: invalid timestamp 'yesterday'"

    def test_threshold_exceeded(self):
        error = ParseThresholdExceededError(11, 10)

        assert error.error_count == 11
        assert error.tolerance == 10
        assert "Too many parse errors (11)" in str(error)


class TestBatchErrors:
    """Tests for batch level errors."""

    def test_batch_failed(self):
        error = BatchFailedError(3, "deadlock detected")

        assert error.batch_number == 3
        assert error.detail == "deadlock detected"
        assert str(error) == "Batch 3 failed: deadlock detected"

    def test_invalid_records_is_a_batch_failure(self):
        error = InvalidRecordsError(2, 5)

        assert isinstance(error, BatchFailedError)
        assert error.invalid_count == 5
        assert error.detail == "5 invalid records found"
        assert str(error) == "Batch 2 failed: 5 invalid records found"

    def test_row_encoding(self):
        error = RowEncodingError("event_id", "value 3000000000 is out of range")

        assert error.column == "event_id"
        assert str(error) == "Cannot encode column event_id: value 3000000000 is out of range"


class TestStateErrors:
    """Tests for lifecycle errors."""

    def test_invalid_transition(self):
        error = InvalidStateTransitionError(MigrationState.COMPLETED, MigrationState.LOADING)

        assert error.from_state == MigrationState.COMPLETED
        assert error.to_state == MigrationState.LOADING
        assert str(error) == "Invalid migration state transition: completed -> loading"

    def test_result_sealed(self):
        error = ResultSealedError("add warning")

        assert error.operation == "add warning"
        assert str(error) == "Cannot add warning: migration result is already complete"


class TestSettingsError:
    def test_is_value_error(self):
        assert issubclass(SettingsError, ValueError)
        assert not issubclass(SettingsError, MigrationError)
