"""
Unit tests for the access event record model.
"""

from datetime import UTC, datetime
from decimal import Decimal

from accessmigrate.records import NATURAL_KEY, TARGET_COLUMNS, AccessEventRecord
from tests.fixtures import make_record


class TestAccessEventRecord:
    """Tests for AccessEventRecord."""

    def test_minimal_record(self):
        record = AccessEventRecord(source_id="doc-1")

        assert record.id is None
        assert record.access_log_flag is False
        assert record.is_accreditation is False
        assert record.created_at.tzinfo is not None

    def test_is_migratable_requires_natural_key(self):
        assert AccessEventRecord(source_id="doc-1").is_migratable
        assert not AccessEventRecord().is_migratable
        assert not AccessEventRecord(source_id="   ").is_migratable

    def test_lax_coercion_from_strings(self):
        record = AccessEventRecord(
            source_id="doc-1",
            event_id="42",
            passage_duration="3.25",
            access_log_flag="true",
        )

        assert record.event_id == 42
        assert record.passage_duration == Decimal("3.25")
        assert record.access_log_flag is True


class TestTargetColumns:
    """Tests for the column order used by the loader."""

    def test_excludes_identity(self):
        assert "id" not in TARGET_COLUMNS

    def test_contains_natural_key_and_created_at(self):
        assert NATURAL_KEY in TARGET_COLUMNS
        assert TARGET_COLUMNS[-1] == "created_at"

    def test_to_row_follows_column_order(self):
        record = make_record(3)
        row = record.to_row()

        assert len(row) == len(TARGET_COLUMNS)
        assert row[TARGET_COLUMNS.index("source_id")] == "doc-3"
        assert row[TARGET_COLUMNS.index("event_id")] == 103

    def test_to_params_keys_match_columns(self):
        params = make_record(1, timestamp=datetime(2024, 1, 1, tzinfo=UTC)).to_params()

        assert tuple(params) == TARGET_COLUMNS
        assert params["timestamp"] == datetime(2024, 1, 1, tzinfo=UTC)
