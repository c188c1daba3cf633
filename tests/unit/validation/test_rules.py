"""
Unit tests for field-level validation rules.
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from accessmigrate.validation.rules import (
    ACCESS_EVENT_RULES,
    is_valid_ip,
    is_valid_national_id,
    is_valid_nationality_id,
    is_valid_port,
    max_length,
    not_in_future,
    one_of,
    positive,
    required,
)
from tests.fixtures import make_record


def errors_for(record):
    return [message for rule in ACCESS_EVENT_RULES if (message := rule(record)) is not None]


class TestPredicates:
    """Tests for the standalone value checks."""

    @pytest.mark.parametrize(
        "value", ["10.0.0.1", "::1", "2001:db8::ff00:42:8329", " 192.168.1.1 "]
    )
    def test_valid_ips(self, value):
        assert is_valid_ip(value)

    @pytest.mark.parametrize("value", ["", "300.1.1.1", "host.local", "1.2.3"])
    def test_invalid_ips(self, value):
        assert not is_valid_ip(value)

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("1", True), ("65535", True), ("0", False), ("65536", False), ("http", False)],
    )
    def test_ports(self, value, expected):
        assert is_valid_port(value) is expected

    def test_national_id_checksum(self):
        assert is_valid_national_id("10000000146")
        assert not is_valid_national_id("10000000147")
        assert not is_valid_national_id("01234567890")
        assert not is_valid_national_id("1234")

    def test_nationality_id_non_numeric_length(self):
        assert is_valid_nationality_id("P1234567")
        assert not is_valid_nationality_id("AB1")
        assert not is_valid_nationality_id("X" * 51)

    def test_eleven_digit_nationality_id_uses_checksum(self):
        assert is_valid_nationality_id("10000000146")
        assert not is_valid_nationality_id("10000000147")


class TestRuleFactories:
    """Tests for the rule factories."""

    def test_max_length(self):
        rule = max_length("gate_name", 5)

        assert rule(make_record(gate_name="Gate1")) is None
        assert rule(make_record(gate_name="Gate 12")) == "Gate name must be at most 5 characters"
        assert rule(make_record(gate_name=None)) is None

    def test_required(self):
        rule = required("source_id")

        assert rule(make_record(source_id="x")) is None
        assert rule(make_record(source_id="  ")) == "Source id must not be empty"
        assert rule(make_record(source_id=None)) == "Source id must not be empty"

    def test_positive(self):
        rule = positive("event_id")

        assert rule(make_record(event_id=1)) is None
        assert rule(make_record(event_id=None)) is None
        assert rule(make_record(event_id=0)) == "Event id must be a positive number"

    def test_one_of_is_case_insensitive(self):
        rule = one_of("result", {"PASSED", "DENIED"})

        assert rule(make_record(result="passed")) is None
        assert rule(make_record(result="")) is None
        assert rule(make_record(result="MAYBE")) == "Result must be one of DENIED, PASSED"

    def test_not_in_future_allows_one_day_of_drift(self):
        rule = not_in_future("timestamp")
        now = datetime.now(UTC)

        assert rule(make_record(timestamp=now + timedelta(hours=23))) is None
        assert rule(make_record(timestamp=now + timedelta(days=2))) == (
            "Timestamp must not be in the future"
        )

    def test_not_in_future_treats_naive_as_utc(self):
        rule = not_in_future("transaction_time")
        naive = datetime.now(UTC).replace(tzinfo=None) + timedelta(days=3)

        assert rule(make_record(transaction_time=naive)) is not None


class TestAccessEventRules:
    """Tests for the standard rule set."""

    def test_complete_record_passes(self):
        assert errors_for(make_record()) == []

    @pytest.mark.parametrize(
        ("overrides", "message"),
        [
            ({"gks_type": "ACME"}, "Gks type must be one of"),
            ({"image": "capture.tiff"}, "Image must be a .jpg"),
            ({"ip": "not-an-ip"}, "IP must be a valid IPv4 or IPv6 address"),
            ({"nationality_id": "123"}, "Nationality id has an invalid format"),
            ({"passage_duration": Decimal("3601")}, "Passage duration must be between 0 and 3600"),
            ({"port": "70000"}, "Port must be an integer between 1 and 65535"),
            ({"result": "UNKNOWN"}, "Result must be one of"),
            ({"stadium_id": -4}, "Stadium id must be a positive number"),
            ({"transaction_id": 0}, "Transaction id must be a positive number"),
            ({"source_id": ""}, "Source id must not be empty"),
            ({"source_index": "i" * 101}, "Source index must be at most 100 characters"),
            ({"event_name": "e" * 501}, "Event name must be at most 500 characters"),
        ],
    )
    def test_single_violation(self, overrides, message):
        errors = errors_for(make_record(**overrides))

        assert len(errors) >= 1
        assert any(error.startswith(message) for error in errors)

    def test_absent_optional_fields_pass(self):
        record = make_record(
            gks_type=None,
            image=None,
            ip=None,
            nationality_id=None,
            passage_duration=None,
            port=None,
            result=None,
            event_id=None,
            stadium_id=None,
            transaction_id=None,
            timestamp=None,
            transaction_time=None,
        )
        assert errors_for(record) == []

    def test_errors_follow_rule_order(self):
        errors = errors_for(make_record(port="0", event_id=-1))

        assert errors == [
            "Port must be an integer between 1 and 65535",
            "Event id must be a positive number",
        ]
