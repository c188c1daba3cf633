"""
Field rules for access event records.

A rule is a callable that receives a record and returns an error message,
or None when the record satisfies it. Rules skip absent optional values;
only the natural key and ``created_at`` are required.

Rules are built from small factories so that a caller can assemble its own
rule set:

    >>> rules = (max_length("gate_name", 100), positive("event_id"))
    >>> validator = RecordValidator(rules=rules)
"""

from __future__ import annotations

import ipaddress
from collections.abc import Callable, Collection
from datetime import UTC, datetime, timedelta
from typing import Any

from accessmigrate.records import AccessEventRecord

Rule = Callable[[AccessEventRecord], str | None]

VALID_GKS_TYPES = frozenset({"TELPO", "HIKVISION", "DAHUA", "ZKTECO", "SUPREMA"})
VALID_RESULTS = frozenset({"PASSED", "FAILED", "DENIED", "ERROR", "TIMEOUT", "BLOCKED"})
VALID_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".bmp", ".gif")

MAX_PASSAGE_DURATION_SECONDS = 3600
FUTURE_TOLERANCE = timedelta(days=1)


def _label(field: str) -> str:
    return field.replace("_", " ").capitalize()


def _present(value: Any) -> bool:
    return value is not None and value != ""


def is_valid_ip(value: str) -> bool:
    """True for a syntactically valid IPv4 or IPv6 address."""
    try:
        ipaddress.ip_address(value.strip())
    except ValueError:
        return False
    return True


def is_valid_port(value: str) -> bool:
    """True for an integer port in 1-65535."""
    try:
        port = int(value)
    except ValueError:
        return False
    return 1 <= port <= 65535


def is_valid_national_id(value: str) -> bool:
    """
    Check an 11 digit national identity number.

    The first digit is non-zero, the tenth digit is a weighted checksum of
    the first nine, and the eleventh is the sum of the first ten modulo 10.
    """
    if len(value) != 11 or not value.isdigit():
        return False

    digits = [int(char) for char in value]
    if digits[0] == 0:
        return False

    odd_sum = digits[0] + digits[2] + digits[4] + digits[6] + digits[8]
    even_sum = digits[1] + digits[3] + digits[5] + digits[7]

    check_digit_1 = (odd_sum * 7 - even_sum) % 10
    check_digit_2 = (odd_sum + even_sum + digits[9]) % 10

    return digits[9] == check_digit_1 and digits[10] == check_digit_2


def is_valid_nationality_id(value: str) -> bool:
    """An 11 digit value must pass the checksum; others must be 5-50 characters."""
    if len(value) == 11 and value.isdigit():
        return is_valid_national_id(value)
    return 5 <= len(value) <= 50


# =============================================================================
# Rule factories
# =============================================================================


def max_length(field: str, limit: int) -> Rule:
    def rule(record: AccessEventRecord) -> str | None:
        value = getattr(record, field)
        if value is not None and len(value) > limit:
            return f"{_label(field)} must be at most {limit} characters"
        return None

    return rule


def required(field: str) -> Rule:
    def rule(record: AccessEventRecord) -> str | None:
        value = getattr(record, field)
        if value is None or (isinstance(value, str) and not value.strip()):
            return f"{_label(field)} must not be empty"
        return None

    return rule


def positive(field: str) -> Rule:
    def rule(record: AccessEventRecord) -> str | None:
        value = getattr(record, field)
        if value is not None and value <= 0:
            return f"{_label(field)} must be a positive number"
        return None

    return rule


def one_of(field: str, allowed: Collection[str]) -> Rule:
    """Case-insensitive membership check on a present value."""
    choices = ", ".join(sorted(allowed))

    def rule(record: AccessEventRecord) -> str | None:
        value = getattr(record, field)
        if _present(value) and value.upper() not in allowed:
            return f"{_label(field)} must be one of {choices}"
        return None

    return rule


def satisfies(field: str, predicate: Callable[[Any], bool], message: str) -> Rule:
    """Apply ``predicate`` to a present value."""

    def rule(record: AccessEventRecord) -> str | None:
        value = getattr(record, field)
        if _present(value) and not predicate(value):
            return message
        return None

    return rule


def not_in_future(field: str, tolerance: timedelta = FUTURE_TOLERANCE) -> Rule:
    def rule(record: AccessEventRecord) -> str | None:
        value: datetime | None = getattr(record, field)
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        if value > datetime.now(UTC) + tolerance:
            return f"{_label(field)} must not be in the future"
        return None

    return rule


def _has_image_extension(value: str) -> bool:
    return value.lower().endswith(VALID_IMAGE_EXTENSIONS)


def _within_passage_range(value: Any) -> bool:
    return 0 <= value <= MAX_PASSAGE_DURATION_SECONDS


ACCESS_EVENT_RULES: tuple[Rule, ...] = (
    max_length("event_name", 500),
    max_length("gate_name", 100),
    max_length("gks_type", 50),
    one_of("gks_type", VALID_GKS_TYPES),
    max_length("image", 1000),
    satisfies(
        "image",
        _has_image_extension,
        "Image must be a .jpg, .jpeg, .png, .bmp or .gif file",
    ),
    max_length("ip", 45),
    satisfies("ip", is_valid_ip, "IP must be a valid IPv4 or IPv6 address"),
    max_length("nationality_id", 50),
    satisfies("nationality_id", is_valid_nationality_id, "Nationality id has an invalid format"),
    satisfies(
        "passage_duration",
        _within_passage_range,
        f"Passage duration must be between 0 and {MAX_PASSAGE_DURATION_SECONDS} seconds",
    ),
    max_length("port", 10),
    satisfies("port", is_valid_port, "Port must be an integer between 1 and 65535"),
    max_length("reader_name", 100),
    max_length("result", 50),
    one_of("result", VALID_RESULTS),
    max_length("serial_number", 100),
    positive("event_id"),
    positive("stadium_id"),
    positive("transaction_id"),
    required("source_id"),
    max_length("source_id", 100),
    max_length("source_index", 100),
    not_in_future("timestamp"),
    not_in_future("transaction_time"),
    required("created_at"),
)


__all__ = [
    "ACCESS_EVENT_RULES",
    "Rule",
    "VALID_GKS_TYPES",
    "VALID_IMAGE_EXTENSIONS",
    "VALID_RESULTS",
    "is_valid_ip",
    "is_valid_national_id",
    "is_valid_nationality_id",
    "is_valid_port",
    "max_length",
    "not_in_future",
    "one_of",
    "positive",
    "required",
    "satisfies",
]
