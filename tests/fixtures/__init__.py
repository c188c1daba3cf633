"""
Shared test fixtures for accessmigrate.

Usage:
    from tests.fixtures import make_async_connection, make_record, make_records
"""

from tests.fixtures.connections import make_async_connection
from tests.fixtures.records import (
    BASE_TIME,
    make_invalid_record,
    make_record,
    make_records,
)

__all__ = [
    "BASE_TIME",
    "make_async_connection",
    "make_invalid_record",
    "make_record",
    "make_records",
]
