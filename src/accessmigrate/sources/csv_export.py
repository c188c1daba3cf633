"""
CSV export source.

CsvRecordReader parses CSV exports of the access log index. The first row
holds column headers; each header is matched case-insensitively against a
column mapping that names the record field and the parser for its value.
The mapping is owned by the reader and can be replaced per instance.

CsvSource adapts a reader and a file path to the RecordSource interface,
running file I/O in a worker thread.
"""

from __future__ import annotations

import asyncio
import csv
import logging
import os
import time
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from accessmigrate.exceptions import ParseThresholdExceededError, RecordParseError
from accessmigrate.records import AccessEventRecord
from accessmigrate.result import SourceType
from accessmigrate.sources.interface import RecordSource

logger = logging.getLogger(__name__)

PARSE_ERROR_TOLERANCE = 10
REQUIRED_HEADERS = ("_id", "accessLog", "eventId", "timestamp")
NULL_LITERAL = "null"

# Unix timestamps above this are milliseconds
_UNIX_MILLIS_THRESHOLD = 1_000_000_000_000

_DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%d/%m/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M:%S",
)


# =============================================================================
# Value parsers
# =============================================================================


def parse_text(value: str) -> str:
    return value


def parse_flag(value: str) -> bool:
    normalized = value.lower()
    if normalized in ("true", "1"):
        return True
    if normalized in ("false", "0"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def parse_integer(value: str) -> int:
    return int(value)


def parse_decimal(value: str) -> Decimal:
    try:
        number = Decimal(value)
    except InvalidOperation:
        raise ValueError(f"not a number: {value!r}") from None
    if not number.is_finite():
        raise ValueError(f"not a finite number: {value!r}")
    return number


def parse_datetime(value: str) -> datetime:
    """
    Parse ISO 8601, unix seconds, unix milliseconds or a known format.

    Values without a timezone are taken as UTC.

    Raises:
        ValueError: If no format matches
    """
    parsed: datetime | None = None

    if value.lstrip("-").isdigit():
        number = int(value)
        seconds = number / 1000 if number > _UNIX_MILLIS_THRESHOLD else number
        try:
            parsed = datetime.fromtimestamp(seconds, tz=UTC)
        except (OverflowError, OSError, ValueError):
            parsed = None
    else:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            pass

    if parsed is None:
        for fmt in _DATETIME_FORMATS:
            try:
                parsed = datetime.strptime(value, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        raise ValueError(f"unrecognized date/time: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


ColumnParser = Callable[[str], Any]

# Header (lowercase) -> (record field, value parser)
DEFAULT_COLUMN_MAPPING: Mapping[str, tuple[str, ColumnParser]] = {
    "_id": ("source_id", parse_text),
    "_index": ("source_index", parse_text),
    "_score": ("source_score", parse_decimal),
    "accesslog": ("access_log_flag", parse_flag),
    "areaname": ("area_name", parse_text),
    "eventid": ("event_id", parse_integer),
    "eventname": ("event_name", parse_text),
    "gatename": ("gate_name", parse_text),
    "gkstype": ("gks_type", parse_text),
    "image": ("image", parse_text),
    "ip": ("ip", parse_text),
    "isaccreditation": ("is_accreditation", parse_flag),
    "nationalityid": ("nationality_id", parse_text),
    "passageduration": ("passage_duration", parse_decimal),
    "port": ("port", parse_text),
    "readername": ("reader_name", parse_text),
    "result": ("result", parse_text),
    "serialnumber": ("serial_number", parse_text),
    "stadiumid": ("stadium_id", parse_integer),
    "timestamp": ("timestamp", parse_datetime),
    "transactionid": ("transaction_id", parse_integer),
    "transactiontime": ("transaction_time", parse_datetime),
}


@dataclass
class CsvAnalysis:
    """
    Result of analyzing a CSV export without migrating it.

    ``is_valid`` is True when the format check passed and at least half of
    the sampled rows parsed.
    """

    path: str
    is_valid: bool = False
    error: str | None = None
    file_size_bytes: int = 0
    total_records: int = 0
    headers: list[str] = field(default_factory=list)
    recognized_columns: list[str] = field(default_factory=list)
    unrecognized_columns: list[str] = field(default_factory=list)
    sample_size: int = 0
    valid_sample_count: int = 0
    invalid_sample_count: int = 0
    sample_errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def estimated_valid_percentage(self) -> float:
        if self.sample_size == 0:
            return 0.0
        return self.valid_sample_count / self.sample_size * 100

    @property
    def estimated_valid_records(self) -> int:
        return int(self.total_records * self.estimated_valid_percentage / 100)

    def summary(self) -> str:
        lines = [
            f"CSV Analysis: {os.path.basename(self.path)}",
            f"Status: {'VALID' if self.is_valid else 'INVALID'}",
            f"File Size: {self.file_size_bytes / 1024 / 1024:.2f} MB",
            f"Total Records: {self.total_records:,}",
            f"Columns: {len(self.headers)} ({len(self.recognized_columns)} recognized)",
            f"Sample: {self.valid_sample_count}/{self.sample_size} valid "
            f"({self.estimated_valid_percentage:.1f}%)",
            f"Estimated Valid Records: {self.estimated_valid_records:,}",
        ]
        if self.unrecognized_columns:
            lines.append(f"Unrecognized Columns: {', '.join(self.unrecognized_columns)}")
        if self.error:
            lines.append(f"Error: {self.error}")
        return "\n".join(lines) + "\n"


class CsvRecordReader:
    """
    Reads access event records from CSV exports.

    Args:
        stop_on_error: Raise ParseThresholdExceededError once more than
            ``parse_error_tolerance`` rows fail to parse
        column_mapping: Lowercase header -> (field, parser) table
        parse_error_tolerance: Parse failures tolerated under stop_on_error
        encoding: File encoding (a UTF-8 BOM is skipped by default)
        delimiter: Field delimiter

    Example:
        >>> reader = CsvRecordReader(stop_on_error=False)
        >>> if reader.validate_format("export.csv"):
        ...     records = reader.read_all("export.csv")
    """

    def __init__(
        self,
        *,
        stop_on_error: bool = True,
        column_mapping: Mapping[str, tuple[str, ColumnParser]] | None = None,
        parse_error_tolerance: int = PARSE_ERROR_TOLERANCE,
        encoding: str = "utf-8-sig",
        delimiter: str = ",",
    ) -> None:
        self._stop_on_error = stop_on_error
        mapping = DEFAULT_COLUMN_MAPPING if column_mapping is None else column_mapping
        self._column_mapping = {header.lower(): target for header, target in mapping.items()}
        self._parse_error_tolerance = parse_error_tolerance
        self._encoding = encoding
        self._delimiter = delimiter

    @property
    def column_mapping(self) -> Mapping[str, tuple[str, ColumnParser]]:
        return self._column_mapping

    def _rows(self, path: str) -> Iterator[tuple[int, list[str]]]:
        """Yield (line number, stripped fields), skipping blank lines."""
        with open(path, newline="", encoding=self._encoding) as handle:
            reader = csv.reader(handle, delimiter=self._delimiter)
            for row in reader:
                if not row or all(not value.strip() for value in row):
                    continue
                yield reader.line_num, [value.strip() for value in row]

    def get_headers(self, path: str) -> list[str]:
        """Header row of the file, or an empty list for an empty file."""
        for _, row in self._rows(path):
            return row
        return []

    def validate_format(self, path: str) -> bool:
        """
        Check that the file exists, is non-empty and has the required headers.

        Never raises; problems are logged and reported as False.
        """
        if not path:
            logger.error("CSV path is empty")
            return False
        if not os.path.isfile(path):
            logger.error("CSV file not found: %s", path)
            return False
        if os.path.getsize(path) == 0:
            logger.error("CSV file is empty: %s", path)
            return False

        try:
            headers = self.get_headers(path)
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            logger.error("Cannot read CSV header from %s: %s", path, e)
            return False

        if not headers:
            logger.error("CSV file has no header row: %s", path)
            return False

        present = {header.lower() for header in headers}
        missing = [name for name in REQUIRED_HEADERS if name.lower() not in present]
        if missing:
            logger.error("CSV file %s is missing required headers: %s", path, ", ".join(missing))
            return False

        logger.info("CSV header valid: %d columns in %s", len(headers), path)
        return True

    def count(self, path: str) -> int:
        """Number of data rows (the header excluded)."""
        rows = sum(1 for _ in self._rows(path))
        return max(0, rows - 1)

    def read_all(self, path: str) -> list[AccessEventRecord]:
        """
        Parse every data row.

        Rows that fail to parse are logged and skipped.

        Raises:
            RecordParseError: If the file has no header row
            ParseThresholdExceededError: If stop_on_error is set and more than
                the tolerated number of rows fail
        """
        return self._read(path, limit=None)

    def read_sample(self, path: str, limit: int) -> list[AccessEventRecord]:
        """Parse rows until ``limit`` records have been read."""
        return self._read(path, limit=limit)

    def _read(self, path: str, limit: int | None) -> list[AccessEventRecord]:
        started = time.monotonic()
        records: list[AccessEventRecord] = []
        error_count = 0
        rows = self._rows(path)

        header_row = next(rows, None)
        if header_row is None:
            raise RecordParseError(1, "CSV file has no header row")
        headers = header_row[1]
        self._log_unknown_headers(headers)

        for line_number, fields in rows:
            if limit is not None and len(records) >= limit:
                break
            try:
                records.append(self.parse_row(line_number, headers, fields))
            except RecordParseError as e:
                error_count += 1
                logger.warning("Skipping unparsable CSV row: %s", e)
                if self._stop_on_error and error_count > self._parse_error_tolerance:
                    raise ParseThresholdExceededError(
                        error_count, self._parse_error_tolerance
                    ) from e

        elapsed = time.monotonic() - started
        logger.info(
            "Read %d records from %s in %.2fs (%d unparsable rows)",
            len(records),
            path,
            elapsed,
            error_count,
        )
        return records

    def parse_row(
        self,
        line_number: int,
        headers: list[str],
        fields: list[str],
    ) -> AccessEventRecord:
        """
        Turn one CSV row into a record.

        Values that cannot be converted leave their field empty.

        Raises:
            RecordParseError: On a field count mismatch or a missing ``_id``
        """
        if len(fields) != len(headers):
            raise RecordParseError(
                line_number,
                f"field count mismatch, expected {len(headers)}, found {len(fields)}",
            )

        values: dict[str, Any] = {}
        for header, raw in zip(headers, fields, strict=True):
            if not raw or raw.lower() == NULL_LITERAL:
                continue
            target = self._column_mapping.get(header.lower())
            if target is None:
                continue
            field_name, parser = target
            try:
                values[field_name] = parser(raw)
            except ValueError as e:
                logger.debug("Line %d: cannot map %s=%r: %s", line_number, header, raw, e)

        if not values.get("source_id"):
            raise RecordParseError(line_number, "missing _id")

        return AccessEventRecord(**values)

    def _log_unknown_headers(self, headers: list[str]) -> None:
        for header in headers:
            if header.lower() not in self._column_mapping:
                logger.debug("Ignoring unknown CSV header: %s", header)

    def analyze(self, path: str, sample_size: int = 100) -> CsvAnalysis:
        """
        Inspect a file without migrating it.

        Never raises; read failures are reported in ``CsvAnalysis.error``.
        """
        started = time.monotonic()
        analysis = CsvAnalysis(path=path)

        if not self.validate_format(path):
            analysis.error = "CSV format validation failed"
            analysis.duration_seconds = time.monotonic() - started
            return analysis

        try:
            analysis.file_size_bytes = os.path.getsize(path)
            rows = self._rows(path)
            _, headers = next(rows)
            analysis.headers = headers
            analysis.recognized_columns = [
                h for h in headers if h.lower() in self._column_mapping
            ]
            analysis.unrecognized_columns = [
                h for h in headers if h.lower() not in self._column_mapping
            ]

            total = 0
            for line_number, fields in rows:
                total += 1
                if analysis.sample_size >= sample_size:
                    continue
                analysis.sample_size += 1
                try:
                    self.parse_row(line_number, headers, fields)
                    analysis.valid_sample_count += 1
                except RecordParseError as e:
                    if len(analysis.sample_errors) < 10:
                        analysis.sample_errors.append(str(e))

            analysis.total_records = total
            analysis.invalid_sample_count = analysis.sample_size - analysis.valid_sample_count
            analysis.is_valid = analysis.estimated_valid_percentage >= 50
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            logger.error("CSV analysis of %s failed: %s", path, e)
            analysis.error = str(e)
            analysis.is_valid = False

        analysis.duration_seconds = time.monotonic() - started
        logger.info(
            "CSV analysis of %s: %d records, %.1f%% of sample valid",
            path,
            analysis.total_records,
            analysis.estimated_valid_percentage,
        )
        return analysis


class CsvSource(RecordSource):
    """
    RecordSource over a single CSV export.

    Args:
        path: CSV file path
        reader: Reader to parse with (defaults to a strict CsvRecordReader)
    """

    source_type = SourceType.CSV

    def __init__(self, path: str, reader: CsvRecordReader | None = None) -> None:
        self._path = path
        self._reader = reader or CsvRecordReader()

    @property
    def identifier(self) -> str:
        return self._path

    @property
    def reader(self) -> CsvRecordReader:
        return self._reader

    async def test_connection(self) -> bool:
        return await asyncio.to_thread(self._reader.validate_format, self._path)

    async def count(self) -> int:
        return await asyncio.to_thread(self._reader.count, self._path)

    async def fetch_all(self) -> list[AccessEventRecord]:
        return await asyncio.to_thread(self._reader.read_all, self._path)

    async def fetch_sample(self, limit: int) -> list[AccessEventRecord]:
        return await asyncio.to_thread(self._reader.read_sample, self._path, limit)


__all__ = [
    "DEFAULT_COLUMN_MAPPING",
    "PARSE_ERROR_TOLERANCE",
    "REQUIRED_HEADERS",
    "ColumnParser",
    "CsvAnalysis",
    "CsvRecordReader",
    "CsvSource",
    "parse_datetime",
    "parse_decimal",
    "parse_flag",
    "parse_integer",
    "parse_text",
]
