"""CSV adapter for legacy wall item exports.

Validates the header row against the wall item contract, streams rows and
turns each usable row into a ``SourceRecord``. Rows whose name column yields no
usable match key are skipped and recorded as malformed; every other value is
passed through untouched for the normalizer.
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from typing import IO, Iterator, Sequence

from ..contracts import get_wall_item_alias_map, get_wall_item_required_headers, normalize_header
from ..errors import MalformedInputError
from ..models import SourceRecord, compute_match_key

logger = logging.getLogger(__name__)


class CSVAdapterError(Exception):
    """Base exception for CSV adapter failures."""


class CSVHeaderError(CSVAdapterError):
    """Raised when the CSV header row does not meet contract requirements."""

    def __init__(self, *, missing: Sequence[str] | None = None, duplicates: Sequence[str] | None = None) -> None:
        details: list[str] = []
        if missing:
            details.append(f"Missing required columns: {', '.join(sorted(missing))}.")
        if duplicates:
            details.append(
                "Duplicate canonical columns detected: "
                + ", ".join(sorted(duplicates))
                + ". Ensure each canonical field appears only once."
            )
        message = "CSV header validation failed. " + " ".join(details) if details else "CSV header validation failed."
        super().__init__(message)
        self.missing = tuple(missing or ())
        self.duplicates = tuple(duplicates or ())


class CSVDecodeError(CSVAdapterError):
    """Raised when the file is not valid UTF-8 or not parseable as CSV."""

    def __init__(self, reason: str, *, line_number: int | None = None) -> None:
        location = f" near line {line_number}" if line_number else ""
        super().__init__(f"Unable to read legacy CSV{location}: {reason}")
        self.reason = reason
        self.line_number = line_number


@dataclass(frozen=True)
class HeaderValidationResult:
    raw_headers: tuple[str, ...]
    canonical_headers: tuple[str, ...]


@dataclass
class LegacyCSVStatistics:
    """Accumulated statistics from CSV parsing."""

    rows_processed: int = 0
    rows_skipped_blank: int = 0
    rows_malformed: int = 0
    errors: list[MalformedInputError] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "rowsProcessed": self.rows_processed,
            "rowsSkippedBlank": self.rows_skipped_blank,
            "rowsMalformed": self.rows_malformed,
            "malformedRows": [{"rowNumber": error.row_number, "reason": error.reason} for error in self.errors],
        }


def _sanitize_header(header: str | None) -> str:
    token = (header or "").strip()
    return token.lstrip("\ufeff")


def _validate_headers(raw_headers: Sequence[str]) -> HeaderValidationResult:
    sanitized_headers = tuple(_sanitize_header(header) for header in raw_headers)
    alias_map = get_wall_item_alias_map()
    duplicates: list[str] = []
    seen: set[str] = set()
    resolved: list[str] = []

    for header in sanitized_headers:
        canonical = alias_map.get(normalize_header(header), header)
        if canonical in seen:
            duplicates.append(canonical)
        else:
            seen.add(canonical)
        resolved.append(canonical)

    missing = sorted(set(get_wall_item_required_headers()) - seen)
    if missing or duplicates:
        raise CSVHeaderError(missing=missing, duplicates=duplicates)
    return HeaderValidationResult(raw_headers=sanitized_headers, canonical_headers=tuple(resolved))


def _row_is_blank(row: dict[str, object | None]) -> bool:
    return all((value is None or (isinstance(value, str) and value.strip() == "")) for value in row.values())


def _guarded_rows(reader: csv.DictReader) -> Iterator[dict]:
    rows = iter(reader)
    while True:
        try:
            row = next(rows)
        except StopIteration:
            return
        except (UnicodeDecodeError, csv.Error) as exc:
            raise CSVDecodeError(str(exc), line_number=reader.line_num) from exc
        yield row


class LegacyCSVAdapter:
    """CSV reader that enforces the wall item contract."""

    def __init__(self, file_obj: IO[str], *, skip_blank_rows: bool = True) -> None:
        self._file_obj = file_obj
        self.skip_blank_rows = skip_blank_rows
        self._header_result: HeaderValidationResult | None = None
        self.statistics = LegacyCSVStatistics()

    @property
    def header(self) -> HeaderValidationResult | None:
        return self._header_result

    def _prepare_reader(self) -> csv.DictReader:
        self._file_obj.seek(0)
        reader = csv.DictReader(self._file_obj)
        try:
            fieldnames = reader.fieldnames
        except (UnicodeDecodeError, csv.Error) as exc:
            raise CSVDecodeError(str(exc), line_number=reader.line_num or 1) from exc
        if fieldnames is None:
            raise CSVHeaderError(missing=get_wall_item_required_headers())

        header_result = _validate_headers(fieldnames)
        reader.fieldnames = list(header_result.canonical_headers)
        self._header_result = header_result
        return reader

    def iter_records(self) -> Iterator[SourceRecord]:
        reader = self._prepare_reader()
        for row_number, raw_row in enumerate(_guarded_rows(reader), start=1):
            # Surplus cells land under the ``None`` key.
            overflow = raw_row.pop(None, None)
            row = {key: value for key, value in raw_row.items()}

            if self.skip_blank_rows and _row_is_blank(row):
                self.statistics.rows_skipped_blank += 1
                continue

            if overflow:
                self._record_malformed(row_number, f"{len(overflow)} value(s) beyond the header row")
                continue
            if not compute_match_key(row.get("name")):
                self._record_malformed(row_number, "name column is empty or unparseable")
                continue

            self.statistics.rows_processed += 1
            fields = {key: ("" if value is None else value) for key, value in row.items()}
            yield SourceRecord(fields=fields, row_number=row_number)

    def read_all(self) -> list[SourceRecord]:
        return list(self.iter_records())

    def _record_malformed(self, row_number: int, reason: str) -> None:
        error = MalformedInputError(row_number, reason)
        self.statistics.rows_malformed += 1
        self.statistics.errors.append(error)
        logger.warning("Skipping malformed legacy row: %s", error)


__all__ = [
    "CSVAdapterError",
    "CSVDecodeError",
    "CSVHeaderError",
    "HeaderValidationResult",
    "LegacyCSVAdapter",
    "LegacyCSVStatistics",
]
