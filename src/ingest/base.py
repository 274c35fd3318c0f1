"""Shared pieces of the spreadsheet parsers: cell types, header matching, value parsing."""

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional, Union

import pandas as pd

Cell = Union[str, float, int, None]
Grid = list[list[Cell]]

EXACT = "exact"
PARTIAL = "partial"
NONE = "none"

# Column name variations we'll accept
NAME_COLUMNS = ["student name", "name", "student", "full name", "learner name"]
FIRST_NAME_COLUMNS = ["first name", "first", "firstname", "given name"]
LAST_NAME_COLUMNS = ["last name", "last", "lastname", "surname", "family name"]

EXCEL_EPOCH = date(1899, 12, 30)
# Excel's largest representable date (9999-12-31)
MAX_EXCEL_SERIAL = 2958465

_US_DATE = re.compile(r"^(\d{1,2})[/\-](\d{1,2})[/\-](\d{2,4})$")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_DATE_PREFIX = re.compile(r"^date:\s*", re.IGNORECASE)


class GradebookError(Exception):
    """Base class for gradebook failures that callers may want to report."""


@dataclass
class ImportRow:
    """One canonical record extracted from a spreadsheet, keyed by student name."""

    student_name: str
    score: Optional[float] = None
    date: Optional[str] = None
    form_number: Optional[str] = None
    total_hours: Optional[float] = None
    scheduled_hours: Optional[float] = None
    test_name: Optional[str] = None


@dataclass
class ParseResult:
    """Data plus the human-readable problems found while producing it."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class ColumnMatch:
    """Which strategy located a column, and where. ``index`` is None when nothing matched."""

    match_kind: str
    index: Optional[int] = None

    @property
    def found(self) -> bool:
        return self.index is not None


NOT_FOUND = ColumnMatch(NONE)


@dataclass(frozen=True)
class NameColumns:
    full: ColumnMatch = NOT_FOUND
    first: ColumnMatch = NOT_FOUND
    last: ColumnMatch = NOT_FOUND

    @property
    def found(self) -> bool:
        return self.full.found or self.first.found or self.last.found

    @property
    def has_full_or_pair(self) -> bool:
        return self.full.found or (self.first.found and self.last.found)

    @property
    def indices(self) -> set[int]:
        return {m.index for m in (self.full, self.first, self.last) if m.found}

    def student_name(self, row: list[Cell]) -> str:
        """Name from the full-name column, else "First Last" from whatever halves exist."""
        if self.full.found:
            return cell_text(cell_at(row, self.full.index))
        parts = []
        if self.first.found:
            parts.append(cell_text(cell_at(row, self.first.index)))
        if self.last.found:
            parts.append(cell_text(cell_at(row, self.last.index)))
        return " ".join(p for p in parts if p).strip()


def normalize_header(value: Cell) -> str:
    return cell_text(value).lower()


def find_column(headers: list[Cell], possible_names: list[str], partial: bool = True) -> ColumnMatch:
    """
    Locate a column by its accepted names.

    Exact (case-insensitive, trimmed) matches are tried first in priority
    order, then substring matches when ``partial`` is set.
    """
    lower_headers = [normalize_header(h) for h in headers]
    for name in possible_names:
        if name in lower_headers:
            return ColumnMatch(EXACT, lower_headers.index(name))
    if partial:
        for name in possible_names:
            for i, header in enumerate(lower_headers):
                if header and name in header:
                    return ColumnMatch(PARTIAL, i)
    return NOT_FOUND


def find_name_columns(headers: list[Cell]) -> NameColumns:
    """
    Resolve the student-name column(s).

    An exact full-name header wins; otherwise first/last columns; a substring
    match on a full-name synonym is the last resort, so that "First Name"
    never gets mistaken for a combined name column.
    """
    first = find_column(headers, FIRST_NAME_COLUMNS)
    last = find_column(headers, LAST_NAME_COLUMNS)
    full = find_column(headers, NAME_COLUMNS, partial=False)
    if full.found:
        return NameColumns(full=full, first=first, last=last)
    if first.found or last.found:
        return NameColumns(first=first, last=last)
    return NameColumns(full=find_column(headers, NAME_COLUMNS))


def cell_at(row: list[Cell], index: Optional[int]) -> Cell:
    if index is None or index >= len(row):
        return None
    return row[index]


def cell_text(value: Cell) -> str:
    """Trimmed string form of a cell; numbers that are whole print without ".0"."""
    if value is None:
        return ""
    if isinstance(value, float):
        if pd.isna(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def is_blank_row(row: list[Cell]) -> bool:
    return not row or all(cell_text(c) == "" for c in row)


def parse_number(value: Cell) -> Optional[float]:
    """Parse a finite number from a cell, tolerating thousands separators."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        result = float(value)
    else:
        text = str(value).strip().replace(",", "")
        if not text:
            return None
        try:
            result = float(text)
        except ValueError:
            return None
    # "NaN" and "inf" parse as floats but are not usable values
    return result if math.isfinite(result) else None


def excel_serial_to_date(serial: float) -> Optional[date]:
    """Convert an Excel date serial (days since 1899-12-30) to a date."""
    if serial is None or pd.isna(serial) or not 1 <= serial <= MAX_EXCEL_SERIAL:
        return None
    return EXCEL_EPOCH + timedelta(days=int(serial))


def _valid_iso(year: int, month: int, day: int) -> Optional[str]:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def parse_date(value: Cell) -> Optional[str]:
    """
    Parse a cell into an ISO date (YYYY-MM-DD), or None.

    Accepts Excel serial numbers, ``M/D/YY``, ``M/D/YYYY`` (slash or dash),
    ISO dates, a leading ``Date:`` label, and anything pandas can read.
    Two-digit years below 50 are 20xx, the rest 19xx.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (datetime, date)):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, (int, float)):
        converted = excel_serial_to_date(value)
        return converted.isoformat() if converted else None

    text = _DATE_PREFIX.sub("", str(value).strip()).strip()
    if not text or text == "-":
        return None

    us = _US_DATE.match(text)
    if us:
        year = int(us.group(3))
        if year < 100:
            year += 2000 if year < 50 else 1900
        return _valid_iso(year, int(us.group(1)), int(us.group(2)))

    iso = _ISO_DATE.match(text)
    if iso:
        return _valid_iso(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))

    # Free-form text such as "Sept 24, 2025"
    if not re.search(r"\d", text):
        return None
    parsed = pd.to_datetime(text, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.strftime("%Y-%m-%d")
