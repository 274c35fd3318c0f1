"""
Tutoring (ISST) sign-up grid parser.

Each class sheet has a row of month names above a header row with separate
"Last Name" and "First Name" columns. Under each month a cell holds the
session dates for that student, either as a real spreadsheet date or as text
like "9/10, 9/15". Month numbers are placed in the school year (Aug-Dec in the
start year, Jan-Jul in the following year).
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Optional, Union

from config.settings import get_settings
from src.data.school_year import month_key, school_year_start, year_for_month

from .base import (
    Cell,
    Grid,
    ParseResult,
    cell_at,
    cell_text,
    excel_serial_to_date,
    find_column,
    parse_number,
)
from .grid import UnreadableFileError, load_workbook_grids, read_upload

logger = logging.getLogger(__name__)

MONTH_MAP = {
    "august": 8, "september": 9, "october": 10, "november": 11, "december": 12,
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6, "july": 7,
    "aug": 8, "sep": 9, "sept": 9, "oct": 10, "nov": 11, "dec": 12,
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "jun": 6, "jul": 7,
}

TUTORING_LAST_NAME_COLUMNS = ["last name", "lastname"]
TUTORING_FIRST_NAME_COLUMNS = ["first name", "firstname"]

_MONTH_DAY = re.compile(r"^(\d{1,2})/(\d{1,2})$")
_ISO_DAY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class SessionDate:
    month: str  # YYYY-MM
    date: str  # YYYY-MM-DD


@dataclass
class TutoringImportRow:
    student_name: str
    dates: list[SessionDate] = field(default_factory=list)


@dataclass
class TutoringSheetResult(ParseResult):
    sheet_name: str = ""
    records: list[TutoringImportRow] = field(default_factory=list)


@dataclass
class TutoringParseResult(ParseResult):
    sheets: list[TutoringSheetResult] = field(default_factory=list)

    @property
    def records(self) -> list[TutoringImportRow]:
        return [r for sheet in self.sheets for r in sheet.records]


def month_number(value: Cell) -> Optional[int]:
    return MONTH_MAP.get(cell_text(value).lower())


def _session(day: date) -> SessionDate:
    return SessionDate(month=day.strftime("%Y-%m"), date=day.isoformat())


def parse_text_dates(text: str, start_year: int) -> list[SessionDate]:
    """Pull every "M/D" token out of free text, placing each in the school year."""
    sessions = []
    for part in re.split(r"[,;\s]+", text):
        match = _MONTH_DAY.match(part.strip())
        if not match:
            continue
        mon, day = int(match.group(1)), int(match.group(2))
        if not 1 <= mon <= 12:
            continue
        try:
            sessions.append(_session(date(year_for_month(mon, start_year), mon, day)))
        except ValueError:
            continue
    return sessions


def parse_session_cell(value: Cell, start_year: int) -> Optional[list[SessionDate]]:
    """
    Session dates in one grid cell. Returns [] for blank/dash cells and None
    when a non-empty cell can't be understood.
    """
    text = cell_text(value)
    if not text or text == "-":
        return []

    if isinstance(value, str) and _ISO_DAY.match(text):
        # Spreadsheet date cell, already normalized by the grid loader
        try:
            return [_session(date.fromisoformat(text))]
        except ValueError:
            return None

    serial = parse_number(value)
    if serial is not None:
        day = excel_serial_to_date(serial)
        return [_session(day)] if day else None

    sessions = parse_text_dates(text, start_year)
    return sessions or None


def _find_layout(data: Grid, scan_rows: int):
    """Month-name row, header row index, first/last name columns. The month row sits at or above the header."""
    month_row = []
    for i, row in enumerate(data[:scan_rows]):
        if any(isinstance(c, str) and month_number(c) for c in row):
            month_row = row
        last = find_column(row, TUTORING_LAST_NAME_COLUMNS, partial=False)
        if last.found:
            first = find_column(row, TUTORING_FIRST_NAME_COLUMNS, partial=False)
            return month_row, i, first.index, last.index
    return month_row, None, None, None


def parse_tutoring_grid(data: Grid, sheet_name: str = "", start_year: Optional[int] = None) -> TutoringSheetResult:
    """Parse one class sheet of the tutoring grid."""
    result = TutoringSheetResult(sheet_name=sheet_name)
    start_year = start_year if start_year is not None else school_year_start()
    scan_rows = get_settings().TUTORING_HEADER_SCAN_ROWS

    month_row, header_index, first_col, last_col = _find_layout(data, scan_rows)
    if header_index is None or first_col is None or last_col is None:
        result.errors.append(
            f'Could not find header row with "Last Name" and "First Name" columns in sheet "{sheet_name}"'
        )
        return result

    month_columns = {}
    for col in range(max(first_col, last_col) + 1, len(month_row)):
        mon = month_number(month_row[col])
        if mon:
            month_columns[col] = month_key(year_for_month(mon, start_year), mon)

    if not month_columns:
        result.errors.append(f'No month columns found in sheet "{sheet_name}"')
        return result
    logger.debug("Sheet %s: months %s", sheet_name, sorted(month_columns.values()))

    for i in range(header_index + 1, len(data)):
        row = data[i]
        first_name = cell_text(cell_at(row, first_col))
        last_name = cell_text(cell_at(row, last_col))
        student_name = f"{first_name} {last_name}".strip()
        if not student_name:
            continue

        sessions = []
        for col in month_columns:
            raw = cell_at(row, col)
            parsed = parse_session_cell(raw, start_year)
            if parsed is None:
                result.warnings.append(
                    f'Row {i + 1}: Could not parse date "{cell_text(raw)}" for {student_name}'
                )
                continue
            sessions.extend(parsed)

        unique = sorted(set(sessions), key=lambda s: s.date)
        result.records.append(TutoringImportRow(student_name=student_name, dates=unique))

    return result


def _is_class_sheet(sheet_name: str) -> bool:
    lower = sheet_name.lower()
    return "sheet" not in lower or lower.startswith(("am", "pm"))


def parse_tutoring_file(data: bytes, filename: str = "", start_year: Optional[int] = None) -> TutoringParseResult:
    """Parse every class sheet in a tutoring workbook."""
    try:
        sheets = load_workbook_grids(data, filename)
    except UnreadableFileError as e:
        return TutoringParseResult(errors=[f"Failed to parse file: {e}"])

    result = TutoringParseResult()
    for name, grid in sheets.items():
        # A lone CSV sheet is always parsed, whatever its name
        if len(sheets) > 1 and not _is_class_sheet(name):
            logger.debug("Skipping non-class sheet %s", name)
            continue
        sheet = parse_tutoring_grid(grid, name, start_year)
        result.sheets.append(sheet)
        result.warnings.extend(f"{name}: {w}" for w in sheet.warnings)

    if not result.sheets:
        result.errors.append("No class sheets found in file")
    elif all(sheet.errors for sheet in result.sheets):
        result.errors.extend(e for sheet in result.sheets for e in sheet.errors)
    else:
        # Other sheets parsed, so a broken one is only worth a warning
        result.warnings.extend(f"{s.sheet_name}: {e}" for s in result.sheets for e in s.errors)

    logger.info(
        "Parsed tutoring file: %d sheets, %d students, %d warnings",
        len(result.sheets), len(result.records), len(result.warnings),
    )
    return result


async def parse_tutoring_upload(source: Union[str, Path], start_year: Optional[int] = None) -> TutoringParseResult:
    path = Path(source)
    data = await read_upload(path)
    return parse_tutoring_file(data, path.name, start_year)
