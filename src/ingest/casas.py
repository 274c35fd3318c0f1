"""
CASAS file parser.

Reads exports of CASAS test results and separates Reading (forms ending in R)
from Listening (forms ending in L). Civics forms (ending in C) are dropped.

Expected columns (flexible naming):
- Student Name (or "Name", "Learner Name", or "First Name" + "Last Name")
- Date (or "Test Date")
- Form (or "Form Number", "Form #")
- Score (or "Scale Score", "Scaled Score")

Exports often carry a metadata preamble, so the header row is searched for in
the first rows of the sheet rather than assumed to be row 0.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from config.settings import get_settings
from src.data.models import LISTENING, READING

from .base import (
    FIRST_NAME_COLUMNS,
    LAST_NAME_COLUMNS,
    NAME_COLUMNS,
    Cell,
    Grid,
    ImportRow,
    ParseResult,
    cell_at,
    cell_text,
    find_column,
    find_name_columns,
    is_blank_row,
    normalize_header,
    parse_date,
)
from .grid import UnreadableFileError, load_grid, read_upload

logger = logging.getLogger(__name__)

DATE_COLUMNS = ["date", "test date", "testdate", "exam date"]
FORM_COLUMNS = ["form", "form number", "form #", "form no", "formnumber", "test form"]
SCORE_COLUMNS = ["score", "scale score", "scaled score", "scalescore", "test score"]

INVALID_SCORE_MARKERS = {"*", "invalid", "n/a"}

CIVICS = "civics"

_CIVICS_SUFFIX = re.compile(r"C\d*$")
_READING_SUFFIX = re.compile(r"R\d*$")
_LISTENING_SUFFIX = re.compile(r"L\d*$")


@dataclass
class CASASParseResult(ParseResult):
    reading: list[ImportRow] = field(default_factory=list)
    listening: list[ImportRow] = field(default_factory=list)
    header_row: Optional[int] = None

    @property
    def total_records(self) -> int:
        return len(self.reading) + len(self.listening)


class InvalidScore(ValueError):
    """Score cell is neither a number nor an invalid-administration marker."""


def classify_form(form_number: str) -> Optional[str]:
    """
    Classify a CASAS form code as reading, listening or civics.

    Suffix rules come first (a trailing C, R or L, optionally followed by
    digits, e.g. "627R", "629L2", "104C"). Without a suffix match, a form
    containing only one of R/L is classified by that letter. Returns None when
    the type cannot be determined.
    """
    form = form_number.upper().strip()
    if not form:
        return None

    if _CIVICS_SUFFIX.search(form):
        return CIVICS
    if _READING_SUFFIX.search(form):
        return READING
    if _LISTENING_SUFFIX.search(form):
        return LISTENING

    # Less reliable: R or L somewhere in the code
    if "R" in form and "L" not in form:
        return READING
    if "L" in form and "R" not in form:
        return LISTENING
    return None


def parse_casas_score(value: Cell) -> Optional[float]:
    """
    Parse a scale score. Invalid-administration markers ("*", "invalid", "n/a")
    and blank cells give None; anything else unparseable raises InvalidScore.
    """
    text = cell_text(value)
    if not text or text.lower() in INVALID_SCORE_MARKERS:
        return None
    try:
        return float(int(float(text)))
    except (ValueError, OverflowError):
        raise InvalidScore(text)


def find_header_row(data: Grid, max_rows: Optional[int] = None) -> Optional[int]:
    """Index of the first row (within ``max_rows``) holding at least 3 of the 4 header groups."""
    max_rows = max_rows or get_settings().CASAS_HEADER_SCAN_ROWS
    name_synonyms = set(NAME_COLUMNS + FIRST_NAME_COLUMNS + LAST_NAME_COLUMNS)

    for i, row in enumerate(data[:max_rows]):
        if not row or len(row) < 4:
            continue
        cells = {normalize_header(c) for c in row}
        matches = sum([
            bool(cells & name_synonyms),
            bool(cells & set(DATE_COLUMNS)),
            bool(cells & set(FORM_COLUMNS)),
            bool(cells & set(SCORE_COLUMNS)),
        ])
        if matches >= 3:
            logger.debug("CASAS header found at row %d", i)
            return i
    return None


def parse_casas_grid(data: Grid) -> CASASParseResult:
    """Parse a CASAS results grid into reading and listening import rows."""
    result = CASASParseResult()
    low, high = get_settings().CASAS_TYPICAL_SCORE_RANGE

    if len(data) < 2:
        result.errors.append("File appears to be empty or has no data rows")
        return result

    header_index = find_header_row(data)
    if header_index is None:
        result.errors.append(
            "Could not find header row. Looking for columns: Student Name, Date, Form, Score"
        )
        return result
    result.header_row = header_index
    headers = data[header_index]

    names = find_name_columns(headers)
    date_col = find_column(headers, DATE_COLUMNS)
    form_col = find_column(headers, FORM_COLUMNS)
    score_col = find_column(headers, SCORE_COLUMNS)

    if not names.has_full_or_pair:
        result.errors.append(
            'Could not find student name column. Expected: "Student Name", "Name", or "First Name" + "Last Name"'
        )
    if not date_col.found:
        result.errors.append('Could not find date column. Expected: "Date" or "Test Date"')
    if not form_col.found:
        result.errors.append('Could not find form column. Expected: "Form", "Form Number", or "Form #"')
    if not score_col.found:
        result.errors.append('Could not find score column. Expected: "Score", "Scale Score", or "Scaled Score"')
    if result.errors:
        return result

    for i in range(header_index + 1, len(data)):
        row = data[i]
        line = i + 1
        if is_blank_row(row):
            continue

        student_name = names.student_name(row)
        if not student_name:
            continue

        date_value = parse_date(cell_at(row, date_col.index))
        if not date_value:
            result.warnings.append(f'Row {line}: Skipped "{student_name}" - invalid date')
            continue

        form_number = cell_text(cell_at(row, form_col.index))
        if not form_number:
            result.warnings.append(f'Row {line}: Skipped "{student_name}" - no form number')
            continue

        test_type = classify_form(form_number)
        if test_type == CIVICS:
            continue
        if test_type is None:
            result.warnings.append(
                f'Row {line}: Skipped "{student_name}" - cannot tell if form "{form_number}" is reading or listening'
            )
            continue

        try:
            score = parse_casas_score(cell_at(row, score_col.index))
        except InvalidScore as e:
            result.warnings.append(f'Row {line}: Skipped "{student_name}" - invalid score "{e}"')
            continue

        if score is not None and not low <= score <= high:
            result.warnings.append(
                f'Row {line}: "{student_name}" has unusual score {score:g} (typical range: {low}-{high})'
            )

        import_row = ImportRow(
            student_name=student_name,
            date=date_value,
            form_number=form_number,
            score=score,
        )
        if test_type == READING:
            result.reading.append(import_row)
        else:
            result.listening.append(import_row)

    if result.total_records == 0:
        result.errors.append("No valid CASAS records found in file")

    logger.info(
        "Parsed CASAS file: %d reading, %d listening, %d warnings",
        len(result.reading), len(result.listening), len(result.warnings),
    )
    return result


def parse_casas_file(data: bytes, filename: str = "") -> CASASParseResult:
    try:
        grid = load_grid(data, filename)
    except UnreadableFileError as e:
        return CASASParseResult(errors=[f"Failed to parse file: {e}"])
    return parse_casas_grid(grid)


async def parse_casas_upload(source: Union[str, Path]) -> CASASParseResult:
    path = Path(source)
    data = await read_upload(path)
    return parse_casas_file(data, path.name)
