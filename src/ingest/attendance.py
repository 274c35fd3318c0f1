"""
Attendance file parser.

Reads monthly attendance exports and derives a percentage from Total Hours
divided by Scheduled Hours. The percentage itself never appears in the file.
The month is chosen by the operator at import time, not read from the file.

Expected columns (flexible naming):
- "Last Name" + "First Name" (or a combined "Name" / "Student Name")
- Total Hours (or "Total Hrs", "Hours Attended")
- Scheduled Hours (or "Scheduled Hrs", "Sched Hrs", "Total Scheduled")
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from config.settings import get_settings

from .base import (
    Grid,
    ImportRow,
    ParseResult,
    cell_at,
    find_column,
    find_name_columns,
    is_blank_row,
    parse_number,
)
from .grid import UnreadableFileError, load_grid, read_upload

logger = logging.getLogger(__name__)

TOTAL_HOURS_COLUMNS = [
    "total hours", "total hrs", "hours attended", "hrs attended", "attended", "actual hours", "actual hrs",
]
SCHEDULED_HOURS_COLUMNS = [
    "scheduled hours", "scheduled hrs", "sched hrs", "total scheduled", "scheduled", "expected hours", "expected hrs",
]


@dataclass
class AttendanceSummary:
    total_records: int = 0
    average_percentage: Optional[float] = None
    below_threshold: int = 0


@dataclass
class AttendanceParseResult(ParseResult):
    records: list[ImportRow] = field(default_factory=list)
    summary: AttendanceSummary = field(default_factory=AttendanceSummary)


def calculate_attendance_percentage(total_hours: float, scheduled_hours: float) -> Optional[float]:
    """Attendance percent rounded to one decimal; None when nothing was scheduled."""
    if not scheduled_hours:
        return None
    return round(total_hours / scheduled_hours * 100, 1)


def parse_attendance_grid(data: Grid) -> AttendanceParseResult:
    """Parse an attendance grid whose first row is the header."""
    result = AttendanceParseResult()
    threshold = get_settings().ATTENDANCE_LOW_THRESHOLD

    if len(data) < 2:
        result.errors.append("File appears to be empty or has no data rows")
        return result

    headers = data[0]
    names = find_name_columns(headers)
    total_col = find_column(headers, TOTAL_HOURS_COLUMNS)
    scheduled_col = find_column(headers, SCHEDULED_HOURS_COLUMNS)

    # "Total Scheduled" would otherwise satisfy the total-hours substring search
    if total_col.found and total_col.index == scheduled_col.index:
        total_col = find_column(headers, TOTAL_HOURS_COLUMNS, partial=False)

    if not names.found:
        result.errors.append(
            'Could not find student name column. Expected: "Student Name", "Name", "Last Name", or "First Name"'
        )
    if not total_col.found:
        result.errors.append(
            'Could not find total hours column. Expected: "Total Hours", "Total Hrs", or "Hours Attended"'
        )
    if not scheduled_col.found:
        result.errors.append(
            'Could not find scheduled hours column. Expected: "Scheduled Hours", "Scheduled Hrs", or "Sched Hrs"'
        )
    if result.errors:
        return result

    percentages = []
    for i in range(1, len(data)):
        row = data[i]
        line = i + 1
        if is_blank_row(row):
            continue

        student_name = names.student_name(row)
        if not student_name:
            # Trailing totals / blank rows are common in attendance exports
            continue

        total_hours = parse_number(cell_at(row, total_col.index))
        scheduled_hours = parse_number(cell_at(row, scheduled_col.index))

        if total_hours is None:
            result.warnings.append(f'Row {line}: Skipped "{student_name}" - invalid total hours')
            continue
        if scheduled_hours is None or scheduled_hours == 0:
            result.warnings.append(f'Row {line}: Skipped "{student_name}" - invalid scheduled hours')
            continue

        if total_hours < 0:
            result.warnings.append(f'Row {line}: "{student_name}" has negative total hours ({total_hours:g})')
        if total_hours > scheduled_hours:
            result.warnings.append(
                f'Row {line}: "{student_name}" has more hours than scheduled '
                f"({total_hours:g}/{scheduled_hours:g}) - attendance will be over 100%"
            )

        result.records.append(
            ImportRow(student_name=student_name, total_hours=total_hours, scheduled_hours=scheduled_hours)
        )
        percentage = calculate_attendance_percentage(total_hours, scheduled_hours)
        percentages.append(percentage)
        if percentage < threshold:
            result.summary.below_threshold += 1

    result.summary.total_records = len(result.records)
    if percentages:
        result.summary.average_percentage = round(sum(percentages) / len(percentages), 1)
    else:
        result.errors.append("No valid attendance records found in file")

    logger.info(
        "Parsed attendance file: %d records, %d warnings", len(result.records), len(result.warnings)
    )
    return result


def parse_attendance_file(data: bytes, filename: str = "") -> AttendanceParseResult:
    try:
        grid = load_grid(data, filename)
    except UnreadableFileError as e:
        return AttendanceParseResult(errors=[f"Failed to parse file: {e}"])
    return parse_attendance_grid(grid)


async def parse_attendance_upload(source: Union[str, Path]) -> AttendanceParseResult:
    path = Path(source)
    data = await read_upload(path)
    return parse_attendance_file(data, path.name)
