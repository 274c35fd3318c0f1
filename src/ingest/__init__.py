from .base import ColumnMatch, GradebookError, ImportRow, ParseResult, find_column
from .grid import UnreadableFileError, load_grid, load_workbook_grids, read_upload
from .casas import CASASParseResult, parse_casas_file, parse_casas_grid, parse_casas_upload
from .attendance import (
    AttendanceParseResult,
    calculate_attendance_percentage,
    parse_attendance_file,
    parse_attendance_grid,
    parse_attendance_upload,
)
from .unit_tests import TestsParseResult, parse_tests_file, parse_tests_grid, parse_tests_upload
from .tutoring import TutoringParseResult, parse_tutoring_file, parse_tutoring_grid, parse_tutoring_upload

__all__ = [
    "ColumnMatch", "GradebookError", "ImportRow", "ParseResult", "find_column",
    "UnreadableFileError", "load_grid", "load_workbook_grids", "read_upload",
    "CASASParseResult", "parse_casas_file", "parse_casas_grid", "parse_casas_upload",
    "AttendanceParseResult", "calculate_attendance_percentage",
    "parse_attendance_file", "parse_attendance_grid", "parse_attendance_upload",
    "TestsParseResult", "parse_tests_file", "parse_tests_grid", "parse_tests_upload",
    "TutoringParseResult", "parse_tutoring_file", "parse_tutoring_grid", "parse_tutoring_upload",
]
