"""Tests for the tutoring (ISST) sign-up grid parser."""

import io
from unittest.mock import patch

import pandas as pd
import pytest

from src.ingest.tutoring import (
    SessionDate,
    month_number,
    parse_session_cell,
    parse_text_dates,
    parse_tutoring_file,
    parse_tutoring_grid,
)

SHEET = [
    ["ISST Sign-up AM"],
    [None, None, "September", "October", "January"],
    ["Last Name", "First Name"],
    ["Ruiz", "Ana", "9/10, 9/15, 9/10", "2025-10-02", "-"],
    ["Chen", "Bo", 45915, None, "1/13 1/20"],
    ["Diaz", "Cy", "call me"],
    [None, None],
]


def _workbook(sheets):
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer) as writer:
        for name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=name, header=False, index=False)
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Cell parsing
# ---------------------------------------------------------------------------

class TestMonthNumber:
    @pytest.mark.parametrize("value, expected", [
        ("September", 9), ("sept", 9), ("Jan", 1), (" MAY ", 5), ("Week 1", None), (None, None),
    ])
    def test_names(self, value, expected):
        assert month_number(value) == expected


class TestParseTextDates:
    def test_school_year_placement(self):
        sessions = parse_text_dates("12/3, 1/14", 2025)
        assert sessions == [
            SessionDate(month="2025-12", date="2025-12-03"),
            SessionDate(month="2026-01", date="2026-01-14"),
        ]

    def test_invalid_tokens_dropped(self):
        assert parse_text_dates("13/1 2/30 hello", 2025) == []


class TestParseSessionCell:
    def test_blank_and_dash(self):
        assert parse_session_cell(None, 2025) == []
        assert parse_session_cell("-", 2025) == []

    def test_excel_serial(self):
        assert parse_session_cell(45915, 2025) == [SessionDate("2025-09", "2025-09-15")]

    def test_iso_string_from_date_cell(self):
        assert parse_session_cell("2025-10-02", 2025) == [SessionDate("2025-10", "2025-10-02")]

    def test_unparseable(self):
        assert parse_session_cell("call me", 2025) is None


# ---------------------------------------------------------------------------
# Sheet parsing
# ---------------------------------------------------------------------------

class TestParseTutoringGrid:
    def test_sessions_per_student(self):
        result = parse_tutoring_grid(SHEET, "AM", start_year=2025)
        assert result.ok
        by_name = {r.student_name: [d.date for d in r.dates] for r in result.records}
        assert by_name == {
            "Ana Ruiz": ["2025-09-10", "2025-09-15", "2025-10-02"],
            "Bo Chen": ["2025-09-15", "2026-01-13", "2026-01-20"],
            "Cy Diaz": [],
        }

    def test_unparseable_cell_warns(self):
        result = parse_tutoring_grid(SHEET, "AM", start_year=2025)
        assert len(result.warnings) == 1
        assert "call me" in result.warnings[0]

    def test_january_lands_in_following_year(self):
        result = parse_tutoring_grid(SHEET, "AM", start_year=2025)
        bo = next(r for r in result.records if r.student_name == "Bo Chen")
        assert {d.month for d in bo.dates} == {"2025-09", "2026-01"}

    def test_default_start_year_is_current_school_year(self):
        with patch("src.ingest.tutoring.school_year_start", return_value=2024):
            result = parse_tutoring_grid(SHEET, "AM")
        ana = result.records[0]
        assert ana.dates[0].date == "2024-09-10"

    def test_missing_header(self):
        result = parse_tutoring_grid([["September"], ["Ruiz", "Ana", "9/10"]], "AM", start_year=2025)
        assert not result.ok
        assert "Last Name" in result.errors[0]

    def test_no_month_columns(self):
        result = parse_tutoring_grid([["Last Name", "First Name", "Notes"], ["Ruiz", "Ana", "x"]], "AM", 2025)
        assert result.errors == ['No month columns found in sheet "AM"']

    def test_student_named_like_a_month_does_not_move_month_row(self):
        data = [
            [None, None, "October"],
            ["Last Name", "First Name"],
            ["May", "June", "10/7"],
        ]
        result = parse_tutoring_grid(data, "PM", start_year=2025)
        assert result.records[0].student_name == "June May"
        assert result.records[0].dates[0].date == "2025-10-07"


# ---------------------------------------------------------------------------
# Workbook parsing
# ---------------------------------------------------------------------------

class TestParseTutoringFile:
    def test_skips_generic_sheets(self):
        data = _workbook({"AM": SHEET, "Sheet1": [["scratch"]], "PM Sheet": SHEET})
        result = parse_tutoring_file(data, "isst.xlsx", start_year=2025)
        assert result.ok
        assert [s.sheet_name for s in result.sheets] == ["AM", "PM Sheet"]
        assert len(result.records) == 6
        assert all(w.startswith(("AM: ", "PM Sheet: ")) for w in result.warnings)

    def test_single_csv_sheet_always_parsed(self):
        data = b",,September\nLast Name,First Name\nRuiz,Ana,9/10\n"
        result = parse_tutoring_file(data, "Sheet1.csv", start_year=2025)
        assert result.ok
        assert result.records[0].dates == [SessionDate("2025-09", "2025-09-10")]

    def test_broken_sheet_among_good_ones_is_a_warning(self):
        data = _workbook({"AM": SHEET, "PM": [["nothing here"]]})
        result = parse_tutoring_file(data, "isst.xlsx", start_year=2025)
        assert result.ok
        assert any(w.startswith("PM: ") for w in result.warnings)

    def test_all_sheets_broken_is_an_error(self):
        data = _workbook({"AM": [["nothing"]], "PM": [["here"]]})
        result = parse_tutoring_file(data, "isst.xlsx", start_year=2025)
        assert not result.ok
        assert len(result.errors) == 2

    def test_no_class_sheets(self):
        data = _workbook({"Sheet1": [["a"]], "Sheet2": [["b"]]})
        result = parse_tutoring_file(data, "isst.xlsx", start_year=2025)
        assert result.errors == ["No class sheets found in file"]

    def test_unreadable(self):
        result = parse_tutoring_file(b"", "isst.xlsx")
        assert result.errors[0].startswith("Failed to parse file")
