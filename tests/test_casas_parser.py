"""Tests for the CASAS results parser."""

import asyncio

import pytest

from src.data.models import LISTENING, READING
from src.ingest.casas import (
    CIVICS,
    InvalidScore,
    classify_form,
    find_header_row,
    parse_casas_file,
    parse_casas_grid,
    parse_casas_score,
    parse_casas_upload,
)

HEADER = ["Student Name", "Test Date", "Form", "Scale Score"]


class TestClassifyForm:
    @pytest.mark.parametrize("form, expected", [
        ("627R", READING),
        ("629L2", LISTENING),
        ("104C", CIVICS),
        ("81r", READING),
        ("R81X", READING),
        ("L85X", LISTENING),
    ])
    def test_classification(self, form, expected):
        assert classify_form(form) == expected

    @pytest.mark.parametrize("form", ["", "999", "RL55X"])
    def test_indeterminate(self, form):
        assert classify_form(form) is None


class TestParseCasasScore:
    def test_number(self):
        assert parse_casas_score("215") == 215.0
        assert parse_casas_score(215.7) == 215.0

    @pytest.mark.parametrize("value", ["*", "Invalid", "N/A", "", None])
    def test_invalid_markers(self, value):
        assert parse_casas_score(value) is None

    def test_garbage_raises(self):
        with pytest.raises(InvalidScore):
            parse_casas_score("abc")


class TestFindHeaderRow:
    def test_after_preamble(self):
        data = [["CASAS Report"], ["Agency: Adult Ed"], [], HEADER, ["Ana", "9/24/25", "81R", "210"]]
        assert find_header_row(data) == 3

    def test_three_of_four_groups_enough(self):
        data = [["Name", "Date", "Form", "Comments"]]
        assert find_header_row(data) == 0

    def test_short_rows_skipped(self):
        assert find_header_row([["Name", "Date", "Form"]]) is None


class TestParseCasasGrid:
    def test_splits_reading_and_listening(self):
        data = [
            HEADER,
            ["Ana Ruiz", "9/24/25", "81R", "210"],
            ["Ana Ruiz", "9/25/25", "82L", "205"],
            ["Bo Chen", "9/24/25", "627R", "*"],
        ]
        result = parse_casas_grid(data)
        assert result.ok
        assert [r.student_name for r in result.reading] == ["Ana Ruiz", "Bo Chen"]
        assert result.reading[0].score == 210.0
        assert result.reading[0].date == "2025-09-24"
        assert result.reading[1].score is None
        assert result.listening[0].form_number == "82L"
        assert result.total_records == 3

    def test_civics_silent_and_ambiguous_warned(self):
        data = [
            HEADER,
            ["Ana Ruiz", "9/24/25", "104C", "220"],
            ["Bo Chen", "9/24/25", "999", "210"],
            ["Cy Diaz", "9/24/25", "81R", "212"],
        ]
        result = parse_casas_grid(data)
        assert result.ok
        assert [r.student_name for r in result.reading] == ["Cy Diaz"]
        assert result.listening == []
        assert len(result.warnings) == 1
        assert "Bo Chen" in result.warnings[0]

    def test_first_and_last_name_columns(self):
        data = [
            ["Last Name", "First Name", "Date", "Form #", "Score"],
            ["Ruiz", "Ana", "2025-09-24", "81R", "210"],
        ]
        result = parse_casas_grid(data)
        assert result.reading[0].student_name == "Ana Ruiz"

    def test_row_level_problems_are_warnings(self):
        data = [
            HEADER,
            ["Ana Ruiz", "not a date", "81R", "210"],
            ["Bo Chen", "9/24/25", "", "210"],
            ["Cy Diaz", "9/24/25", "81R", "abc"],
            ["", "9/24/25", "81R", "210"],
            ["Di Eng", "9/24/25", "81R", "300"],
        ]
        result = parse_casas_grid(data)
        assert result.ok
        # Out-of-range score is kept, with a warning
        assert [r.student_name for r in result.reading] == ["Di Eng"]
        assert len(result.warnings) == 4
        assert any("unusual score" in w for w in result.warnings)

    def test_missing_score_column(self):
        data = [["Name", "Date", "Form", "Notes"], ["Ana", "9/24/25", "81R", "ok"]]
        result = parse_casas_grid(data)
        assert not result.ok
        assert any("score column" in e for e in result.errors)
        assert result.total_records == 0

    def test_no_header(self):
        result = parse_casas_grid([["a", "b", "c", "d"], ["1", "2", "3", "4"]])
        assert not result.ok
        assert "header row" in result.errors[0]

    def test_empty(self):
        assert not parse_casas_grid([HEADER]).ok

    def test_no_valid_rows_is_error(self):
        result = parse_casas_grid([HEADER, ["Ana", "9/24/25", "104C", "220"]])
        assert result.errors == ["No valid CASAS records found in file"]


class TestParseCasasFile:
    def test_csv_bytes(self):
        data = b"Name,Date,Form,Score\nAna Ruiz,9/24/25,81R,210\n"
        result = parse_casas_file(data, "casas.csv")
        assert result.ok
        assert result.reading[0].score == 210.0

    def test_unreadable_is_reported(self):
        result = parse_casas_file(b"", "casas.csv")
        assert not result.ok
        assert result.errors[0].startswith("Failed to parse file")

    def test_upload(self, tmp_path):
        path = tmp_path / "casas.csv"
        path.write_bytes(b"Name,Date,Form,Score\nAna Ruiz,9/24/25,82L,205\n")
        result = asyncio.run(parse_casas_upload(path))
        assert result.listening[0].student_name == "Ana Ruiz"
