"""Tests for retention metrics and the class summary."""

from datetime import date

import pytest

from src.data.models import Attendance, RecordSet, RetentionResult, Student
from src.metrics.retention import (
    active_in_month,
    available_months,
    best_retention,
    calculate_30_day_retention,
    calculate_end_year_retention,
    calculate_midyear_retention,
    calculate_ytd_retention,
    came_back,
    entry_month,
    get_class_metrics,
)

YEAR = "2025-2026"


def _student(student_id, enrollment_date="2025-08-15", dropped_date=None):
    return Student(
        id=student_id,
        name=student_id.upper(),
        class_id="c1",
        enrollment_date=enrollment_date,
        is_dropped=dropped_date is not None,
        dropped_date=dropped_date,
    )


def _attendance(student_id, month, percentage, is_vacation=False):
    return Attendance(
        id=f"{student_id}-{month}",
        student_id=student_id,
        month=month,
        percentage=percentage,
        is_vacation=is_vacation,
    )


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------

class TestActivity:
    def test_entry_month_is_first_active_month(self):
        attendance = [_attendance("s1", "2025-10", 80), _attendance("s1", "2025-09", 0), _attendance("s1", "2025-11", 70)]
        assert entry_month("s1", attendance) == "2025-10"

    def test_entry_month_none_without_attendance(self):
        assert entry_month("s1", []) is None

    def test_vacation_is_never_active(self):
        attendance = [_attendance("s1", "2025-12", 50, is_vacation=True)]
        assert not active_in_month("s1", "2025-12", attendance)
        assert entry_month("s1", attendance) is None

    def test_came_back_after_drop(self):
        student = _student("s1", dropped_date="2025-09-20")
        attendance = [_attendance("s1", "2025-09", 80), _attendance("s1", "2025-12", 50)]
        assert came_back(student, attendance)

    def test_not_came_back_when_no_later_attendance(self):
        student = _student("s1", dropped_date="2025-09-20")
        assert not came_back(student, [_attendance("s1", "2025-09", 80)])

    def test_available_months_include_any_record(self):
        students = [_student("s1"), _student("s2")]
        attendance = [_attendance("s1", "2025-09", 80), _attendance("s2", "2025-10", 0, is_vacation=True),
                      _attendance("other", "2025-11", 90)]
        assert available_months(students, attendance) == {"2025-09", "2025-10"}


# ---------------------------------------------------------------------------
# 30-day retention
# ---------------------------------------------------------------------------

class TestThirtyDayRetention:
    def test_basic(self):
        students = [_student("s1"), _student("s2"), _student("s3"), _student("s4")]
        attendance = [
            _attendance("s1", "2025-09", 80),
            _attendance("s1", "2025-10", 75),
            _attendance("s2", "2025-09", 90),
            # s3 enters in November; December and January not entered yet
            _attendance("s3", "2025-11", 60),
        ]
        result = calculate_30_day_retention(students, attendance, YEAR)
        assert result == RetentionResult(rate=50.0, retained=1, eligible=2)

    def test_entry_before_academic_year_not_eligible(self):
        students = [_student("s1")]
        attendance = [_attendance("s1", "2025-07", 80), _attendance("s1", "2025-08", 80)]
        assert calculate_30_day_retention(students, attendance, YEAR).rate is None

    def test_vacation_does_not_count_as_active(self):
        students = [_student("s1"), _student("s2")]
        attendance = [
            _attendance("s1", "2025-09", 80),
            _attendance("s1", "2025-10", 50, is_vacation=True),
            _attendance("s2", "2025-09", 80),
            _attendance("s2", "2025-10", 80),
        ]
        result = calculate_30_day_retention(students, attendance, YEAR)
        assert (result.retained, result.eligible) == (1, 2)

    def test_no_data_is_none_not_zero(self):
        assert calculate_30_day_retention([_student("s1")], [], YEAR) == RetentionResult(None, 0, 0)


# ---------------------------------------------------------------------------
# Midyear / end-of-year retention
# ---------------------------------------------------------------------------

class TestMidyearRetention:
    def test_no_january_data_is_not_measurable(self):
        students = [_student("s1"), _student("s2")]
        attendance = [_attendance("s1", "2025-09", 80), _attendance("s2", "2025-10", 80)]
        result = calculate_midyear_retention(students, attendance, YEAR)
        assert result.rate is None
        assert (result.retained, result.eligible) == (0, 0)

    def test_counts_fall_entrants_active_in_january(self):
        students = [_student("s1"), _student("s2"), _student("s3")]
        attendance = [
            _attendance("s1", "2025-09", 80),
            _attendance("s1", "2026-01", 80),
            _attendance("s2", "2025-10", 80),
            # January entrant is not part of the fall cohort
            _attendance("s3", "2026-01", 80),
        ]
        result = calculate_midyear_retention(students, attendance, YEAR)
        assert result == RetentionResult(rate=50.0, retained=1, eligible=2)

    def test_dropped_student_who_came_back_is_retained(self):
        dropped = _student("s1", dropped_date="2025-09-20")
        steady = _student("s2")
        attendance = [
            _attendance("s1", "2025-09", 80),
            _attendance("s1", "2025-12", 50),
        ] + [_attendance("s2", m, 90) for m in ("2025-09", "2025-10", "2025-11", "2025-12", "2026-01")]

        midyear = calculate_midyear_retention([dropped, steady], attendance, YEAR)
        thirty_day = calculate_30_day_retention([dropped, steady], attendance, YEAR)
        assert midyear == RetentionResult(rate=100.0, retained=2, eligible=2)
        assert thirty_day.retained == thirty_day.eligible == 2


class TestEndYearRetention:
    def test_entrants_through_march_active_in_may_or_june(self):
        students = [_student("s1"), _student("s2"), _student("s3")]
        attendance = [
            _attendance("s1", "2025-09", 80),
            _attendance("s1", "2026-05", 80),
            _attendance("s2", "2026-02", 80),
            _attendance("s3", "2026-04", 80),
            _attendance("s3", "2026-06", 80),
        ]
        result = calculate_end_year_retention(students, attendance, YEAR)
        assert result == RetentionResult(rate=50.0, retained=1, eligible=2)

    def test_no_may_or_june_data(self):
        students = [_student("s1")]
        attendance = [_attendance("s1", "2025-09", 80), _attendance("s1", "2026-04", 80)]
        assert calculate_end_year_retention(students, attendance, YEAR).rate is None


# ---------------------------------------------------------------------------
# Year to date
# ---------------------------------------------------------------------------

class TestYtdRetention:
    def test_enrolled_since_august_still_active(self):
        students = [
            _student("s1", "2025-09-01"),
            _student("s2", "2025-10-01", dropped_date="2025-11-10"),
            _student("s3", "2025-07-01"),
            _student("s4", "2026-02-01"),
        ]
        result = calculate_ytd_retention(students, [], YEAR, today=date(2026, 1, 15))
        assert result == RetentionResult(rate=50.0, retained=1, eligible=2)

    def test_came_back_counts_as_retained(self):
        students = [_student("s1", "2025-09-01", dropped_date="2025-10-05")]
        attendance = [_attendance("s1", "2025-09", 80), _attendance("s1", "2025-12", 60)]
        result = calculate_ytd_retention(students, attendance, YEAR, today=date(2026, 1, 15))
        assert result.rate == 100.0

    def test_past_year_window_ends_with_the_year(self):
        students = [
            _student("s1", "2024-09-01"),
            _student("s2", "2025-07-31"),
            _student("s3", "2026-09-01"),
        ]
        result = calculate_ytd_retention(students, [], "2024-2025", today=date(2026, 10, 1))
        assert result == RetentionResult(rate=100.0, retained=2, eligible=2)

    def test_nobody_eligible(self):
        assert calculate_ytd_retention([], [], YEAR, today=date(2026, 1, 15)).rate is None


# ---------------------------------------------------------------------------
# Class summary
# ---------------------------------------------------------------------------

class TestClassMetrics:
    def test_summary(self):
        students = [_student("s1"), _student("s2"), _student("s3", dropped_date="2025-10-15")]
        records = RecordSet(attendance=[
            _attendance("s1", "2025-09", 80),
            _attendance("s1", "2025-10", 100),
            _attendance("s2", "2025-09", 60),
            _attendance("s2", "2025-12", 0, is_vacation=True),
            _attendance("s3", "2025-09", 20),
            # Previous school year is out of range
            _attendance("s1", "2025-06", 10),
        ])
        metrics = get_class_metrics(students, records, YEAR, today=date(2025, 11, 1))
        assert metrics.student_count == 2
        assert metrics.average_attendance == pytest.approx(80.0)
        assert metrics.retention.midyear.rate is None

    def test_best_retention_prefers_thirty_day(self):
        students = [_student("s1")]
        records = RecordSet(attendance=[_attendance("s1", "2025-09", 80), _attendance("s1", "2025-10", 80)])
        metrics = get_class_metrics(students, records, YEAR, today=date(2025, 11, 1))
        label, result = best_retention(metrics)
        assert label == "30-Day"
        assert result.rate == 100.0

    def test_best_retention_none_without_data(self):
        metrics = get_class_metrics([], RecordSet(), YEAR, today=date(2025, 11, 1))
        assert best_retention(metrics) is None
