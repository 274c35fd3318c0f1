"""Per-student statistics for a class roster."""

import logging
from dataclasses import fields
from typing import Optional

from src.data.models import (
    Attendance,
    CASASTest,
    RankingWeights,
    SchoolClass,
    Student,
    StudentHistory,
    StudentWithStats,
    UnitTest,
)

from .primitives import (
    calculate_attendance_average,
    calculate_casas_average,
    calculate_test_average,
    most_recent_score,
    progress,
)

logger = logging.getLogger(__name__)

PROGRESS_CAP = 100


def enrolled_history(student: Student, history: StudentHistory) -> StudentHistory:
    """Only the records dated on/after enrollment. Attendance is compared by month."""
    since = student.enrollment_date
    since_month = student.enrollment_month
    return StudentHistory(
        reading=[t for t in history.reading if t.date >= since],
        listening=[t for t in history.listening if t.date >= since],
        unit_tests=[t for t in history.unit_tests if t.date >= since],
        attendance=[a for a in history.attendance if a.month >= since_month],
    )


def has_complete_data(
    reading_tests: list[CASASTest],
    listening_tests: list[CASASTest],
    unit_tests: list[UnitTest],
    attendance: list[Attendance],
    enrollment_date: str,
) -> bool:
    """At least one valid record of each kind since enrollment."""
    enrollment_month = enrollment_date[:7]
    has_reading = any(t.score is not None and t.date >= enrollment_date for t in reading_tests)
    has_listening = any(t.score is not None and t.date >= enrollment_date for t in listening_tests)
    has_tests = any(t.date >= enrollment_date for t in unit_tests)
    has_attendance = any(not a.is_vacation and a.month >= enrollment_month for a in attendance)
    return has_reading and has_listening and has_tests and has_attendance


def calculate_overall_score(
    reading_progress: Optional[float],
    listening_progress: Optional[float],
    test_average: Optional[float],
    attendance_average: Optional[float],
    weights: RankingWeights,
) -> Optional[float]:
    """
    Weighted ranking score. CASAS progress is capped at 100 so students past
    their target don't pull away; test and attendance percentages are used
    as-is (attendance can exceed 100).
    """
    if None in (reading_progress, listening_progress, test_average, attendance_average):
        return None

    return (
        min(reading_progress, PROGRESS_CAP) * weights.casas_reading / 100
        + min(listening_progress, PROGRESS_CAP) * weights.casas_listening / 100
        + test_average * weights.tests / 100
        + attendance_average * weights.attendance / 100
    )


def _student_fields(student: Student) -> dict:
    return {f.name: getattr(student, f.name) for f in fields(Student)}


def get_student_stats(student: Student, school_class: SchoolClass, history: StudentHistory) -> StudentWithStats:
    """
    Statistics for one student as seen by their current class.

    Progress comes from the most recent valid score, not the average, since it
    answers "is the student ready to move up now". ``rank`` is left None for
    the ranker to fill in.
    """
    enrolled = enrolled_history(student, history)

    reading_last = most_recent_score(enrolled.reading)
    listening_last = most_recent_score(enrolled.listening)
    reading_progress = progress(
        reading_last, school_class.casas_reading_level_start, school_class.casas_reading_target
    )
    listening_progress = progress(
        listening_last, school_class.casas_listening_level_start, school_class.casas_listening_target
    )
    test_average = calculate_test_average(enrolled.unit_tests)
    attendance_average = calculate_attendance_average(enrolled.attendance)

    is_complete = has_complete_data(
        enrolled.reading,
        enrolled.listening,
        enrolled.unit_tests,
        enrolled.attendance,
        student.enrollment_date,
    )
    overall_score = None
    if is_complete:
        overall_score = calculate_overall_score(
            reading_progress,
            listening_progress,
            test_average,
            attendance_average,
            school_class.ranking_weights,
        )
        if overall_score is None:
            logger.warning("Student %s is complete but a component metric is missing", student.id)

    return StudentWithStats(
        **_student_fields(student),
        casas_reading_avg=calculate_casas_average(enrolled.reading),
        casas_reading_last=reading_last,
        casas_reading_progress=reading_progress,
        casas_listening_avg=calculate_casas_average(enrolled.listening),
        casas_listening_last=listening_last,
        casas_listening_progress=listening_progress,
        test_average=test_average,
        attendance_average=attendance_average,
        overall_score=overall_score,
        rank=None,
        is_complete=is_complete,
    )
