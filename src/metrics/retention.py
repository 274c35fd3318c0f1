"""
Retention metrics: did students who entered a class keep attending?

Activity is measured by month: a student is active in a month when they have
a non-vacation attendance record with a percentage above zero. Retention at a
checkpoint is only measurable once *someone* in the class has attendance
entered for that month; until then the rate is None ("not enough data"),
never 0%.

Retention is generous: a student marked dropped who later shows up in the
attendance again ("came back") always counts as retained.
"""

import logging
from datetime import date, timedelta
from typing import Iterable, Optional

from src.data.models import (
    Attendance,
    ClassMetrics,
    RecordSet,
    RetentionMetrics,
    RetentionResult,
    Student,
)
from src.data.school_year import academic_year_months, add_months, month_key, parse_academic_year

from .primitives import calculate_attendance_average

logger = logging.getLogger(__name__)

MIDYEAR_ENTRY_LAST_MONTH = 12
MIDYEAR_CHECKPOINT_MONTH = 1
END_YEAR_ENTRY_LAST_MONTH = 3
END_YEAR_CHECKPOINT_MONTHS = (5, 6)


def _counts(record: Attendance) -> bool:
    return not record.is_vacation and record.percentage > 0


def active_months(student_id: str, attendance: Iterable[Attendance]) -> set[str]:
    return {a.month for a in attendance if a.student_id == student_id and _counts(a)}


def entry_month(student_id: str, attendance: Iterable[Attendance]) -> Optional[str]:
    """Earliest month the student actually attended, or None if they never did."""
    months = active_months(student_id, attendance)
    return min(months) if months else None


def active_in_month(student_id: str, month: str, attendance: Iterable[Attendance]) -> bool:
    return any(a.student_id == student_id and a.month == month and _counts(a) for a in attendance)


def came_back(student: Student, attendance: Iterable[Attendance]) -> bool:
    """Dropped on paper, but attended in a month after the drop month."""
    if not student.is_dropped or not student.dropped_date:
        return False
    drop_month = student.dropped_date[:7]
    return any(m > drop_month for m in active_months(student.id, attendance))


def available_months(students: Iterable[Student], attendance: Iterable[Attendance]) -> set[str]:
    """Months with any attendance entered for the class (dropped students included)."""
    ids = {s.id for s in students}
    return {a.month for a in attendance if a.student_id in ids}


def _result(retained: int, eligible: int) -> RetentionResult:
    if eligible == 0:
        return RetentionResult(rate=None, retained=0, eligible=0)
    return RetentionResult(rate=retained / eligible * 100, retained=retained, eligible=eligible)


def _retained(student: Student, checkpoints: Iterable[str], attendance: list[Attendance]) -> bool:
    return any(active_in_month(student.id, m, attendance) for m in checkpoints) or came_back(
        student, attendance
    )


def calculate_30_day_retention(
    students: list[Student], attendance: list[Attendance], academic_year: str
) -> RetentionResult:
    """
    Of the students who entered during the academic year, how many attended in
    either of the two calendar months after their entry month. A student only
    counts once at least one of those months has class attendance entered.
    """
    first, last = academic_year_months(academic_year)
    available = available_months(students, attendance)
    retained = eligible = 0

    for student in students:
        entry = entry_month(student.id, attendance)
        if entry is None or not first <= entry <= last:
            continue
        checkpoints = (add_months(entry, 1), add_months(entry, 2))
        if not any(m in available for m in checkpoints):
            continue
        eligible += 1
        if _retained(student, checkpoints, attendance):
            retained += 1

    return _result(retained, eligible)


def calculate_midyear_retention(
    students: list[Student], attendance: list[Attendance], academic_year: str
) -> RetentionResult:
    """Students who entered August-December, still attending in January."""
    start, end = parse_academic_year(academic_year)
    first, _ = academic_year_months(academic_year)
    last_entry = month_key(start, MIDYEAR_ENTRY_LAST_MONTH)
    checkpoint = month_key(end, MIDYEAR_CHECKPOINT_MONTH)

    if checkpoint not in available_months(students, attendance):
        return RetentionResult()

    retained = eligible = 0
    for student in students:
        entry = entry_month(student.id, attendance)
        if entry is None or not first <= entry <= last_entry:
            continue
        eligible += 1
        if _retained(student, (checkpoint,), attendance):
            retained += 1

    return _result(retained, eligible)


def calculate_end_year_retention(
    students: list[Student], attendance: list[Attendance], academic_year: str
) -> RetentionResult:
    """Students who entered by March, still attending in May or June."""
    _, end = parse_academic_year(academic_year)
    first, _ = academic_year_months(academic_year)
    last_entry = month_key(end, END_YEAR_ENTRY_LAST_MONTH)
    checkpoints = tuple(month_key(end, m) for m in END_YEAR_CHECKPOINT_MONTHS)

    available = available_months(students, attendance)
    if not any(m in available for m in checkpoints):
        return RetentionResult()

    retained = eligible = 0
    for student in students:
        entry = entry_month(student.id, attendance)
        if entry is None or not first <= entry <= last_entry:
            continue
        eligible += 1
        if _retained(student, checkpoints, attendance):
            retained += 1

    return _result(retained, eligible)


def calculate_ytd_retention(
    students: list[Student],
    attendance: list[Attendance],
    academic_year: str,
    today: Optional[date] = None,
) -> RetentionResult:
    """
    Students enrolled since August 1 who are still on the roster (or came back
    after a drop). The window closes at today or at the end of the academic
    year, whichever comes first.
    """
    today = today or date.today()
    first, last = academic_year_months(academic_year)
    window_start = f"{first}-01"
    year_end = date.fromisoformat(f"{add_months(last, 1)}-01") - timedelta(days=1)
    window_end = min(today, year_end).isoformat()

    retained = eligible = 0
    for student in students:
        if not window_start <= student.enrollment_date <= window_end:
            continue
        eligible += 1
        if not student.is_dropped or came_back(student, attendance):
            retained += 1

    return _result(retained, eligible)


def get_retention_metrics(
    students: list[Student],
    attendance: list[Attendance],
    academic_year: str,
    today: Optional[date] = None,
) -> RetentionMetrics:
    return RetentionMetrics(
        thirty_day=calculate_30_day_retention(students, attendance, academic_year),
        midyear=calculate_midyear_retention(students, attendance, academic_year),
        end_year=calculate_end_year_retention(students, attendance, academic_year),
        year_to_date=calculate_ytd_retention(students, attendance, academic_year, today),
    )


def get_class_metrics(
    students: list[Student],
    records: RecordSet,
    academic_year: str,
    today: Optional[date] = None,
) -> ClassMetrics:
    """
    Dashboard summary for a class: active head count, the class attendance
    average for the academic year, and retention. ``students`` must include
    dropped students so that drops and returns are measured.
    """
    attendance = records.attendance_for(s.id for s in students)
    active = [s for s in students if not s.is_dropped]
    first, last = academic_year_months(academic_year)
    active_ids = {s.id for s in active}
    year_attendance = [a for a in attendance if a.student_id in active_ids and first <= a.month <= last]

    metrics = ClassMetrics(
        student_count=len(active),
        average_attendance=calculate_attendance_average(year_attendance),
        retention=get_retention_metrics(students, attendance, academic_year, today),
    )
    logger.debug(
        "Class metrics for %s: %d students, attendance %s",
        academic_year, metrics.student_count, metrics.average_attendance,
    )
    return metrics


def best_retention(metrics: ClassMetrics) -> Optional[tuple[str, RetentionResult]]:
    """The first measurable checkpoint, in 30-Day, Midyear, End-Year order."""
    for label, result in (
        ("30-Day", metrics.retention.thirty_day),
        ("Midyear", metrics.retention.midyear),
        ("End-Year", metrics.retention.end_year),
    ):
        if result.rate is not None:
            return label, result
    return None
