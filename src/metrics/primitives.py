"""Averages, most-recent selection, progress and color coding over record lists."""

from typing import Iterable, Optional

from src.data.models import Attendance, CASASTest, ColorThresholds, UnitTest

GOOD = "good"
WARNING = "warning"
POOR = "poor"


def average(records: Iterable, field: str) -> Optional[float]:
    """Mean of the non-null ``field`` values, or None if there are none."""
    values = [getattr(r, field) for r in records]
    values = [v for v in values if v is not None]
    if not values:
        return None
    return sum(values) / len(values)


def most_recent(records: Iterable[CASASTest]) -> Optional[CASASTest]:
    """
    The valid-score record with the latest date. ISO dates compare correctly
    as strings. On a date tie the record that appears last wins.
    """
    latest = None
    for record in records:
        if record.score is None:
            continue
        if latest is None or record.date >= latest.date:
            latest = record
    return latest


def most_recent_score(records: Iterable[CASASTest]) -> Optional[float]:
    record = most_recent(records)
    return record.score if record else None


def progress(value: Optional[float], level_start: float, target: float) -> Optional[float]:
    """
    Position between level start and target as a percentage. Not clamped:
    below the start is negative, past the target is over 100.
    """
    if value is None:
        return None
    span = target - level_start
    if span == 0:
        return 100.0
    return (value - level_start) / span * 100


def color_level(value: Optional[float], thresholds: ColorThresholds) -> Optional[str]:
    if value is None:
        return None
    if value >= thresholds.good:
        return GOOD
    if value >= thresholds.warning:
        return WARNING
    return POOR


def calculate_casas_average(tests: Iterable[CASASTest]) -> Optional[float]:
    return average(tests, "score")


def calculate_test_average(tests: Iterable[UnitTest]) -> Optional[float]:
    return average(tests, "score")


def calculate_attendance_average(attendance: Iterable[Attendance]) -> Optional[float]:
    """Average monthly percentage, skipping vacation months."""
    return average((a for a in attendance if not a.is_vacation), "percentage")
