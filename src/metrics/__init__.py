from .primitives import (
    average,
    calculate_attendance_average,
    calculate_casas_average,
    calculate_test_average,
    color_level,
    most_recent,
    progress,
)
from .students import calculate_overall_score, get_student_stats, has_complete_data
from .ranking import get_bottom_students, get_students_with_ranks, get_top_students, rank_students
from .retention import (
    best_retention,
    calculate_30_day_retention,
    calculate_end_year_retention,
    calculate_midyear_retention,
    calculate_ytd_retention,
    get_class_metrics,
)

__all__ = [
    "average",
    "calculate_attendance_average",
    "calculate_casas_average",
    "calculate_test_average",
    "color_level",
    "most_recent",
    "progress",
    "calculate_overall_score",
    "get_student_stats",
    "has_complete_data",
    "get_bottom_students",
    "get_students_with_ranks",
    "get_top_students",
    "rank_students",
    "best_retention",
    "calculate_30_day_retention",
    "calculate_end_year_retention",
    "calculate_midyear_retention",
    "calculate_ytd_retention",
    "get_class_metrics",
]
