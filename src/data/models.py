"""Data models for the ESL gradebook."""

from dataclasses import dataclass, field
from typing import Optional

READING = "reading"
LISTENING = "listening"
CASAS_TYPES = (READING, LISTENING)


# CACE levels with CASAS scale-score ranges (inclusive)
CACE_LEVELS = {
    0: {"name": "0 - Literacy", "reading_range": (0, 183), "listening_range": (0, 181)},
    1: {"name": "1 - Beginning Low", "reading_range": (184, 196), "listening_range": (182, 191)},
    2: {"name": "2 - Beginning High", "reading_range": (197, 206), "listening_range": (192, 201)},
    3: {"name": "3 - Intermediate Low", "reading_range": (207, 216), "listening_range": (202, 211)},
    4: {"name": "4 - Intermediate High", "reading_range": (217, 227), "listening_range": (212, 221)},
    5: {"name": "5 - Advanced", "reading_range": (228, 238), "listening_range": (222, 231)},
}


def casas_targets_for_level(level: int) -> dict[str, int]:
    """
    Level start/target scores for a class at the given CACE level.

    The start is the bottom of the class's level and the target is the bottom
    of the next level. Level 5 has no next level, so it targets the top of its
    own range.
    """
    if level not in CACE_LEVELS:
        raise ValueError(f"Unknown CACE level: {level}")

    current = CACE_LEVELS[level]
    if level < 5:
        nxt = CACE_LEVELS[level + 1]
        reading_target = nxt["reading_range"][0]
        listening_target = nxt["listening_range"][0]
    else:
        reading_target = current["reading_range"][1]
        listening_target = current["listening_range"][1]

    return {
        "casas_reading_level_start": current["reading_range"][0],
        "casas_reading_target": reading_target,
        "casas_listening_level_start": current["listening_range"][0],
        "casas_listening_target": listening_target,
    }


@dataclass
class RankingWeights:
    """Percentage weight of each category in the overall score (intended to sum to 100)."""

    casas_reading: float = 25
    casas_listening: float = 25
    tests: float = 30
    attendance: float = 20

    @property
    def total(self) -> float:
        return self.casas_reading + self.casas_listening + self.tests + self.attendance


@dataclass
class ColorThresholds:
    """Percent cutoffs for good / warning color coding. Below warning is poor."""

    good: float = 80
    warning: float = 60


@dataclass
class SchoolClass:
    """A class section (e.g. Morning Level 3) and its scoring scale."""

    id: str
    name: str
    casas_reading_level_start: float
    casas_reading_target: float
    casas_listening_level_start: float
    casas_listening_target: float
    academic_year: str = ""  # "2025-2026"
    schedule: str = "Morning"
    level: int = 3
    ranking_weights: RankingWeights = field(default_factory=RankingWeights)
    color_thresholds: ColorThresholds = field(default_factory=ColorThresholds)
    created_at: str = ""
    updated_at: str = ""

    @property
    def level_name(self) -> str:
        return CACE_LEVELS.get(self.level, {}).get("name", str(self.level))


@dataclass
class Student:
    """A learner enrolled in a class."""

    id: str
    name: str
    class_id: str
    enrollment_date: str  # YYYY-MM-DD
    is_dropped: bool = False
    dropped_date: Optional[str] = None
    notes: str = ""
    created_at: str = ""
    updated_at: str = ""

    @property
    def enrollment_month(self) -> str:
        return self.enrollment_date[:7]


@dataclass
class CASASTest:
    """A single CASAS reading or listening administration."""

    id: str
    student_id: str
    type: str  # "reading" or "listening"
    date: str
    form_number: str
    score: Optional[float] = None  # None if the administration was invalid (*)
    created_at: str = ""

    @property
    def is_valid(self) -> bool:
        return self.score is not None


@dataclass
class UnitTest:
    """A unit test score. (test_name, date) identifies the test column shared by a class."""

    id: str
    student_id: str
    test_name: str
    date: str
    score: float
    created_at: str = ""


@dataclass
class Attendance:
    """Monthly attendance percentage for one student."""

    id: str
    student_id: str
    month: str  # YYYY-MM
    percentage: float
    is_vacation: bool = False
    created_at: str = ""


@dataclass
class TutoringRecord:
    """ISST (tutoring) session dates for one student in one month."""

    id: str
    student_id: str
    month: str
    dates: list[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""


@dataclass
class StudentHistory:
    """Every record held for one student, across all classes."""

    reading: list[CASASTest] = field(default_factory=list)
    listening: list[CASASTest] = field(default_factory=list)
    unit_tests: list[UnitTest] = field(default_factory=list)
    attendance: list[Attendance] = field(default_factory=list)


@dataclass
class RecordSet:
    """A snapshot of all test and attendance records, supplied fresh for each computation."""

    casas_tests: list[CASASTest] = field(default_factory=list)
    unit_tests: list[UnitTest] = field(default_factory=list)
    attendance: list[Attendance] = field(default_factory=list)

    def history_for(self, student_id: str) -> StudentHistory:
        return StudentHistory(
            reading=[t for t in self.casas_tests if t.student_id == student_id and t.type == READING],
            listening=[t for t in self.casas_tests if t.student_id == student_id and t.type == LISTENING],
            unit_tests=[t for t in self.unit_tests if t.student_id == student_id],
            attendance=[a for a in self.attendance if a.student_id == student_id],
        )

    def attendance_for(self, student_ids) -> list[Attendance]:
        ids = set(student_ids)
        return [a for a in self.attendance if a.student_id in ids]


@dataclass
class StudentWithStats(Student):
    """A student plus derived statistics. Rebuilt on every read, never persisted."""

    casas_reading_avg: Optional[float] = None
    casas_reading_last: Optional[float] = None
    casas_reading_progress: Optional[float] = None
    casas_listening_avg: Optional[float] = None
    casas_listening_last: Optional[float] = None
    casas_listening_progress: Optional[float] = None
    test_average: Optional[float] = None
    attendance_average: Optional[float] = None
    overall_score: Optional[float] = None
    rank: Optional[int] = None
    is_complete: bool = False

    @property
    def rank_display(self) -> str:
        return str(self.rank) if self.rank is not None else "Incomplete"


@dataclass
class RetentionResult:
    """Retention rate for one checkpoint. A None rate means not enough data yet."""

    rate: Optional[float] = None
    retained: int = 0
    eligible: int = 0

    @property
    def display(self) -> str:
        if self.rate is None:
            return "Not enough data"
        return f"{self.rate:.0f}% ({self.retained}/{self.eligible})"


@dataclass
class RetentionMetrics:
    thirty_day: RetentionResult = field(default_factory=RetentionResult)
    midyear: RetentionResult = field(default_factory=RetentionResult)
    end_year: RetentionResult = field(default_factory=RetentionResult)
    year_to_date: RetentionResult = field(default_factory=RetentionResult)


@dataclass
class ClassMetrics:
    """Dashboard summary for one class in one academic year."""

    student_count: int
    average_attendance: Optional[float]
    retention: RetentionMetrics = field(default_factory=RetentionMetrics)
