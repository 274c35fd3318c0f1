from .models import (
    Attendance,
    CASASTest,
    ClassMetrics,
    RecordSet,
    RetentionResult,
    SchoolClass,
    Student,
    StudentWithStats,
    TutoringRecord,
    UnitTest,
)

__all__ = [
    "Attendance",
    "CASASTest",
    "ClassMetrics",
    "RecordSet",
    "RetentionResult",
    "SchoolClass",
    "Student",
    "StudentWithStats",
    "TutoringRecord",
    "UnitTest",
]
