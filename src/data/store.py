"""In-memory gradebook store: record lookups and the import handoff from the parsers."""

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Optional

from config.settings import get_settings
from src.ingest.attendance import AttendanceParseResult, calculate_attendance_percentage
from src.ingest.base import EXACT, NONE, PARTIAL
from src.ingest.casas import CASASParseResult
from src.ingest.tutoring import TutoringParseResult
from src.ingest.unit_tests import TestsParseResult

from .models import (
    LISTENING,
    READING,
    Attendance,
    CASASTest,
    ColorThresholds,
    RankingWeights,
    RecordSet,
    SchoolClass,
    Student,
    TutoringRecord,
    UnitTest,
    casas_targets_for_level,
)
from .school_year import current_academic_year

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return uuid.uuid4().hex


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _normalize_name(name: str) -> str:
    return " ".join(name.split()).lower()


@dataclass(frozen=True)
class NameMatch:
    """How an imported name was resolved to a roster student."""

    match_kind: str
    student: Optional[Student] = None


@dataclass
class ImportSummary:
    added: int = 0
    skipped: int = 0  # duplicates already on file
    students_created: int = 0
    unmatched: list[str] = field(default_factory=list)


class GradebookStore:
    """
    Holds classes, students and their records in memory.

    Lookups return None for unknown ids. Every read hands out the current
    records; nothing derived is cached here.
    """

    def __init__(self):
        self.classes: dict[str, SchoolClass] = {}
        self.students: dict[str, Student] = {}
        self.casas_tests: list[CASASTest] = []
        self.unit_tests: list[UnitTest] = []
        self.attendance: list[Attendance] = []
        self.tutoring: list[TutoringRecord] = []

    def records(self) -> RecordSet:
        """Snapshot of all test and attendance records for the metrics engine."""
        return RecordSet(
            casas_tests=list(self.casas_tests),
            unit_tests=list(self.unit_tests),
            attendance=list(self.attendance),
        )

    # -------------------------------------------------------------------------
    # Classes
    # -------------------------------------------------------------------------

    def create_class(
        self,
        name: str,
        schedule: str = "Morning",
        level: Optional[int] = None,
        academic_year: Optional[str] = None,
    ) -> SchoolClass:
        """New class whose CASAS start/target scores follow from its CACE level."""
        settings = get_settings()
        level = settings.DEFAULT_CACE_LEVEL if level is None else level
        now = _now()
        school_class = SchoolClass(
            id=_new_id(),
            name=name,
            academic_year=academic_year or current_academic_year(),
            schedule=schedule,
            level=level,
            ranking_weights=RankingWeights(**settings.DEFAULT_RANKING_WEIGHTS),
            color_thresholds=ColorThresholds(**settings.DEFAULT_COLOR_THRESHOLDS),
            created_at=now,
            updated_at=now,
            **casas_targets_for_level(level),
        )
        self.classes[school_class.id] = school_class
        logger.info("Created class %s (%s, level %d)", name, school_class.academic_year, level)
        return school_class

    def get_class(self, class_id: str) -> Optional[SchoolClass]:
        return self.classes.get(class_id)

    def get_classes(self, academic_year: Optional[str] = None) -> list[SchoolClass]:
        return [c for c in self.classes.values() if academic_year is None or c.academic_year == academic_year]

    def update_class(self, class_id: str, **updates) -> Optional[SchoolClass]:
        school_class = self.classes.get(class_id)
        if school_class is None:
            return None
        updated = replace(school_class, **{**updates, "updated_at": _now()})
        self.classes[class_id] = updated
        return updated

    def delete_class(self, class_id: str) -> None:
        """Remove a class with its students and all their records."""
        ids = {s.id for s in self.students.values() if s.class_id == class_id}
        self.classes.pop(class_id, None)
        self.students = {k: v for k, v in self.students.items() if k not in ids}
        self.casas_tests = [t for t in self.casas_tests if t.student_id not in ids]
        self.unit_tests = [t for t in self.unit_tests if t.student_id not in ids]
        self.attendance = [a for a in self.attendance if a.student_id not in ids]
        self.tutoring = [r for r in self.tutoring if r.student_id not in ids]

    # -------------------------------------------------------------------------
    # Students
    # -------------------------------------------------------------------------

    def get_student(self, student_id: str) -> Optional[Student]:
        return self.students.get(student_id)

    def get_students_by_class(self, class_id: str, include_dropped: bool = False) -> list[Student]:
        return [
            s for s in self.students.values()
            if s.class_id == class_id and (include_dropped or not s.is_dropped)
        ]

    def get_dropped_students(self) -> list[Student]:
        return [s for s in self.students.values() if s.is_dropped]

    def create_student(self, name: str, class_id: str, enrollment_date: Optional[str] = None) -> Student:
        if class_id not in self.classes:
            raise KeyError(f"Unknown class: {class_id}")
        now = _now()
        student = Student(
            id=_new_id(),
            name=name.strip(),
            class_id=class_id,
            enrollment_date=enrollment_date or date.today().isoformat(),
            created_at=now,
            updated_at=now,
        )
        self.students[student.id] = student
        return student

    def update_student(self, student_id: str, **updates) -> Optional[Student]:
        student = self.students.get(student_id)
        if student is None:
            return None
        updated = replace(student, **{**updates, "updated_at": _now()})
        self.students[student_id] = updated
        return updated

    def drop_student(self, student_id: str, dropped_date: Optional[str] = None) -> Optional[Student]:
        return self.update_student(
            student_id, is_dropped=True, dropped_date=dropped_date or date.today().isoformat()
        )

    def restore_student(self, student_id: str, new_class_id: Optional[str] = None) -> Optional[Student]:
        """Undo a drop, optionally into a different class. History is kept either way."""
        student = self.students.get(student_id)
        if student is None:
            return None
        class_id = new_class_id or student.class_id
        if class_id not in self.classes:
            raise KeyError(f"Unknown class: {class_id}")
        return self.update_student(student_id, is_dropped=False, dropped_date=None, class_id=class_id)

    def move_student(self, student_id: str, new_class_id: str) -> Optional[Student]:
        if new_class_id not in self.classes:
            raise KeyError(f"Unknown class: {new_class_id}")
        return self.update_student(student_id, class_id=new_class_id)

    def find_student_by_name(self, name: str, class_id: str) -> Optional[Student]:
        return self.resolve_student_name(name, class_id, partial=False).student

    def resolve_student_name(self, name: str, class_id: str, partial: bool = True) -> NameMatch:
        """
        Match an imported name against the class roster.

        Exact (case- and spacing-insensitive) first. Then, if ``partial``, a
        unique roster student whose name words all appear in the imported
        name or vice versa ("Maria Lopez" ~ "Maria Lopez Garcia").
        """
        wanted = _normalize_name(name)
        if not wanted:
            return NameMatch(NONE)
        roster = self.get_students_by_class(class_id)
        for student in roster:
            if _normalize_name(student.name) == wanted:
                return NameMatch(EXACT, student)
        if not partial:
            return NameMatch(NONE)

        wanted_words = set(wanted.split())
        candidates = []
        for student in roster:
            words = set(_normalize_name(student.name).split())
            if words and (words <= wanted_words or wanted_words <= words):
                candidates.append(student)
        if len(candidates) == 1:
            return NameMatch(PARTIAL, candidates[0])
        if candidates:
            logger.debug("Ambiguous partial match for %r: %d candidates", name, len(candidates))
        return NameMatch(NONE)

    def find_or_create_student(
        self, name: str, class_id: str, enrollment_date: Optional[str] = None
    ) -> tuple[Student, bool]:
        """The roster student with this name, or a new one. Returns (student, was_created)."""
        existing = self.find_student_by_name(name, class_id)
        if existing is not None:
            return existing, False
        return self.create_student(name, class_id, enrollment_date), True

    # -------------------------------------------------------------------------
    # CASAS tests
    # -------------------------------------------------------------------------

    def get_casas_tests_by_student(self, student_id: str, test_type: Optional[str] = None) -> list[CASASTest]:
        return [
            t for t in self.casas_tests
            if t.student_id == student_id and (test_type is None or t.type == test_type)
        ]

    def add_casas_test(
        self,
        student_id: str,
        test_type: str,
        test_date: str,
        form_number: str,
        score: Optional[float],
    ) -> Optional[CASASTest]:
        """Record a CASAS test. Returns None if the same date/form/score is already on file."""
        if test_type not in (READING, LISTENING):
            raise ValueError(f"Unknown CASAS test type: {test_type}")
        for t in self.casas_tests:
            if (t.student_id, t.date, t.form_number, t.score) == (student_id, test_date, form_number, score):
                return None
        test = CASASTest(
            id=_new_id(),
            student_id=student_id,
            type=test_type,
            date=test_date,
            form_number=form_number,
            score=score,
            created_at=_now(),
        )
        self.casas_tests.append(test)
        return test

    def delete_casas_test(self, test_id: str) -> None:
        self.casas_tests = [t for t in self.casas_tests if t.id != test_id]

    # -------------------------------------------------------------------------
    # Unit tests
    # -------------------------------------------------------------------------

    def get_unit_tests_by_student(self, student_id: str) -> list[UnitTest]:
        return [t for t in self.unit_tests if t.student_id == student_id]

    def add_unit_test(self, student_id: str, test_name: str, test_date: str, score: float) -> UnitTest:
        test = UnitTest(
            id=_new_id(),
            student_id=student_id,
            test_name=test_name,
            date=test_date,
            score=score,
            created_at=_now(),
        )
        self.unit_tests.append(test)
        return test

    def get_test_columns(self, class_id: str) -> list[tuple[str, str]]:
        """Distinct (test name, date) columns for a class, by date."""
        ids = {s.id for s in self.get_students_by_class(class_id, include_dropped=True)}
        columns = {(t.test_name, t.date) for t in self.unit_tests if t.student_id in ids}
        return sorted(columns, key=lambda c: (c[1], c[0]))

    def rename_test_column(
        self,
        class_id: str,
        old_name: str,
        old_date: str,
        new_name: Optional[str] = None,
        new_date: Optional[str] = None,
    ) -> int:
        """Rename/redate one test column for every student in the class. Returns records changed."""
        ids = {s.id for s in self.get_students_by_class(class_id, include_dropped=True)}
        changed = 0
        for i, test in enumerate(self.unit_tests):
            if test.student_id in ids and test.test_name == old_name and test.date == old_date:
                self.unit_tests[i] = replace(
                    test,
                    test_name=new_name if new_name is not None else test.test_name,
                    date=new_date if new_date is not None else test.date,
                )
                changed += 1
        logger.info("Renamed test column %s (%s): %d records", old_name, old_date, changed)
        return changed

    def delete_unit_test(self, test_id: str) -> None:
        self.unit_tests = [t for t in self.unit_tests if t.id != test_id]

    # -------------------------------------------------------------------------
    # Attendance
    # -------------------------------------------------------------------------

    def get_attendance_by_student(self, student_id: str) -> list[Attendance]:
        return [a for a in self.attendance if a.student_id == student_id]

    def _find_attendance(self, student_id: str, month: str) -> Optional[int]:
        for i, a in enumerate(self.attendance):
            if a.student_id == student_id and a.month == month:
                return i
        return None

    def set_attendance(self, student_id: str, month: str, percentage: float, is_vacation: bool = False) -> Attendance:
        """Create or overwrite the student's record for that month."""
        if percentage > 100:
            logger.warning("Attendance over 100%% for %s in %s: %s", student_id, month, percentage)
        index = self._find_attendance(student_id, month)
        if index is not None:
            updated = replace(self.attendance[index], percentage=percentage, is_vacation=is_vacation)
            self.attendance[index] = updated
            return updated

        record = Attendance(
            id=_new_id(),
            student_id=student_id,
            month=month,
            percentage=percentage,
            is_vacation=is_vacation,
            created_at=_now(),
        )
        self.attendance.append(record)
        return record

    def toggle_vacation(self, student_id: str, month: str) -> bool:
        """Flip a month to/from vacation. Refused (False) when the month already has real attendance."""
        index = self._find_attendance(student_id, month)
        if index is None:
            self.set_attendance(student_id, month, 0, is_vacation=True)
            return True
        existing = self.attendance[index]
        if not existing.is_vacation and existing.percentage > 0:
            return False
        self.attendance[index] = replace(existing, is_vacation=not existing.is_vacation)
        return True

    def delete_attendance(self, student_id: str, month: str) -> None:
        self.attendance = [a for a in self.attendance if not (a.student_id == student_id and a.month == month)]

    # -------------------------------------------------------------------------
    # Tutoring (ISST)
    # -------------------------------------------------------------------------

    def get_tutoring_by_student(self, student_id: str) -> list[TutoringRecord]:
        return [r for r in self.tutoring if r.student_id == student_id]

    def add_tutoring_dates(self, student_id: str, month: str, dates: list[str]) -> TutoringRecord:
        """Merge session dates into the student's record for that month."""
        for i, record in enumerate(self.tutoring):
            if record.student_id == student_id and record.month == month:
                merged = sorted(set(record.dates) | set(dates))
                self.tutoring[i] = replace(record, dates=merged, updated_at=_now())
                return self.tutoring[i]
        now = _now()
        record = TutoringRecord(
            id=_new_id(),
            student_id=student_id,
            month=month,
            dates=sorted(set(dates)),
            created_at=now,
            updated_at=now,
        )
        self.tutoring.append(record)
        return record

    # -------------------------------------------------------------------------
    # Import handoff
    # -------------------------------------------------------------------------

    def _require_class(self, class_id: str) -> SchoolClass:
        school_class = self.classes.get(class_id)
        if school_class is None:
            raise KeyError(f"Unknown class: {class_id}")
        return school_class

    def _first_dates(self, rows) -> dict[str, str]:
        """Earliest imported date per normalized name, used as enrollment date for new students."""
        firsts = {}
        for row in rows:
            key = _normalize_name(row.student_name)
            if row.date and (key not in firsts or row.date < firsts[key]):
                firsts[key] = row.date
        return firsts

    def import_casas(self, class_id: str, result: CASASParseResult) -> ImportSummary:
        """Store parsed CASAS rows. A result with errors imports nothing."""
        self._require_class(class_id)
        summary = ImportSummary()
        if not result.ok:
            logger.warning("Not importing CASAS file with %d errors", len(result.errors))
            return summary

        first_dates = self._first_dates(result.reading + result.listening)
        for test_type, rows in ((READING, result.reading), (LISTENING, result.listening)):
            for row in rows:
                student, created = self.find_or_create_student(
                    row.student_name, class_id, first_dates.get(_normalize_name(row.student_name))
                )
                summary.students_created += created
                if self.add_casas_test(student.id, test_type, row.date, row.form_number, row.score):
                    summary.added += 1
                else:
                    summary.skipped += 1

        logger.info("Imported CASAS: %d added, %d duplicates", summary.added, summary.skipped)
        return summary

    def import_attendance(self, class_id: str, result: AttendanceParseResult, month: str) -> ImportSummary:
        """Store parsed hours as percentages for ``month`` (YYYY-MM), replacing existing values."""
        self._require_class(class_id)
        summary = ImportSummary()
        if not result.ok:
            logger.warning("Not importing attendance file with %d errors", len(result.errors))
            return summary

        for row in result.records:
            student, created = self.find_or_create_student(row.student_name, class_id, f"{month}-01")
            summary.students_created += created
            percentage = calculate_attendance_percentage(row.total_hours, row.scheduled_hours)
            if percentage is None:
                summary.skipped += 1
                continue
            self.set_attendance(student.id, month, percentage)
            summary.added += 1

        logger.info("Imported attendance for %s: %d records", month, summary.added)
        return summary

    def import_unit_tests(
        self,
        class_id: str,
        result: TestsParseResult,
        test_name: Optional[str] = None,
        test_date: Optional[str] = None,
    ) -> ImportSummary:
        """
        Store parsed unit-test scores. Progress-tracker rows carry their own test
        name and date; single-test files need ``test_name`` and ``test_date``.
        """
        self._require_class(class_id)
        summary = ImportSummary()
        if not result.ok:
            logger.warning("Not importing unit tests file with %d errors", len(result.errors))
            return summary
        if not result.is_multi_test and not (test_name and test_date):
            raise ValueError("A test name and date are required for single-test files")

        rows = result.records
        first_dates = self._first_dates(rows) if result.is_multi_test else {}
        for row in rows:
            name = row.test_name or test_name
            when = row.date or test_date
            student, created = self.find_or_create_student(
                row.student_name, class_id, first_dates.get(_normalize_name(row.student_name), when)
            )
            summary.students_created += created
            self.add_unit_test(student.id, name, when, row.score)
            summary.added += 1

        logger.info("Imported unit tests: %d scores", summary.added)
        return summary

    def import_tutoring(self, class_id: str, result: TutoringParseResult) -> ImportSummary:
        """
        Store tutoring sessions for students already on the roster. Names are
        matched exactly, then partially; unmatched names are reported, not created.
        """
        self._require_class(class_id)
        summary = ImportSummary()
        if not result.ok:
            logger.warning("Not importing tutoring file with %d errors", len(result.errors))
            return summary

        for row in result.records:
            match = self.resolve_student_name(row.student_name, class_id)
            if match.student is None:
                summary.unmatched.append(row.student_name)
                continue
            by_month: dict[str, list[str]] = {}
            for session in row.dates:
                by_month.setdefault(session.month, []).append(session.date)
            for month, dates in by_month.items():
                self.add_tutoring_dates(match.student.id, month, dates)
                summary.added += len(dates)

        logger.info(
            "Imported tutoring: %d sessions, %d unmatched names", summary.added, len(summary.unmatched)
        )
        return summary


# Singleton instance
_store: Optional[GradebookStore] = None


def get_store() -> GradebookStore:
    """Get or create the gradebook store singleton."""
    global _store
    if _store is None:
        _store = GradebookStore()
    return _store
