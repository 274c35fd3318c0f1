"""Class ranking."""

from src.data.models import RecordSet, SchoolClass, Student, StudentWithStats

from .students import get_student_stats


def _sort_key(item: tuple[int, StudentWithStats]):
    position, stats = item
    if not stats.is_complete or stats.overall_score is None:
        return (1, 0.0, "", position)
    # Ties on score fall back to name, then roster order
    return (0, -stats.overall_score, stats.name.casefold(), position)


def rank_students(students_with_stats: list[StudentWithStats]) -> list[StudentWithStats]:
    """
    Sort complete students by overall score (best first) and number them
    1, 2, 3... with no gaps. Incomplete students follow, unranked.
    """
    ordered = [s for _, s in sorted(enumerate(students_with_stats), key=_sort_key)]
    rank = 1
    for stats in ordered:
        if stats.is_complete and stats.overall_score is not None:
            stats.rank = rank
            rank += 1
        else:
            stats.rank = None
    return ordered


def get_students_with_ranks(
    students: list[Student],
    school_class: SchoolClass,
    records: RecordSet,
) -> list[StudentWithStats]:
    """Stats for every student in the class, ranked."""
    with_stats = [get_student_stats(s, school_class, records.history_for(s.id)) for s in students]
    return rank_students(with_stats)


def get_top_students(ranked: list[StudentWithStats], n: int) -> list[StudentWithStats]:
    """The ``n`` best-ranked students, best first."""
    return sorted((s for s in ranked if s.rank is not None), key=lambda s: s.rank)[:n]


def get_bottom_students(ranked: list[StudentWithStats], n: int) -> list[StudentWithStats]:
    """The ``n`` lowest-ranked students, in rank order (best of them first)."""
    if n <= 0:
        return []
    return sorted((s for s in ranked if s.rank is not None), key=lambda s: s.rank)[-n:]
