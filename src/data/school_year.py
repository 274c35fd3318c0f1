"""School-year and calendar-month helpers.

A school year starts in August (``SCHOOL_YEAR_START_MONTH``) and is written
"2025-2026". Months are ``YYYY-MM`` strings throughout the gradebook.
"""

from datetime import date
from typing import Optional

from config.settings import get_settings


def school_year_start(today: Optional[date] = None) -> int:
    """Start year of the school year containing ``today`` (Aug-Dec -> this year, Jan-Jul -> last year)."""
    today = today or date.today()
    start_month = get_settings().SCHOOL_YEAR_START_MONTH
    return today.year if today.month >= start_month else today.year - 1


def current_academic_year(today: Optional[date] = None) -> str:
    start = school_year_start(today)
    return f"{start}-{start + 1}"


def parse_academic_year(academic_year: str) -> tuple[int, int]:
    """Split "2025-2026" into (2025, 2026). Raises ValueError on malformed input."""
    parts = academic_year.strip().split("-")
    if len(parts) != 2:
        raise ValueError(f"Academic year must look like '2025-2026', got {academic_year!r}")
    start, end = int(parts[0]), int(parts[1])
    if end != start + 1:
        raise ValueError(f"Academic year must span consecutive years, got {academic_year!r}")
    return start, end


def year_for_month(month_number: int, start_year: int) -> int:
    """Calendar year of a month number within the school year beginning in ``start_year``."""
    start_month = get_settings().SCHOOL_YEAR_START_MONTH
    return start_year if month_number >= start_month else start_year + 1


def month_key(year: int, month_number: int) -> str:
    return f"{year:04d}-{month_number:02d}"


def add_months(month: str, count: int) -> str:
    """Calendar-month arithmetic on ``YYYY-MM`` strings: add_months("2025-11", 2) == "2026-01"."""
    year, mon = int(month[:4]), int(month[5:7])
    index = year * 12 + (mon - 1) + count
    return month_key(index // 12, index % 12 + 1)


def academic_year_months(academic_year: str) -> tuple[str, str]:
    """First and last month (inclusive) of an academic year, e.g. ("2025-08", "2026-07")."""
    start, _ = parse_academic_year(academic_year)
    first = month_key(start, get_settings().SCHOOL_YEAR_START_MONTH)
    return first, add_months(first, 11)
