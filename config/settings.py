"""Application settings and configuration management."""

import os
from functools import lru_cache

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


class Settings:
    """Application settings loaded from environment variables."""

    # Logging
    LOG_LEVEL: str = os.getenv("GRADEBOOK_LOG_LEVEL", "INFO").upper()

    # School year starts in August; months before this belong to the previous start year
    SCHOOL_YEAR_START_MONTH: int = _env_int("SCHOOL_YEAR_START_MONTH", 8)

    # Ingestion
    CASAS_HEADER_SCAN_ROWS: int = 20
    CASAS_TYPICAL_SCORE_RANGE: tuple = (150, 260)
    TUTORING_HEADER_SCAN_ROWS: int = 5
    MAX_UPLOAD_MB: int = _env_int("GRADEBOOK_MAX_UPLOAD_MB", 10)

    # Summary thresholds (percent)
    ATTENDANCE_LOW_THRESHOLD: float = 60
    PASSING_SCORE: float = 60
    EXCELLENT_SCORE: float = 80

    # Class defaults
    DEFAULT_CACE_LEVEL: int = 3
    DEFAULT_RANKING_WEIGHTS: dict = {
        "casas_reading": 25,
        "casas_listening": 25,
        "tests": 30,
        "attendance": 20,
    }
    DEFAULT_COLOR_THRESHOLDS: dict = {"good": 80, "warning": 60}
    SCHEDULES: list = ["Morning", "Evening"]

    @property
    def max_upload_bytes(self) -> int:
        return self.MAX_UPLOAD_MB * 1024 * 1024


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
