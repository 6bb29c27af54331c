# registrar/core/terms.py - Academic calendar helpers
from datetime import date
from typing import Optional

SEMESTERS = ("1st", "2nd", "Summer")
SUMMER = "Summer"


def current_school_year(today: Optional[date] = None) -> str:
    """School years start in August: 2025-08-01 belongs to '2025-2026'."""
    today = today or date.today()
    if today.month >= 8:
        return f"{today.year}-{today.year + 1}"
    return f"{today.year - 1}-{today.year}"


def current_semester(today: Optional[date] = None) -> str:
    """August-December is 1st, January-May is 2nd, June-July is Summer."""
    today = today or date.today()
    if 8 <= today.month <= 12:
        return "1st"
    if 1 <= today.month <= 5:
        return "2nd"
    return SUMMER


def is_summer(semester: str) -> bool:
    return semester == SUMMER
