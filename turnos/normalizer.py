"""
Input normalization for the turnos appointment assistant

Whitespace/diacritic/case normalization plus the flexible date and time
tokenizers shared by the command parser and the appointment engine.

Dates are always handed around as ISO strings (YYYY-MM-DD) and times as
zero-padded 24h strings (HH:MM), which is also how they are stored.
"""

import re
import unicodedata
from datetime import date, datetime
from typing import Optional


# ============================================================================
# Patterns
# ============================================================================

ISO_DATE_PATTERN = re.compile(r'^(\d{4})-(\d{1,2})-(\d{1,2})$')
DAY_FIRST_DATE_PATTERN = re.compile(r'^(\d{1,2})([/-])(\d{1,2})(?:\2(\d{4}))?$')
TIME_TOKEN_PATTERN = re.compile(r'^(\d{1,2})(?::(\d{2}))?$')
HHMM_PATTERN = re.compile(r'^\d{2}:\d{2}$')

MINUTES_PER_DAY = 24 * 60


# ============================================================================
# Text normalization
# ============================================================================

def normalize_text(text: Optional[str]) -> str:
    """Collapse runs of whitespace (newlines included) and trim. Never fails."""
    if not text:
        return ""
    return " ".join(str(text).split())


def fold_for_match(text: Optional[str]) -> str:
    """
    Fold text for case/accent-insensitive comparisons.

    Args:
        text: Any text (None is treated as empty)

    Returns:
        Uppercased text with diacritics removed and whitespace normalized,
        e.g. 'Agendá  José' -> 'AGENDA JOSE'
    """
    decomposed = unicodedata.normalize('NFD', normalize_text(text))
    stripped = ''.join(ch for ch in decomposed if unicodedata.category(ch) != 'Mn')
    return unicodedata.normalize('NFC', stripped).upper()


# ============================================================================
# Dates
# ============================================================================

def _build_date(year: int, month: int, day: int) -> Optional[str]:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def parse_flexible_date(token: Optional[str], today: Optional[date] = None) -> Optional[str]:
    """
    Parse a date token in any of the accepted shapes.

    Accepted shapes: YYYY-MM-DD, D/M, D-M, D/M/YYYY, D-M-YYYY (day first).
    When the year is omitted the current year is assumed.

    Args:
        token: Candidate date token
        today: Reference date for the implicit year (defaults to date.today())

    Returns:
        ISO date string, or None if the token is not shaped like a date or
        does not denote a real calendar date (e.g. 31/02)
    """
    if not token:
        return None
    candidate = token.strip()

    iso_match = ISO_DATE_PATTERN.match(candidate)
    if iso_match:
        year, month, day = (int(part) for part in iso_match.groups())
        return _build_date(year, month, day)

    day_first_match = DAY_FIRST_DATE_PATTERN.match(candidate)
    if day_first_match:
        day_str, _, month_str, year_str = day_first_match.groups()
        if year_str:
            year = int(year_str)
        else:
            year = (today or date.today()).year
        return _build_date(year, int(month_str), int(day_str))

    return None


def is_valid_date(value: Optional[str]) -> bool:
    """
    Check that a normalized date round-trips through calendar-date construction.

    Rejects impossible dates such as 2023-02-30 and anything not written as
    zero-padded YYYY-MM-DD.
    """
    if not value:
        return False
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return False
    return parsed.isoformat() == value


# ============================================================================
# Times
# ============================================================================

def parse_flexible_time(token: Optional[str]) -> Optional[str]:
    """
    Parse a time token: bare hour (H / HH, assumed :00) or H:MM / HH:MM.

    Args:
        token: Candidate time token

    Returns:
        Zero-padded HH:MM, or None when not a time or out of range
        (hour > 23 or minute > 59)
    """
    if not token:
        return None
    match = TIME_TOKEN_PATTERN.match(token.strip())
    if not match:
        return None

    hour = int(match.group(1))
    minute = int(match.group(2)) if match.group(2) is not None else 0
    if hour > 23 or minute > 59:
        return None
    return f"{hour:02d}:{minute:02d}"


def is_valid_time(value: Optional[str]) -> bool:
    """True for a zero-padded HH:MM inside the 24h clock."""
    if not value or not HHMM_PATTERN.match(value):
        return False
    hour, minute = (int(part) for part in value.split(":"))
    return hour <= 23 and minute <= 59


def add_minutes(hhmm: str, minutes: int) -> str:
    """
    Add minutes to a wall-clock HH:MM, wrapping within 24 hours.

    Args:
        hhmm: Start time as HH:MM
        minutes: Minutes to add (may be negative)

    Returns:
        Resulting HH:MM modulo 1440 minutes
    """
    hour, minute = (int(part) for part in hhmm.split(":"))
    total = (hour * 60 + minute + minutes) % MINUTES_PER_DAY
    return f"{total // 60:02d}:{total % 60:02d}"
