"""Shared parsing and formatting helpers used across the booking orchestrator."""

import re
from datetime import date, datetime, timedelta
from typing import Optional, Union

_CLOCK_WITH_MINUTES = re.compile(r"\b(\d{1,2}):(\d{2})\s*(am|pm|a\.m\.|p\.m\.)?", re.IGNORECASE)
_CLOCK_WITH_MERIDIEM = re.compile(r"\b(\d{1,2})\s*(am|pm|a\.m\.|p\.m\.)", re.IGNORECASE)
_BARE_HOUR = re.compile(r"^\s*(\d{1,2})\s*$")

_ORDINAL_SUFFIX = re.compile(r"(\d{1,2})(st|nd|rd|th)\b", re.IGNORECASE)
_ISO_DATE_PREFIX = re.compile(r"^(\d{4}-\d{2}-\d{2})(?:[T ].*)?$")
_TZ_SUFFIX = re.compile(r"(Z|[+-]\d{2}:\d{2})$")
_ISO_LOCAL = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(:\d{2})?$")

_DATE_FORMATS_WITH_YEAR = (
    "%Y-%m-%d",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d %Y",
    "%B %d %Y",
    "%m/%d/%Y",
    "%d.%m.%Y",
)
_DATE_FORMATS_WITHOUT_YEAR = ("%d %b", "%d %B", "%b %d", "%B %d")


def parse_clock_time(value: Optional[str]) -> Optional[tuple[int, int]]:
    """Parse a free-text clock value into (hour, minute) on a 24h clock.

    Examples:
        >>> parse_clock_time("6 pm")
        (18, 0)
        >>> parse_clock_time("10:30am")
        (10, 30)
        >>> parse_clock_time("14:15")
        (14, 15)
    """
    if not value:
        return None
    text = value.strip().lower()

    match = _CLOCK_WITH_MINUTES.search(text)
    if match:
        hour, minute, meridiem = int(match.group(1)), int(match.group(2)), match.group(3)
    else:
        match = _CLOCK_WITH_MERIDIEM.search(text) or _BARE_HOUR.search(text)
        if not match:
            return None
        hour, minute = int(match.group(1)), 0
        meridiem = match.group(2) if match.lastindex and match.lastindex >= 2 else None

    if meridiem:
        meridiem = meridiem.replace(".", "")
        if meridiem == "pm" and hour < 12:
            hour += 12
        elif meridiem == "am" and hour == 12:
            hour = 0

    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return hour, minute


def parse_time_to_hhmm(value: Optional[str]) -> Optional[str]:
    """Normalize a free-text time to HH:MM, or None when it cannot be parsed."""
    parsed = parse_clock_time(value)
    if parsed is None:
        return None
    return f"{parsed[0]:02d}:{parsed[1]:02d}"


def normalize_date(value: Optional[str], today: Optional[date] = None) -> Optional[str]:
    """Normalize a free-text date to YYYY-MM-DD.

    Accepts ISO dates (with or without a time part), "6 nov 2025",
    "Nov 6th", "11/06/2025", "today" and "tomorrow". A missing year is
    filled with the current year.
    """
    if not value:
        return None
    today = today or date.today()
    text = value.strip()
    lowered = text.lower()

    if lowered == "today":
        return today.isoformat()
    if lowered == "tomorrow":
        return (today + timedelta(days=1)).isoformat()

    iso = _ISO_DATE_PREFIX.match(text)
    if iso:
        text = iso.group(1)

    text = _ORDINAL_SUFFIX.sub(r"\1", text).replace(",", " ")
    text = " ".join(text.split())

    for fmt in _DATE_FORMATS_WITH_YEAR:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue

    for fmt in _DATE_FORMATS_WITHOUT_YEAR:
        try:
            parsed = datetime.strptime(f"{text} {today.year}", f"{fmt} %Y")
        except ValueError:
            continue
        return parsed.date().isoformat()
    return None


def normalize_bookable_time_id(raw: Optional[str]) -> Optional[str]:
    """Coerce a bookable time reference into the ``t_YYYY-MM-DDTHH:MM:SS`` form.

    Timezone suffixes are dropped; values that are already prefixed are
    returned unchanged. Returns None for anything that is not time-like.

    Examples:
        >>> normalize_bookable_time_id("2025-11-02T06:00:00-08:00")
        't_2025-11-02T06:00:00'
        >>> normalize_bookable_time_id("t_2025-11-02T06:00:00")
        't_2025-11-02T06:00:00'
    """
    if not raw:
        return None
    text = raw.strip().strip('"')
    if text.startswith("t_"):
        return text

    text = _TZ_SUFFIX.sub("", text)
    if _ISO_LOCAL.match(text):
        if len(text) == len("YYYY-MM-DDTHH:MM"):
            text = f"{text}:00"
        return f"t_{text}"
    return None


def minor_to_major(value: object) -> Optional[float]:
    """Convert a minor-unit amount (cents) to major units; None for non-numbers."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value / 100


def format_amount(value: Union[int, float], symbol: str = "$") -> str:
    """Format a major-unit amount with two decimals, e.g. ``$123.45``."""
    return f"{symbol}{value:.2f}"
