"""Shared parsing helpers for values read from the sheet and Drive.

parse_timestamp:  tolerant timestamp parser (returns None on bad input)
utc_now:          timezone-aware "now", the single clock used by the engine
"""
from datetime import date, datetime, time, timezone

# Non-ISO formats seen in the sheet's date columns, tried in order.
_SHEET_DATE_FORMATS = (
    "%d.%m.%Y",
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M:%S",
    "%Y/%m/%d",
    "%d %b %Y",
    "%b %d, %Y",
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value):
    """Parse a Drive ``createdTime`` or a sheet date cell to an aware datetime.

    Returns None for empty/invalid input. Naive values are taken as UTC.
    Supports:
    - RFC 3339 / ISO 8601, with or without ``Z`` (Drive's createdTime)
    - YYYY-MM-DD
    - DD.MM.YYYY, MM/DD/YYYY, YYYY/MM/DD, "05 Jan 2024", "Jan 05, 2024"
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    else:
        text = str(value).strip()
        if not text:
            return None
        parsed = None
        iso = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
        try:
            parsed = datetime.fromisoformat(iso)
        except ValueError:
            for fmt in _SHEET_DATE_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
        if parsed is None:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed

