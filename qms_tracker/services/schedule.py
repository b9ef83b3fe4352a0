"""
Fill Schedule Calculator

Turns a free-text frequency label ("Monthly", "Every 3 months", "As needed")
and the timestamp of the newest filled file into a due-date projection.

Usage:
    from qms_tracker.services.schedule import compute_schedule

    sched = compute_schedule("Monthly", "2024-01-05T08:00:00Z")
    sched.days_until_next_fill   # -> int, or None when non-periodic
    sched.is_overdue             # -> bool
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from qms_tracker.utils.helpers import parse_timestamp, utc_now

logger = logging.getLogger(__name__)

# Lower bound for days_until_next_fill on long-abandoned forms.
MIN_DAYS_UNTIL_NEXT_FILL = -999

_NON_PERIODIC_MARKERS = ("needed", "event")
_MANUAL_LABEL = "manual"

# Substring → interval in days. First match wins; more specific labels come
# before the labels they contain ("bi-weekly" before "weekly", "6 months"
# before "month", "semi-annually" before "annually").
FREQUENCY_INTERVALS: tuple[tuple[tuple[str, ...], int], ...] = (
    (("daily",), 1),
    (("bi-weekly", "biweekly"), 14),
    (("weekly", "week"), 7),
    (("quarterly", "3 months"), 90),
    (("semi-annually", "semi-annual", "6 months"), 182),
    (("monthly", "month"), 30),
    (("annually", "yearly", "year"), 365),
)


@dataclass(frozen=True)
class Schedule:
    days_until_next_fill: int | None = None
    is_overdue: bool = False

    def to_dict(self) -> dict:
        return {
            "daysUntilNextFill": self.days_until_next_fill,
            "isOverdue": self.is_overdue,
        }


NOT_SCHEDULED = Schedule()


def is_periodic(frequency_label: str | None) -> bool:
    """False for empty, "as needed", event-driven and manual labels."""
    if not frequency_label or not frequency_label.strip():
        return False
    lower = frequency_label.lower().strip()
    if any(marker in lower for marker in _NON_PERIODIC_MARKERS):
        return False
    return lower != _MANUAL_LABEL


def interval_days(frequency_label: str | None) -> int | None:
    """Map a frequency label to its interval in days, None when unknown."""
    if not is_periodic(frequency_label):
        return None
    lower = frequency_label.lower().strip()
    if lower == "day":
        return 1
    for patterns, days in FREQUENCY_INTERVALS:
        if any(p in lower for p in patterns):
            return days
    return None


def compute_schedule(
    frequency_label: str | None,
    last_activity,
    now: datetime | None = None,
) -> Schedule:
    """Project the next due date from the label and the last activity.

    Returns NOT_SCHEDULED (no day count, not overdue) when the label is
    non-periodic or unrecognised, or when there is no parseable baseline.
    """
    interval = interval_days(frequency_label)
    if interval is None:
        return NOT_SCHEDULED

    last = parse_timestamp(last_activity)
    if last is None:
        return NOT_SCHEDULED

    now = parse_timestamp(now) if now is not None else utc_now()
    try:
        next_due = last + timedelta(days=interval)
    except OverflowError:
        logger.warning("Last activity %r is out of range; not scheduling", last_activity)
        return NOT_SCHEDULED
    days = math.floor((next_due - now) / timedelta(days=1))
    days = max(MIN_DAYS_UNTIL_NEXT_FILL, days)
    return Schedule(days_until_next_fill=days, is_overdue=days < 0)
