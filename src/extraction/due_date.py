from __future__ import annotations

import re
from datetime import date, timedelta
from typing import Optional

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

_TOMORROW_RE = re.compile(r"\btomorrow\b")
_WEEKDAY_RE = re.compile(r"\b(on\s+|next\s+)?(" + "|".join(WEEKDAYS) + r")\b")


def resolve_due_date(text: str, today: Optional[date] = None) -> Optional[date]:
    """Resolve a relative date phrase ("tomorrow", "on Friday") to a local date.

    Weekday names resolve to the next occurrence at or after ``today``, so
    "on Monday" said on a Monday means today. Returns None when nothing matches.
    """
    if not text:
        return None

    today = today or date.today()
    lower = text.lower().strip()

    if _TOMORROW_RE.search(lower):
        return today + timedelta(days=1)

    match = _WEEKDAY_RE.search(lower)
    if not match:
        return None

    target = WEEKDAYS.index(match.group(2))
    diff = (target - today.weekday()) % 7
    return today + timedelta(days=diff)
