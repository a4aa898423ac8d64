"""Detect backend usage-limit messages and compute when the window reopens."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

__all__ = ["parse_rate_limit_reset"]

_MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

_DATED_RE = re.compile(
    r"resets\s+([a-z]{3})[a-z]*\.?\s+(\d{1,2}),\s*(\d{1,2})(am|pm)\s*\(UTC\)",
    re.IGNORECASE,
)
_TIME_ONLY_RE = re.compile(r"resets\s+(\d{1,2})(am|pm)\s*\(UTC\)", re.IGNORECASE)


def parse_rate_limit_reset(output: str, now: datetime) -> Optional[datetime]:
    """Return the next UTC instant named by a ``resets ... (UTC)`` notice, if any.

    Handles ``resets 7pm (UTC)`` (rolls forward a day when not strictly in the
    future) and ``resets Feb 3, 7pm (UTC)`` (rolls forward a year). Any other
    text, or an impossible date, yields ``None``.
    """
    if not output:
        return None
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)

    dated = _DATED_RE.search(output)
    if dated:
        month = _MONTHS.get(dated.group(1).lower())
        hour = _to_24_hour(int(dated.group(3)), dated.group(4))
        if month is None or hour is None:
            return None
        day = int(dated.group(2))
        # A leap day can be up to four years out.
        for year in range(now.year, now.year + 5):
            try:
                candidate = datetime(year, month, day, hour, tzinfo=timezone.utc)
            except ValueError:
                continue
            if candidate > now:
                return candidate
        return None

    time_only = _TIME_ONLY_RE.search(output)
    if time_only:
        hour = _to_24_hour(int(time_only.group(1)), time_only.group(2))
        if hour is None:
            return None
        candidate = now.replace(hour=hour, minute=0, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    return None


def _to_24_hour(hour: int, meridiem: str) -> Optional[int]:
    if not 1 <= hour <= 12:
        return None
    if meridiem.lower() == "am":
        return 0 if hour == 12 else hour
    return 12 if hour == 12 else hour + 12
