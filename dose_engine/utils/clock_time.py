# dose_engine/utils/clock_time.py
from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Iterator, Optional, Tuple
from zoneinfo import ZoneInfo

_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
_AMPM_RE = re.compile(r"^(\d{1,2}):(\d{2})\s*([AaPp])\.?[Mm]\.?$")

MINUTES_PER_DAY = 24 * 60


def hhmm_to_minutes(raw: str) -> int:
    """
    Parse "HH:MM", "H:MM" or 12-hour "h:mm AM/PM" into minutes from midnight.
    Raises ValueError for anything else.
    """
    s = (raw or "").strip()

    m = _HHMM_RE.match(s)
    if m:
        h, mi = int(m.group(1)), int(m.group(2))
        if 0 <= h <= 23 and 0 <= mi <= 59:
            return h * 60 + mi
        raise ValueError(f"time out of range: {raw!r}")

    m = _AMPM_RE.match(s)
    if m:
        h, mi = int(m.group(1)), int(m.group(2))
        if not (1 <= h <= 12 and 0 <= mi <= 59):
            raise ValueError(f"time out of range: {raw!r}")
        h = h % 12
        if m.group(3).lower() == "p":
            h += 12
        return h * 60 + mi

    raise ValueError(f"unrecognised time of day: {raw!r}")


def minutes_to_hhmm(total_minutes: int) -> str:
    h, m = divmod(total_minutes, 60)
    return f"{h:02d}:{m:02d}"


def days_between(start: date, end: date) -> int:
    """Inclusive number of calendar days in [start, end]; 0 when end < start."""
    return max((end - start).days + 1, 0)


def iter_dates(start: date, end: date) -> Iterator[date]:
    d = start
    while d <= end:
        yield d
        d += timedelta(days=1)


def intersect(
    a_start: date, a_end: date, b_start: date, b_end: date
) -> Optional[Tuple[date, date]]:
    lo = max(a_start, b_start)
    hi = min(a_end, b_end)
    if hi < lo:
        return None
    return lo, hi


def end_of_day_exclusive(d: date) -> datetime:
    """Midnight following `d`; instants strictly before it belong to `d` or earlier."""
    return datetime.combine(d + timedelta(days=1), datetime.min.time())


def as_local_naive(dt: datetime, tz_name: str) -> datetime:
    """Aware datetimes are converted to `tz_name` local time; naive ones pass through."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(ZoneInfo(tz_name)).replace(tzinfo=None)
