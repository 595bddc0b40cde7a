"""
Menu item schedule evaluation
Decides whether an item's day/time/date-range schedule allows it at a given instant
"""
import re
from datetime import date, datetime, time, timedelta
from typing import NamedTuple, Optional

REASON_NOT_TODAY = "not available today"
REASON_NOT_YET = "not yet available"
REASON_EXPIRED = "expired"
REASON_OUTSIDE_HOURS = "outside hours"
REASON_UNSUPPORTED_RANGE = "unsupported time range"

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Day indices follow the browser clients: 0 = Sunday ... 6 = Saturday
DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


class Availability(NamedTuple):
    is_available: bool
    reason: Optional[str] = None
    next_available: Optional[datetime] = None

    def to_dict(self):
        return {
            "isAvailable": self.is_available,
            "reason": self.reason,
            "nextAvailable": self.next_available.isoformat() if self.next_available else None,
        }


class _Constraints(NamedTuple):
    days: frozenset
    time_range: Optional[tuple]
    date_range: Optional[tuple]


def weekday_index(day: date) -> int:
    """Weekday of a date with Sunday as 0"""
    return (day.weekday() + 1) % 7


def parse_time(value) -> Optional[time]:
    """Parse an HH:MM string, returning None for anything else"""
    if not isinstance(value, str):
        return None
    match = _TIME_RE.match(value.strip())
    if not match:
        return None
    return time(int(match.group(1)), int(match.group(2)))


def parse_date(value) -> Optional[date]:
    """Parse a YYYY-MM-DD string, returning None for anything else"""
    if not isinstance(value, str) or not _DATE_RE.match(value.strip()):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def _parse_day(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, int) and 0 <= value <= 6:
        return value
    return None


def _parse_days(raw) -> frozenset:
    if not isinstance(raw, (list, tuple, set, frozenset)):
        return frozenset()
    days = (_parse_day(d) for d in raw)
    return frozenset(d for d in days if d is not None)


def _parse_time_range(raw) -> Optional[tuple]:
    if not isinstance(raw, dict):
        return None
    start = parse_time(raw.get("start"))
    end = parse_time(raw.get("end"))
    if start is None or end is None:
        return None
    return start, end


def _parse_date_range(raw) -> Optional[tuple]:
    if not isinstance(raw, dict):
        return None
    start = parse_date(raw.get("start"))
    end = parse_date(raw.get("end"))
    if start is None and end is None:
        return None
    return start, end


def _constraints(schedule: dict) -> _Constraints:
    return _Constraints(
        days=_parse_days(schedule.get("days")),
        time_range=_parse_time_range(schedule.get("timeRange")),
        date_range=_parse_date_range(schedule.get("dateRange")),
    )


def _next_window_start(c: _Constraints, now: datetime) -> Optional[datetime]:
    """Earliest instant after now where the day and date constraints hold,
    at the window start (or midnight without a time range)"""
    window_start = c.time_range[0] if c.time_range else time(0, 0)
    range_start, range_end = c.date_range if c.date_range else (None, None)

    first_day = now.date()
    if range_start and range_start > first_day:
        first_day = range_start

    # Today plus a full week reaches every weekday at least once
    for offset in range(8):
        day = first_day + timedelta(days=offset)
        if range_end and day > range_end:
            return None
        if c.days and weekday_index(day) not in c.days:
            continue
        candidate = datetime.combine(day, window_start, tzinfo=now.tzinfo)
        if candidate > now:
            return candidate
    return None


def evaluate(schedule, now: datetime) -> Availability:
    """
    Evaluate a schedule at an instant.

    Checks run day -> date range -> time of day; the first failing check
    decides the reported reason and the projected next available instant.
    Malformed parts of a schedule leave that axis unconstrained. Time of day
    is compared at minute resolution, so both window bounds are inclusive
    for the whole minute.
    """
    if not schedule or not isinstance(schedule, dict):
        return Availability(True)

    c = _constraints(schedule)
    if c.time_range and c.time_range[1] < c.time_range[0]:
        # Windows crossing midnight are not supported
        return Availability(False, REASON_UNSUPPORTED_RANGE)

    today = now.date()

    if c.days and weekday_index(today) not in c.days:
        return Availability(False, REASON_NOT_TODAY, _next_window_start(c, now))

    if c.date_range:
        range_start, range_end = c.date_range
        if range_start and today < range_start:
            return Availability(False, REASON_NOT_YET, _next_window_start(c, now))
        if range_end and today > range_end:
            return Availability(False, REASON_EXPIRED)

    if c.time_range:
        start, end = c.time_range
        current = time(now.hour, now.minute)
        if not start <= current <= end:
            return Availability(False, REASON_OUTSIDE_HOURS, _next_window_start(c, now))

    return Availability(True)


def validate_schedule(schedule) -> Optional[str]:
    """Return an error message for a schedule that should not be stored, else None"""
    if schedule is None:
        return None
    if not isinstance(schedule, dict):
        return "Schedule must be an object"

    days = schedule.get("days")
    if days is not None:
        if not isinstance(days, list) or any(_parse_day(d) is None for d in days):
            return "Schedule days must be a list of weekday numbers 0-6"

    time_range = schedule.get("timeRange")
    if time_range is not None:
        if not isinstance(time_range, dict):
            return "Schedule time range must be an object"
        start = parse_time(time_range.get("start"))
        end = parse_time(time_range.get("end"))
        if start is None or end is None:
            return "Schedule time range needs start and end in HH:MM format"
        if end < start:
            return "Schedule time ranges crossing midnight are not supported"

    date_range = schedule.get("dateRange")
    if date_range is not None:
        if not isinstance(date_range, dict):
            return "Schedule date range must be an object"
        raw_start, raw_end = date_range.get("start"), date_range.get("end")
        start, end = parse_date(raw_start), parse_date(raw_end)
        if (raw_start and start is None) or (raw_end and end is None):
            return "Schedule dates must be in YYYY-MM-DD format"
        if start is None and end is None:
            return "Schedule date range needs a start or an end date"
        if start and end and end < start:
            return "Schedule date range ends before it starts"

    return None


def normalize_schedule(schedule) -> Optional[dict]:
    """Canonical stored form of a valid schedule, or None when it constrains nothing"""
    if not isinstance(schedule, dict):
        return None
    result = {}

    days = _parse_days(schedule.get("days"))
    if days:
        result["days"] = sorted(days)

    time_range = _parse_time_range(schedule.get("timeRange"))
    if time_range:
        result["timeRange"] = {
            "start": time_range[0].strftime("%H:%M"),
            "end": time_range[1].strftime("%H:%M"),
        }

    date_range = _parse_date_range(schedule.get("dateRange"))
    if date_range:
        result["dateRange"] = {}
        if date_range[0]:
            result["dateRange"]["start"] = date_range[0].isoformat()
        if date_range[1]:
            result["dateRange"]["end"] = date_range[1].isoformat()

    return result or None


def describe(schedule) -> str:
    """Short human readable summary, e.g. 'Monday, Friday 09:00-17:00'"""
    if not isinstance(schedule, dict):
        return "Always"
    c = _constraints(schedule)
    parts = []
    if c.days:
        parts.append(", ".join(DAY_NAMES[d] for d in sorted(c.days)))
    if c.time_range:
        parts.append(f"{c.time_range[0].strftime('%H:%M')}-{c.time_range[1].strftime('%H:%M')}")
    if c.date_range:
        start, end = c.date_range
        if start and end:
            parts.append(f"{start.isoformat()} to {end.isoformat()}")
        elif start:
            parts.append(f"from {start.isoformat()}")
        else:
            parts.append(f"until {end.isoformat()}")
    return " ".join(parts) if parts else "Always"
