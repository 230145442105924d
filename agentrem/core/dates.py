"""
Date helpers — relative/ISO parsing, formatting, recurrence arithmetic.

All timestamps are naive local time, stored as "YYYY-MM-DDTHH:MM:SS" so
they sort and compare correctly as plain strings.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Optional, Union

from .errors import ValidationError
from .models import RECUR_UNITS, RecurRule

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S"

_RELATIVE_RE = re.compile(r"^\+?(\d+)([mhdw])$", re.IGNORECASE)
_RECUR_RE = re.compile(r"^(\d+)([dwm])$")

_INPUT_FORMATS = [
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
]

_UNIT_DELTAS = {
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}

# Month is a fixed 30 days, not calendar-aware.
_RECUR_DAYS = {"d": 1, "w": 7, "m": 30}


def dt_to_iso(dt: datetime) -> str:
    return dt.strftime(ISO_FORMAT)


def now_iso() -> str:
    return dt_to_iso(datetime.now())


def parse_iso(s: str) -> datetime:
    return datetime.fromisoformat(s)


def parse_duration(s: str) -> timedelta:
    """Parse "30m", "2h", "1d", "1w" (optionally prefixed with "+")."""
    m = _RELATIVE_RE.match(s.strip())
    if not m:
        raise ValidationError(f"Cannot parse duration: '{s}'. Use a form like 30m, 2h, 1d, 1w")
    return int(m.group(1)) * _UNIT_DELTAS[m.group(2).lower()]


def parse_date(value: Union[str, datetime], *, now: Optional[datetime] = None) -> datetime:
    """
    Parse a due/decay date.

    Accepts a datetime, a relative offset ("+2h", "+1d", "+1w", "+30m"),
    "today" (23:59), "tomorrow" (09:00) or an ISO date/datetime.
    """
    if isinstance(value, datetime):
        return value.replace(microsecond=0)

    s = value.strip()
    now = (now or datetime.now()).replace(microsecond=0)

    if s.startswith("+"):
        return now + parse_duration(s)

    sl = s.lower()
    if sl == "today":
        return now.replace(hour=23, minute=59, second=0)
    if sl == "tomorrow":
        return (now + timedelta(days=1)).replace(hour=9, minute=0, second=0)

    for fmt in _INPUT_FORMATS:
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            continue

    raise ValidationError(f"Cannot parse date: '{s}'")


def truncate(s: Optional[str], max_len: int) -> str:
    if not s or max_len <= 0:
        return ""
    if len(s) <= max_len:
        return s
    return s[: max_len - 1] + "…"


def parse_recur(rule: str) -> RecurRule:
    """Parse "1d", "2w", "1m" into a RecurRule."""
    m = _RECUR_RE.match(rule.strip().lower())
    if not m:
        raise ValidationError(
            f"Invalid recurrence pattern: '{rule}'. Use format like 1d, 2w, 1m"
        )
    return RecurRule(interval=int(m.group(1)), unit=m.group(2))


def next_recurrence(
    trigger_at: Optional[str],
    rule: RecurRule,
    *,
    now: Optional[datetime] = None,
) -> datetime:
    """Previous due time (or now) advanced by interval x unit."""
    base = parse_iso(trigger_at) if trigger_at else (now or datetime.now()).replace(microsecond=0)
    unit = rule.unit if rule.unit in RECUR_UNITS else "d"
    interval = rule.interval or 1
    return base + timedelta(days=interval * _RECUR_DAYS[unit])


def format_relative(s: Optional[str], *, now: Optional[datetime] = None) -> str:
    """Human-friendly offset from now: "in 3h", "2d ago"."""
    if not s:
        return ""
    try:
        dt = parse_iso(s)
    except ValueError:
        return s
    now = now or datetime.now()
    diff = (now - dt).total_seconds()
    seconds = abs(diff)
    if seconds < 60:
        label = "<1m"
    elif seconds < 3600:
        label = f"{int(seconds // 60)}m"
    elif seconds < 86400:
        label = f"{round(seconds / 3600)}h"
    else:
        label = f"{int(seconds // 86400)}d"
    return f"in {label}" if diff < 0 else f"{label} ago"
