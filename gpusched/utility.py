"""Time parsing and formatting helpers."""

from __future__ import annotations

import re
from datetime import datetime, timedelta

_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
_TIME_PREFIX = re.compile(r"\s*(\d{4}-\d{1,2}-\d{1,2} \d{1,2}:\d{1,2}:\d{1,2})")


def parse_time_string(text: str) -> datetime:
    """Parse a 'YYYY-MM-DD HH:MM:SS' prefix into a naive local datetime."""
    match = _TIME_PREFIX.match(text)
    if match is None:
        raise ValueError(f"invalid time string: {text!r}")
    return datetime.strptime(match.group(1), _TIME_FORMAT)


def time_after(start: datetime | str, minutes: int) -> datetime:
    """Return the moment a number of minutes after start."""
    if isinstance(start, str):
        start = parse_time_string(start)
    return start + timedelta(minutes=minutes)


def format_timestamp(moment: datetime) -> str:
    """Format a moment as local time followed by a '+00:00' suffix."""
    return moment.strftime(_TIME_FORMAT) + "+00:00"


def format_duration(seconds: int | float | timedelta) -> str:
    """Format whole seconds as HH:MM:SS."""
    if isinstance(seconds, timedelta):
        seconds = seconds.total_seconds()
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def elapsed_time(start: datetime) -> str:
    """Return the wall-clock time since start as HH:MM:SS."""
    return format_duration(datetime.now() - start)


def double_to_string(value: float) -> str:
    """Format a number with no decimal places."""
    return f"{value:.0f}"


def format_day_time(minutes: int) -> str:
    """Format a count of minutes as 'DD Day(s) HH:MM'."""
    days, rest = divmod(minutes, 1440)
    hours, mins = divmod(rest, 60)
    return f"{days:02d} Day(s) {hours:02d}:{mins:02d}"