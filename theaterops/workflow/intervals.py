"""Half-open interval helpers for theater slots and doctor schedule blocks."""
from __future__ import annotations

import datetime as _dt
import re
from typing import Iterator, Optional, TypeVar

T = TypeVar("T")

_HHMM_RE = re.compile(r"^([0-1][0-9]|2[0-3]):[0-5][0-9]$")


def overlaps(start: T, end: T, other_start: T, other_end: T) -> bool:
    """True when [start, end) and [other_start, other_end) share any instant."""
    return start < other_end and end > other_start  # type: ignore[operator]


def dates_overlap(
    start: _dt.date,
    end: _dt.date,
    other_start: _dt.date,
    other_end: _dt.date,
) -> bool:
    """Inclusive date-range intersection (block date ranges include both ends)."""
    return start <= other_end and end >= other_start


def iter_days(start: _dt.date, end: _dt.date) -> Iterator[_dt.date]:
    day = start
    while day <= end:
        yield day
        day += _dt.timedelta(days=1)


def is_hhmm(value: Optional[str]) -> bool:
    return bool(value) and bool(_HHMM_RE.match(value))  # type: ignore[arg-type]


def parse_hhmm(value: str) -> _dt.time:
    """Strict 24h ``HH:MM``; raises ValueError otherwise."""
    if not is_hhmm(value):
        raise ValueError(f"invalid time {value!r}, expected HH:MM")
    hours, minutes = value.split(":")
    return _dt.time(int(hours), int(minutes))


def minute_of_day(value: _dt.time) -> int:
    return value.hour * 60 + value.minute


def to_utc(value: _dt.datetime) -> _dt.datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=_dt.timezone.utc)
    return value.astimezone(_dt.timezone.utc)


def utcnow() -> _dt.datetime:
    return _dt.datetime.now(_dt.timezone.utc)
