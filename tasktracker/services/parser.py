"""Service for turning the free-text ``time`` field into a TimeWindow."""

from __future__ import annotations

import re

import dateparser

from tasktracker.domain.models import TimeOfDay, TimeWindow

# Splits "9:00 AM - 12:00 PM", "9:00 AM to 12 PM", "9-11 am".
_RANGE_SPLIT = re.compile(r"\s*(?:-|–|—|\bto\b|\buntil\b)\s*", re.IGNORECASE)
_CLOCK = re.compile(
    r"^(?P<hour>\d{1,2})(?::(?P<minute>\d{2}))?\s*(?P<period>[ap]\.?m\.?)?$",
    re.IGNORECASE,
)

_SETTINGS = {
    "RETURN_AS_TIMEZONE_AWARE": False,
    "PREFER_DATES_FROM": "current_period",
}

_OTHER_PERIOD = {"AM": "PM", "PM": "AM"}


def _period_of(part: str) -> str | None:
    m = _CLOCK.match(part)
    if m is None or not m.group("period"):
        return None
    return m.group("period").replace(".", "").upper()


def _parse_clock(raw: str, period: str | None = None) -> TimeOfDay | None:
    """Parse a single clock reading with ``dateparser``.

    *period* is appended when *raw* carries no AM/PM of its own.
    """
    m = _CLOCK.match(raw)
    if m is None:
        # Durations ("2 hours") and prose are not clock readings.
        return None
    if m.group("period") is None:
        if period is None:
            if m.group("minute") is None:
                # A bare "9" reads as a day of the month.
                return None
        else:
            raw = f"{raw} {period}"
    result = dateparser.parse(raw, languages=["en"], settings=_SETTINGS)
    if result is None:
        return None
    return TimeOfDay.from_24h(result.hour, result.minute)


def parse_time_range(text: str | None) -> TimeWindow:
    """Parse a human time range into a TimeWindow.

    Anything that is not a recognisable ``start - finish`` pair of clock
    readings yields an empty window, which never conflicts. A period given
    on one end only ("9:00 - 11:00 AM") is applied to the other end too,
    unless that would put the finish at or before the start
    ("11:30 - 1:00 PM" is 11:30 AM to 1:00 PM).
    """
    if not text:
        return TimeWindow()

    parts = [p.strip() for p in _RANGE_SPLIT.split(text.strip()) if p.strip()]
    if len(parts) != 2:
        return TimeWindow()

    raw_start, raw_finish = parts
    start_period, finish_period = _period_of(raw_start), _period_of(raw_finish)

    start = _parse_clock(raw_start, start_period or finish_period)
    finish = _parse_clock(raw_finish, finish_period or start_period)
    if start is None or finish is None:
        return TimeWindow()

    if start.to_minutes() >= finish.to_minutes():
        if start_period is None and finish_period is not None:
            start = _parse_clock(raw_start, _OTHER_PERIOD[finish_period])
        elif finish_period is None and start_period is not None:
            finish = _parse_clock(raw_finish, _OTHER_PERIOD[start_period])
    return TimeWindow(start=start, finish=finish)
