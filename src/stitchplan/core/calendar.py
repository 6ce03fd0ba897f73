from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta

from stitchplan.core.constants import WORKING_HOURS_END, WORKING_HOURS_START
from stitchplan.core.models import parse_week, week_label

__all__ = [
    "add_business_days",
    "calculate_end_datetime",
    "calculate_start_datetime",
    "is_working_day",
    "next_working_moment",
    "parse_week",
    "sub_business_days",
    "week_label",
]

_SUNDAY = 6


def is_working_day(d: date) -> bool:
    return d.weekday() != _SUNDAY


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time(WORKING_HOURS_START))


def _day_end(d: date) -> datetime:
    return datetime.combine(d, time(WORKING_HOURS_END))


def next_working_moment(dt: datetime) -> datetime:
    """First instant at or after `dt` inside working hours."""
    if dt >= _day_end(dt.date()):
        dt = _day_start(dt.date() + timedelta(days=1))
    elif dt < _day_start(dt.date()):
        dt = _day_start(dt.date())
    while not is_working_day(dt.date()):
        dt = _day_start(dt.date() + timedelta(days=1))
    return dt


def _prev_working_moment(dt: datetime) -> datetime:
    if dt <= _day_start(dt.date()):
        dt = _day_end(dt.date() - timedelta(days=1))
    elif dt > _day_end(dt.date()):
        dt = _day_end(dt.date())
    while not is_working_day(dt.date()):
        dt = _day_end(dt.date() - timedelta(days=1))
    return dt


def calculate_end_datetime(start: datetime, minutes: float) -> datetime:
    """Consume `minutes` of working time from `start`.

    Starts outside working hours roll to the next working moment. Sundays
    are skipped. A zero duration returns the normalized start.
    """
    if minutes is None or math.isinf(minutes):
        raise ValueError("cannot place an infeasible duration on the calendar")
    if minutes < 0:
        raise ValueError("minutes must be >= 0")

    current = next_working_moment(start)
    remaining = float(minutes)
    while remaining > 0:
        available = (_day_end(current.date()) - current).total_seconds() / 60.0
        if remaining <= available:
            return current + timedelta(minutes=remaining)
        remaining -= available
        current = next_working_moment(_day_end(current.date()))
    return current


def calculate_start_datetime(end: datetime, minutes: float) -> datetime:
    """Walk backward from `end` by `minutes` of working time."""
    if minutes is None or math.isinf(minutes):
        raise ValueError("cannot place an infeasible duration on the calendar")
    if minutes < 0:
        raise ValueError("minutes must be >= 0")

    current = _prev_working_moment(end) if minutes > 0 else end
    remaining = float(minutes)
    while remaining > 0:
        available = (current - _day_start(current.date())).total_seconds() / 60.0
        if remaining <= available:
            return current - timedelta(minutes=remaining)
        remaining -= available
        current = _prev_working_moment(_day_start(current.date()))
    return current


def add_business_days(d: date, days: float) -> date:
    """Advance `d` by whole working days (fractions round up), skipping Sundays."""
    if days < 0:
        return sub_business_days(d, -days)
    remaining = int(math.ceil(days))
    current = d
    while remaining > 0:
        current += timedelta(days=1)
        if is_working_day(current):
            remaining -= 1
    return current


def sub_business_days(d: date, days: float) -> date:
    if days < 0:
        return add_business_days(d, -days)
    remaining = int(math.ceil(days))
    current = d
    while remaining > 0:
        current -= timedelta(days=1)
        if is_working_day(current):
            remaining -= 1
    return current
