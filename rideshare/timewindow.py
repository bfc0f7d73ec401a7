# rideshare/timewindow.py
from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import NamedTuple


class TimeWindow(NamedTuple):
    earliest: datetime
    latest: datetime

    def contains(self, moment: datetime) -> bool:
        return self.earliest <= to_utc(moment) <= self.latest


def to_utc(moment: datetime) -> datetime:
    # naive values are taken as UTC; sqlite hands stored timestamps back without tzinfo
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def time_window(requested: datetime, flexibility_minutes: float) -> TimeWindow:
    """Inclusive [requested - flexibility, requested + flexibility], in aware UTC."""
    center = to_utc(requested)
    delta = timedelta(minutes=flexibility_minutes)
    return TimeWindow(center - delta, center + delta)


def minutes_between(a: datetime, b: datetime) -> float:
    return abs((to_utc(a) - to_utc(b)).total_seconds()) / 60.0
