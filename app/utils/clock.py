# utils/clock.py
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from flask import current_app


def scheduler_zone():
    return ZoneInfo(current_app.config.get('SCHEDULER_TIMEZONE', 'Asia/Kolkata'))


def local_now():
    """Current wall-clock time in the scheduler zone, as a naive datetime."""
    return datetime.now(scheduler_zone()).replace(tzinfo=None)


def to_local_naive(value):
    """Convert an aware datetime to naive scheduler-zone time; naive values are assumed local."""
    if value.tzinfo is None:
        return value
    return value.astimezone(scheduler_zone()).replace(tzinfo=None)


def from_epoch(value):
    """Epoch seconds or milliseconds to naive scheduler-zone time."""
    value = float(value)
    if value > 1e12:
        value = value / 1000.0
    return to_local_naive(datetime.fromtimestamp(value, tz=timezone.utc))


def minute_of_day(moment):
    return moment.hour * 60 + moment.minute
