# utils/schedule.py
"""
Weekly schedule normalization.

A subject's schedule maps day names (any case) to either a single
{"start": "HH:MM", "end": "HH:MM"} object or a list of such objects.
Everything here works in minutes since local midnight.
"""

import logging
import re
from collections import namedtuple

logger = logging.getLogger('schedule')

TIME_PATTERN = re.compile(r'^\s*(\d{1,2}):(\d{2})\s*$')


class ClassInterval(namedtuple('ClassInterval', ['start', 'end'])):
    """A class period as [start, end] minute-of-day."""

    __slots__ = ()

    def has_ended(self, now_minute):
        return now_minute > self.end

    def is_running(self, now_minute):
        return self.start <= now_minute <= self.end

    def midpoint(self):
        return (self.start + self.end) // 2


def _midpoint_policy(interval):
    return interval.midpoint()


def _start_policy(interval):
    return interval.start


def _end_policy(interval):
    return interval.end


TRIGGER_POLICIES = {
    'midpoint': _midpoint_policy,
    'start': _start_policy,
    'end': _end_policy,
}


def parse_minute_of_day(value):
    """
    Parse an 'HH:MM' string into minutes since midnight.

    Returns:
        int or None: None when the value is not a valid 24-hour time
    """
    if not isinstance(value, str):
        return None

    match = TIME_PATTERN.match(value)
    if not match:
        return None

    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None

    return hours * 60 + minutes


def format_minute_of_day(minute):
    return f"{minute // 60:02d}:{minute % 60:02d}"


def _find_day_entry(schedule, day_name):
    target = day_name.strip().lower()
    for key, entry in schedule.items():
        if isinstance(key, str) and key.strip().lower() == target:
            return entry
    return None


def _to_interval(entry):
    if not isinstance(entry, dict):
        return None

    start = parse_minute_of_day(entry.get('start'))
    end = parse_minute_of_day(entry.get('end'))
    if start is None or end is None:
        logger.debug(f"Skipping schedule entry with missing or malformed times: {entry}")
        return None

    if end <= start:
        logger.debug(f"Skipping schedule entry that ends before it starts: {entry}")
        return None

    return ClassInterval(start, end)


def intervals_for_day(schedule, day_name):
    """
    Normalize the schedule entry for one day into ordered class intervals.

    Args:
        schedule: Raw weekly schedule mapping
        day_name: Day to look up, matched case-insensitively

    Returns:
        list: ClassInterval items ordered by start; empty when there is no usable entry
    """
    if not isinstance(schedule, dict) or not day_name:
        return []

    entry = _find_day_entry(schedule, day_name)
    if entry is None:
        return []

    entries = entry if isinstance(entry, list) else [entry]
    intervals = [interval for interval in map(_to_interval, entries) if interval is not None]

    return sorted(intervals)


def open_intervals(intervals, now_minute):
    """Intervals that have not fully ended at now_minute."""
    return [interval for interval in intervals if not interval.has_ended(now_minute)]


def trigger_minute(interval, policy='midpoint'):
    """
    Minute of day at which the location check for an interval should fire.

    Raises:
        ValueError: Unknown policy name
    """
    try:
        return TRIGGER_POLICIES[policy](interval)
    except KeyError:
        raise ValueError(f"Unknown trigger policy: {policy}. "
                         f"Valid options are: {', '.join(sorted(TRIGGER_POLICIES))}")
