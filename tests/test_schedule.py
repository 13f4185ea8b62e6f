import pytest

from app.utils.schedule import (
    ClassInterval,
    intervals_for_day,
    open_intervals,
    parse_minute_of_day,
    trigger_minute,
)


def test_object_and_list_shapes_are_equivalent():
    single = {"monday": {"start": "09:00", "end": "10:00"}}
    listed = {"monday": [{"start": "09:00", "end": "10:00"}]}

    assert intervals_for_day(single, "monday") == [ClassInterval(540, 600)]
    assert intervals_for_day(listed, "monday") == [ClassInterval(540, 600)]


def test_day_match_is_case_insensitive():
    schedule = {"MonDay": {"start": "09:00", "end": "10:00"}}
    assert intervals_for_day(schedule, "Monday") == [(540, 600)]
    assert intervals_for_day(schedule, "monday") == [(540, 600)]


def test_no_entry_for_day():
    assert intervals_for_day({"tuesday": {"start": "09:00", "end": "10:00"}}, "monday") == []
    assert intervals_for_day({}, "monday") == []
    assert intervals_for_day(None, "monday") == []


def test_list_skips_incomplete_and_malformed_entries():
    schedule = {
        "friday": [
            {"start": "14:00", "end": "15:30"},
            {"start": "08:00"},
            {"start": "9am", "end": "10am"},
            {"start": "25:00", "end": "26:00"},
            {"start": "11:00", "end": "10:00"},
            {"start": "08:30", "end": "09:15"},
        ]
    }
    assert intervals_for_day(schedule, "friday") == [(510, 555), (840, 930)]


def test_single_object_missing_end_is_empty():
    assert intervals_for_day({"monday": {"start": "09:00"}}, "monday") == []


def test_parse_minute_of_day():
    assert parse_minute_of_day("00:00") == 0
    assert parse_minute_of_day("9:05") == 545
    assert parse_minute_of_day("23:59") == 1439
    assert parse_minute_of_day("24:00") is None
    assert parse_minute_of_day("12:60") is None
    assert parse_minute_of_day("noon") is None
    assert parse_minute_of_day(900) is None


def test_midpoint_trigger():
    assert trigger_minute(ClassInterval(540, 600)) == 570
    assert trigger_minute(ClassInterval(540, 601), "midpoint") == 570


def test_alternative_policies():
    interval = ClassInterval(540, 600)
    assert trigger_minute(interval, "start") == 540
    assert trigger_minute(interval, "end") == 600

    with pytest.raises(ValueError):
        trigger_minute(interval, "whenever")


def test_ended_intervals_are_excluded():
    intervals = [ClassInterval(540, 600), ClassInterval(660, 720)]

    assert open_intervals(intervals, 600) == intervals
    assert open_intervals(intervals, 601) == [ClassInterval(660, 720)]
    assert open_intervals(intervals, 721) == []
