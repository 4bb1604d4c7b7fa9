# tests/test_timeutils.py
import datetime

from feasibility.timeutils import (
    gap_minutes,
    hours_to_hhmm,
    in_window,
    minutes_to_hhmm,
    parse_iso,
    round_half_up,
    select_in_window,
    to_datetime,
    to_day,
    window_start,
)

UTC = datetime.timezone.utc


def test_parse_iso_offsets_and_naive():
    dt = parse_iso("2026-03-15T06:30:00Z")
    assert dt == datetime.datetime(2026, 3, 15, 6, 30, tzinfo=UTC)
    naive = parse_iso("2026-03-15T06:30:00")
    assert naive.tzinfo is not None
    assert naive == dt
    shifted = parse_iso("2026-03-15T08:30:00+02:00")
    assert shifted == dt


def test_parse_iso_unreadable_returns_none():
    assert parse_iso("not a date") is None
    assert parse_iso("") is None
    assert parse_iso(None) is None


def test_to_datetime_epoch_ms_and_garbage():
    dt = datetime.datetime(2026, 3, 15, 6, 30, tzinfo=UTC)
    ms = 1_773_556_200_000  # 2026-03-15T06:30:00Z
    assert to_datetime(ms) == dt
    assert to_datetime(True) is None
    assert to_datetime(object()) is None
    assert to_datetime(datetime.date(2026, 3, 15)) == datetime.datetime(2026, 3, 15, tzinfo=UTC)


def test_to_day_keeps_plain_label():
    # a bare label is taken literally, without shifting through a time zone
    assert to_day("2026-03-15") == datetime.date(2026, 3, 15)
    assert to_day("2026-03-15T23:30:00-05:00") == datetime.date(2026, 3, 15)
    assert to_day(datetime.datetime(2026, 3, 15, 23, 59, tzinfo=UTC)) == datetime.date(2026, 3, 15)
    assert to_day("garbage") is None


def test_seven_day_window_is_calendar_inclusive():
    ref = datetime.date(2026, 3, 15)
    assert window_start(ref, 7) == datetime.date(2026, 3, 9)
    assert in_window(datetime.date(2026, 3, 9), ref, 7)
    assert in_window(ref, ref, 7)
    assert not in_window(datetime.date(2026, 3, 8), ref, 7)
    assert not in_window(datetime.date(2026, 3, 16), ref, 7)
    assert not in_window(None, ref, 7)


def test_select_in_window_uses_key():
    ref = datetime.date(2026, 3, 28)
    items = [{"d": datetime.date(2026, 3, 1)}, {"d": datetime.date(2026, 2, 28)}, {"d": None}]
    picked = select_in_window(items, ref, 28, key=lambda i: i["d"])
    assert picked == [{"d": datetime.date(2026, 3, 1)}]


def test_gap_minutes():
    a1 = datetime.datetime(2026, 3, 15, 6, 55, tzinfo=UTC)
    b0 = datetime.datetime(2026, 3, 15, 7, 0, tzinfo=UTC)
    assert gap_minutes(a1, b0) == 5
    assert gap_minutes(b0, a1) == -5


def test_rounding_and_hhmm():
    assert round_half_up(2.5) == 3
    assert round_half_up(-2.5) == -3
    assert minutes_to_hhmm(505) == "08:25"
    assert minutes_to_hhmm(-30) == "-00:30"
    assert minutes_to_hhmm(None) is None
    assert hours_to_hhmm(13) == "13:00"
    assert hours_to_hhmm(9.5) == "09:30"
