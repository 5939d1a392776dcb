"""
Month Window Tests
==================

Calendar arithmetic shared by the store month query, the interval
reconstructor and the diary.
"""

import pytest
from hypothesis import given, strategies as st
from datetime import date, datetime, timedelta, timezone

from carelog.temporal.month_window import (
    LAST_MINUTE_OF_DAY, days_in_month, in_month, local_date, minute_of_day,
    month_range, parse_month, resolve_tz, to_millis
)

UTC = timezone.utc


def ms(*args, tz=UTC) -> int:
    return to_millis(datetime(*args, tzinfo=tz))


class TestMonthRange:

    def test_range_covers_calendar_month(self):
        """Start is midnight of the 1st, end is midnight of the next 1st."""
        start, end = month_range(date(2024, 5, 17), UTC)
        assert start == ms(2024, 5, 1)
        assert end == ms(2024, 6, 1)

    def test_december_rolls_into_next_year(self):
        start, end = month_range(date(2023, 12, 31), UTC)
        assert start == ms(2023, 12, 1)
        assert end == ms(2024, 1, 1)

    def test_end_boundary_belongs_to_next_month_only(self):
        """An event exactly at the end boundary is in the next window, never both."""
        _, end = month_range(date(2024, 2, 10), UTC)
        assert not in_month(end, date(2024, 2, 1), UTC)
        assert in_month(end, date(2024, 3, 1), UTC)

    def test_last_millisecond_stays_in_month(self):
        _, end = month_range(date(2024, 2, 10), UTC)
        assert in_month(end - 1, date(2024, 2, 1), UTC)

    def test_offset_zone_shifts_window(self):
        tokyo = resolve_tz("+09:00")
        start, _ = month_range(date(2024, 5, 1), tokyo)
        assert start == ms(2024, 4, 30, 15)

    @given(st.dates(min_value=date(1990, 1, 1), max_value=date(2090, 12, 31)))
    def test_consecutive_months_tile_without_overlap(self, day):
        """Each month's end is exactly the next month's start."""
        start, end = month_range(day, UTC)
        next_start, _ = month_range(day.replace(day=1) + timedelta(days=32), UTC)
        assert start < end
        assert end == next_start
        assert (end - start) == days_in_month(day) * 24 * 60 * 60 * 1000


class TestLocalTimeHelpers:

    def test_minute_of_day_truncates_seconds(self):
        assert minute_of_day(ms(2024, 5, 1, 7, 30, 59), UTC) == 450.0

    def test_last_minute_constant(self):
        assert LAST_MINUTE_OF_DAY == 1439
        assert minute_of_day(ms(2024, 5, 1, 23, 59), UTC) == float(LAST_MINUTE_OF_DAY)

    def test_local_date_respects_zone(self):
        ts = ms(2024, 5, 1, 20, 0)
        assert local_date(ts, UTC) == date(2024, 5, 1)
        assert local_date(ts, resolve_tz("+09:00")) == date(2024, 5, 2)

    def test_parse_month(self):
        assert parse_month("2024-05") == date(2024, 5, 1)
        assert parse_month(" 1999-12 ") == date(1999, 12, 1)

    @pytest.mark.parametrize("value", ["2024-13", "May 2024", "", "2024/05"])
    def test_parse_month_rejects_garbage(self, value):
        with pytest.raises(ValueError):
            parse_month(value)


class TestResolveTz:

    @pytest.mark.parametrize("name", [None, "", "local", "LOCAL", "system"])
    def test_local_names_resolve_to_none(self, name):
        assert resolve_tz(name) is None

    def test_utc(self):
        assert resolve_tz("UTC") is timezone.utc

    def test_fixed_offsets(self):
        assert resolve_tz("+09:00").utcoffset(None) == timedelta(hours=9)
        assert resolve_tz("-0530").utcoffset(None) == -timedelta(hours=5, minutes=30)

    def test_iana_name(self):
        try:
            tz = resolve_tz("Europe/Paris")
        except ValueError:
            pytest.skip("no IANA time zone database on this host")
        assert tz.utcoffset(datetime(2024, 1, 15)) == timedelta(hours=1)

    @pytest.mark.parametrize("name", ["+25:00", "Not/AZone"])
    def test_invalid_names_raise(self, name):
        with pytest.raises(ValueError):
            resolve_tz(name)
