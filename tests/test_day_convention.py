"""Tests for the weekday convention bridge."""

from datetime import date

import pytest

from tourdesk.calendar.day_convention import (
    UI_DAY_NAMES,
    to_api_day,
    to_api_days,
    to_ui_day,
    to_ui_days,
    ui_weekday,
)


class TestSingleDay:
    @pytest.mark.parametrize("day", range(7))
    def test_round_trips(self, day):
        assert to_api_day(to_ui_day(day)) == day
        assert to_ui_day(to_api_day(day)) == day

    def test_monday(self):
        assert to_ui_day(0) == 1
        assert to_api_day(1) == 0

    def test_sunday(self):
        assert to_ui_day(6) == 0
        assert to_api_day(0) == 6

    @pytest.mark.parametrize("bad", [-1, 7, True, 2.0, "1"])
    def test_rejects_out_of_range(self, bad):
        with pytest.raises(ValueError):
            to_ui_day(bad)
        with pytest.raises(ValueError):
            to_api_day(bad)


class TestDaySets:
    def test_weekdays(self):
        assert to_ui_days([0, 1, 2, 3, 4]) == [1, 2, 3, 4, 5]
        assert to_api_days([1, 2, 3, 4, 5]) == [0, 1, 2, 3, 4]

    def test_duplicates_collapsed(self):
        assert to_ui_days([6, 6, 0]) == [0, 1]


class TestCalendarDates:
    def test_ui_weekday(self):
        assert ui_weekday(date(2025, 4, 6)) == 0
        assert UI_DAY_NAMES[ui_weekday(date(2025, 4, 9))] == "Wed"
        assert ui_weekday(date(2025, 4, 12)) == 6
