"""Tests for week-coordinate conversion."""

from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from errors import InvalidCoordinate
from week_coordinates import (
    WeekCoordinates,
    calendar_year_for_age,
    coordinates_to_date,
    date_to_coordinates,
    resolve_entry_date,
    validate_coordinates,
)

BIRTH = date(2000, 1, 1)


class TestDateToCoordinates:
    def test_jan_first_is_week_zero_day_one(self):
        assert date_to_coordinates(date(2025, 1, 1), BIRTH) == WeekCoordinates(25, 0, 1)

    def test_worked_example(self):
        # Day 72 of 2025 (0-indexed) is March 14th.
        assert date_to_coordinates(date(2025, 3, 14), BIRTH) == (25, 10, 3)

    def test_age_is_calendar_year_difference(self):
        # Born late in the year: Jan 1st of the next year is already age_year 1.
        birth = date(1990, 12, 31)
        assert date_to_coordinates(date(1991, 1, 1), birth).age_year == 1

    def test_weeks_reset_on_jan_first(self):
        birth = date(1990, 6, 15)
        assert date_to_coordinates(date(2020, 1, 1), birth) == (30, 0, 1)
        assert date_to_coordinates(date(2020, 1, 8), birth) == (30, 1, 1)

    def test_last_day_of_year_lands_in_tail_week(self):
        assert date_to_coordinates(date(2025, 12, 31), BIRTH) == (25, 52, 1)
        # Leap year: Dec 30th and 31st are both in the tail week.
        assert date_to_coordinates(date(2024, 12, 30), BIRTH) == (24, 52, 1)
        assert date_to_coordinates(date(2024, 12, 31), BIRTH) == (24, 52, 2)

    def test_accepts_datetime(self):
        moment = datetime(2025, 3, 14, 23, 30, tzinfo=timezone.utc)
        assert date_to_coordinates(moment, BIRTH) == (25, 10, 3)

    def test_before_birth_year_raises(self):
        with pytest.raises(InvalidCoordinate):
            date_to_coordinates(date(1999, 12, 31), BIRTH)

    def test_week_key(self):
        assert date_to_coordinates(date(2025, 3, 14), BIRTH).week_key == (25, 10)


class TestCoordinatesToDate:
    def test_worked_example(self):
        assert coordinates_to_date(25, 10, 3, BIRTH) == date(2025, 3, 14)

    def test_uses_birth_year_only(self):
        assert coordinates_to_date(0, 0, 1, date(1985, 7, 4)) == date(1985, 1, 1)

    def test_age_ninety(self):
        assert coordinates_to_date(90, 0, 1, BIRTH) == date(2090, 1, 1)

    def test_tail_week(self):
        assert coordinates_to_date(24, 52, 2, BIRTH) == date(2024, 12, 31)

    def test_tail_week_past_year_end_raises(self):
        with pytest.raises(InvalidCoordinate, match="past the end"):
            coordinates_to_date(25, 52, 2, BIRTH)

    @pytest.mark.parametrize("age, week, day", [
        (-1, 0, 1),
        (0, -1, 1),
        (0, 53, 1),
        (0, 0, 0),
        (0, 0, 8),
    ])
    def test_out_of_range_raises(self, age, week, day):
        with pytest.raises(InvalidCoordinate):
            coordinates_to_date(age, week, day, BIRTH)

    def test_missing_day_raises(self):
        with pytest.raises(InvalidCoordinate):
            coordinates_to_date(1, 1, None, BIRTH)


class TestValidateCoordinates:
    def test_floating_day_is_valid(self):
        validate_coordinates(10, 20, None)

    def test_rejects_bool(self):
        with pytest.raises(InvalidCoordinate):
            validate_coordinates(True, 0, 1)

    def test_tail_week_without_birth_date(self):
        validate_coordinates(25, 52, 2)


class TestRoundTrip:
    @pytest.mark.parametrize("birth", [date(2000, 1, 1), date(1987, 2, 28), date(1996, 2, 29)])
    def test_coordinates_round_trip_over_grid(self, birth):
        for age_year in range(90):
            for week_index in range(52):
                for day_in_week in range(1, 8):
                    day = coordinates_to_date(age_year, week_index, day_in_week, birth)
                    assert date_to_coordinates(day, birth) == (age_year, week_index, day_in_week)

    def test_every_date_round_trips(self):
        birth = date(1995, 8, 20)
        day = date(1995, 1, 1)
        while day < date(2030, 1, 1):
            coords = date_to_coordinates(day, birth)
            assert coordinates_to_date(*coords, birth) == day
            day += timedelta(days=1)

    def test_monotonic_within_a_year(self):
        day = date(2024, 1, 1)
        previous = date_to_coordinates(day, BIRTH)
        while day < date(2024, 12, 31):
            day += timedelta(days=1)
            current = date_to_coordinates(day, BIRTH)
            assert (current.week_index, current.day_in_week) > (previous.week_index, previous.day_in_week)
            previous = current


def test_calendar_year_for_age():
    assert calendar_year_for_age(33, date(1990, 5, 1)) == 2023


def test_resolve_entry_date_defaults_floating_day_to_first():
    entry = SimpleNamespace(age_year=25, week_index=10, day_in_week=None)
    assert resolve_entry_date(entry, BIRTH) == date(2025, 3, 12)
