"""Conversion between calendar dates and life-grid week coordinates.

A coordinate is ``(age_year, week_index, day_in_week)``:

* ``age_year`` is ``calendar year - birth year`` (not the age on the day),
* ``week_index`` counts 7-day blocks from **January 1st** of that calendar
  year, starting at 0,
* ``day_in_week`` is the 1-based position inside that block.

Week 0 always starts on Jan 1, so week boundaries do not line up across
years and this is not ISO-8601 week numbering.  Days 364 and 365 of a year
fall into week 52, a short tail week of one or two days.  Recurrence and
display code depend on the exact formula, so keep it as is.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import NamedTuple

from errors import InvalidCoordinate

MAX_AGE_YEARS = 90
WEEKS_PER_YEAR = 52
DAYS_PER_WEEK = 7
# Index of the short week holding the last day(s) of a calendar year.
TAIL_WEEK_INDEX = WEEKS_PER_YEAR


class WeekCoordinates(NamedTuple):
    age_year: int
    week_index: int
    day_in_week: int

    @property
    def week_key(self) -> tuple[int, int]:
        return self.age_year, self.week_index


def _as_date(value: date | datetime) -> date:
    """Reduce a datetime to its calendar date (no timezone conversion)."""
    if isinstance(value, datetime):
        return value.date()
    return value


def calendar_year_for_age(age_year: int, birth_date: date) -> int:
    """Return the calendar year that holds *age_year* of the grid."""
    return _as_date(birth_date).year + age_year


def date_to_coordinates(day: date | datetime, birth_date: date | datetime) -> WeekCoordinates:
    """Place a calendar date on the grid of someone born on *birth_date*."""
    day = _as_date(day)
    birth_date = _as_date(birth_date)
    age_year = day.year - birth_date.year
    if age_year < 0:
        raise InvalidCoordinate(
            f"{day.isoformat()} falls before birth year {birth_date.year}"
        )
    days_since_jan1 = (day - date(day.year, 1, 1)).days
    return WeekCoordinates(
        age_year=age_year,
        week_index=days_since_jan1 // DAYS_PER_WEEK,
        day_in_week=days_since_jan1 % DAYS_PER_WEEK + 1,
    )


def validate_coordinates(
    age_year: int,
    week_index: int,
    day_in_week: int | None,
    birth_date: date | None = None,
) -> None:
    """Raise ``InvalidCoordinate`` unless the triple is a valid placement.

    ``day_in_week=None`` is a floating placement and always valid.  With a
    *birth_date*, the tail week is checked against the actual length of the
    calendar year; without one, any day of the tail week is accepted.
    """
    if isinstance(age_year, bool) or not isinstance(age_year, int) or age_year < 0:
        raise InvalidCoordinate(f"age_year must be a non-negative integer, got {age_year!r}")
    if (isinstance(week_index, bool) or not isinstance(week_index, int)
            or not 0 <= week_index <= TAIL_WEEK_INDEX):
        raise InvalidCoordinate(
            f"week_index must be between 0 and {TAIL_WEEK_INDEX}, got {week_index!r}"
        )
    if day_in_week is None:
        return
    if (isinstance(day_in_week, bool) or not isinstance(day_in_week, int)
            or not 1 <= day_in_week <= DAYS_PER_WEEK):
        raise InvalidCoordinate(
            f"day_in_week must be between 1 and {DAYS_PER_WEEK}, got {day_in_week!r}"
        )
    if birth_date is not None and week_index == TAIL_WEEK_INDEX:
        year = calendar_year_for_age(age_year, birth_date)
        days_in_year = (date(year + 1, 1, 1) - date(year, 1, 1)).days
        offset = week_index * DAYS_PER_WEEK + day_in_week - 1
        if offset >= days_in_year:
            raise InvalidCoordinate(
                f"week {week_index} day {day_in_week} is past the end of {year}"
            )


def coordinates_to_date(
    age_year: int,
    week_index: int,
    day_in_week: int,
    birth_date: date | datetime,
) -> date:
    """Return the calendar date at a grid coordinate."""
    birth_date = _as_date(birth_date)
    if day_in_week is None:
        raise InvalidCoordinate("day_in_week is required to resolve a date")
    validate_coordinates(age_year, week_index, day_in_week, birth_date)
    year = calendar_year_for_age(age_year, birth_date)
    if year > date.max.year:
        raise InvalidCoordinate(f"age_year {age_year} is beyond the supported calendar")
    total_days = week_index * DAYS_PER_WEEK + (day_in_week - 1)
    return date(year, 1, 1) + timedelta(days=total_days)


def resolve_entry_date(entry, birth_date: date | datetime) -> date:
    """Return the real-world date of an entry.

    An entry without a day floats within its week; it resolves to the first
    day of that week.
    """
    day = entry.day_in_week if entry.day_in_week is not None else 1
    return coordinates_to_date(entry.age_year, entry.week_index, day, birth_date)
