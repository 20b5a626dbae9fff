"""Generation of future goal instances from a recurring template memory.

This module is pure: it computes the instances to create and leaves
persistence to the caller (``EntryStore``), so that a failed write leaves
the index consistent with whatever was actually committed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Callable, Iterator

import pendulum

from entry import Entry, EntryType, LeadTimeUnit, RecurringFrequency, new_entry_id
from entry_index import EntryIndex
from errors import InvalidCoordinate, RecurrenceNotConfigured, TemplateDateUnresolvable
from week_coordinates import MAX_AGE_YEARS, date_to_coordinates, resolve_entry_date

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DuplicateInstanceSkipped:
    """An occurrence that already had a matching goal in its week box."""

    occurrence: date
    week_key: tuple[int, int]
    existing_id: str


@dataclass
class GenerationResult:
    template_id: str
    instances: list[Entry] = field(default_factory=list)
    duplicates: list[DuplicateInstanceSkipped] = field(default_factory=list)
    # Feb 29 anchors have no occurrence in common years.
    skipped_leap_years: list[int] = field(default_factory=list)

    @property
    def skipped_count(self) -> int:
        return len(self.duplicates)


def _plain(value: date) -> date:
    """Drop any pendulum subclass so stored values are ``datetime.date``."""
    return date(value.year, value.month, value.day)


def _yearly_occurrences(anchor: date, end_date: date, skipped: list[int] | None) -> Iterator[date]:
    year = anchor.year
    while True:
        year += 1
        if year > end_date.year:
            return
        try:
            candidate = date(year, anchor.month, anchor.day)
        except ValueError:
            # Feb 29 anchor in a common year: skip the year rather than
            # shifting to Feb 28 or Mar 1.
            if skipped is not None:
                skipped.append(year)
            continue
        if candidate > end_date:
            return
        yield candidate


_INTERVALS = {
    RecurringFrequency.WEEKLY: {"weeks": 1},
    RecurringFrequency.BIWEEKLY: {"weeks": 2},
    RecurringFrequency.MONTHLY: {"months": 1},
}


def occurrence_dates(
    anchor: date,
    frequency: RecurringFrequency,
    end_date: date,
    skipped_leap_years: list[int] | None = None,
) -> Iterator[date]:
    """Yield the occurrences after *anchor*, up to and including *end_date*.

    Yearly occurrences reuse the anchor's month and day every year instead
    of adding 365/366 days.  Other frequencies step by their calendar
    interval from the previous occurrence.
    """
    if frequency == RecurringFrequency.YEARLY:
        yield from _yearly_occurrences(anchor, end_date, skipped_leap_years)
        return

    interval = _INTERVALS[frequency]
    current = pendulum.date(anchor.year, anchor.month, anchor.day)
    while True:
        current = current.add(**interval)
        if current > end_date:
            return
        yield _plain(current)


def reminder_date_for(occurrence: date, lead_time: int, unit: LeadTimeUnit) -> date:
    """Return the day a reminder fires, *lead_time* units before *occurrence*."""
    day = pendulum.date(occurrence.year, occurrence.month, occurrence.day)
    if unit == LeadTimeUnit.DAYS:
        day = day.subtract(days=lead_time)
    elif unit == LeadTimeUnit.WEEKS:
        day = day.subtract(days=7 * lead_time)
    else:
        day = day.subtract(months=lead_time)
    return _plain(day)


def has_elapsed(day: date, now: datetime) -> bool:
    """Whether *day* has started before *now*."""
    return datetime.combine(day, time.min, tzinfo=now.tzinfo) < now


def _check_template(template: Entry) -> None:
    if not template.is_memory:
        raise RecurrenceNotConfigured(
            f"Entry {template.id} is a {template.entry_type.value}, only memories recur"
        )
    if not template.is_recurring:
        raise RecurrenceNotConfigured(f"Memory {template.id} is not marked recurring")
    if template.frequency is None or template.recurring_end_date is None:
        raise RecurrenceNotConfigured(
            f"Memory {template.id} needs a frequency and an end date to recur"
        )


def build_instance(
    template: Entry,
    occurrence: date,
    birth_date: date,
    now: datetime,
    entry_id: str | None = None,
) -> Entry:
    """Build the goal instance of *template* for *occurrence*."""
    coords = date_to_coordinates(occurrence, birth_date)
    reminder = None
    if template.notification_lead_time is not None and template.lead_time_unit is not None:
        reminder = reminder_date_for(
            occurrence, template.notification_lead_time, template.lead_time_unit,
        )
    return Entry(
        id=entry_id or new_entry_id(),
        user_id=template.user_id,
        age_year=coords.age_year,
        week_index=coords.week_index,
        day_in_week=coords.day_in_week,
        entry_type=EntryType.GOAL,
        created_at=now,
        updated_at=now,
        reminder_date=reminder,
        reminder_enabled=reminder is not None,
        is_recurring=False,
        parent_memory_id=template.id,
        **template.payload(),
    )


def generate_instances(
    template: Entry,
    birth_date: date,
    index: EntryIndex,
    now: datetime,
    id_factory: Callable[[], str] = new_entry_id,
) -> GenerationResult:
    """Compute the future goal instances of a recurring template memory.

    Occurrences that already elapsed are stepped over, generation stops at
    the template's end date or at the edge of the grid, and occurrences
    whose week box already holds a goal with the template's title are
    reported as duplicates instead of being generated again.

    Raises ``RecurrenceNotConfigured`` for a template without recurrence
    settings and ``TemplateDateUnresolvable`` when its coordinates are
    corrupt.
    """
    _check_template(template)
    try:
        anchor = resolve_entry_date(template, birth_date)
    except (InvalidCoordinate, OverflowError) as exc:
        raise TemplateDateUnresolvable(template.id, str(exc)) from exc

    result = GenerationResult(template_id=template.id)
    seen: set[tuple[int, int]] = set()
    for occurrence in occurrence_dates(
        anchor, template.frequency, template.recurring_end_date, result.skipped_leap_years,
    ):
        coords = date_to_coordinates(occurrence, birth_date)
        if coords.age_year >= MAX_AGE_YEARS:
            break
        if has_elapsed(occurrence, now):
            continue

        existing = index.find_goal(coords.week_key, template.title)
        if existing is not None:
            result.duplicates.append(
                DuplicateInstanceSkipped(occurrence, coords.week_key, existing.id)
            )
            continue
        if coords.week_key in seen:
            continue
        seen.add(coords.week_key)
        result.instances.append(
            build_instance(template, occurrence, birth_date, now, entry_id=id_factory())
        )

    logger.info(
        "generate_instances template=%s frequency=%s created=%d duplicates=%d",
        template.id, template.frequency.value, len(result.instances), result.skipped_count,
    )
    return result
