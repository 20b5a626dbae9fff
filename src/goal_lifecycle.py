"""Goal lifecycle: Active -> Completed -> converted into a memory.

A converted goal is not mutated into a memory.  A new memory entry is
created and the goal is deleted, so the record of what was planned stays
distinct from the record of what happened.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Callable, Iterable

from entry import Entry, EntryType
from errors import PartialSweepFailure
from recurrence import has_elapsed
from week_coordinates import resolve_entry_date

logger = logging.getLogger(__name__)

# Namespace for the ids of memories created from goals.
CONVERTED_MEMORY_NAMESPACE = uuid.UUID("6f1c7c2e-4a47-4f4e-9d0e-3b6a5d2f8e11")


class GoalState(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CONVERTED = "converted"
    DELETED = "deleted"


def goal_state(goal: Entry) -> GoalState:
    """Live state of a goal entry (terminal states have no entry)."""
    if not goal.is_goal:
        raise ValueError(f"Entry {goal.id} is not a goal")
    return GoalState.COMPLETED if goal.is_completed else GoalState.ACTIVE


def mark_completed(goal: Entry, convert_to_memory: bool, now: datetime) -> Entry:
    """Return a completed copy of *goal*; no structural change happens yet."""
    if not goal.is_goal:
        raise ValueError(f"Entry {goal.id} is not a goal")
    return replace(
        goal,
        is_completed=True,
        completed_at=now,
        convert_to_memory_when_passed=convert_to_memory,
        updated_at=now,
    )


def goal_due_date(goal: Entry, birth_date: date) -> date:
    return resolve_entry_date(goal, birth_date)


def wants_conversion(entry: Entry) -> bool:
    return entry.is_goal and entry.is_completed and entry.convert_to_memory_when_passed


def is_due_for_conversion(goal: Entry, birth_date: date, now: datetime) -> bool:
    """Whether a completed goal flagged for conversion has passed its date."""
    return wants_conversion(goal) and has_elapsed(goal_due_date(goal, birth_date), now)


def find_due_conversions(entries: Iterable[Entry], birth_date: date, now: datetime) -> list[Entry]:
    return [e for e in entries if is_due_for_conversion(e, birth_date, now)]


def converted_memory_id(goal_id: str) -> str:
    """Id of the memory a goal turns into.

    Derived from the goal id so a sweep that crashed between saving the
    memory and deleting the goal overwrites the same memory on re-run.
    """
    return str(uuid.uuid5(CONVERTED_MEMORY_NAMESPACE, goal_id))


def build_converted_memory(goal: Entry, now: datetime) -> Entry:
    """Build the memory that replaces *goal*."""
    return replace(
        goal,
        id=converted_memory_id(goal.id),
        entry_type=EntryType.MEMORY,
        created_at=now,
        updated_at=now,
        convert_to_memory_when_passed=False,
        # A memory is never an instance of a template.
        is_recurring=False,
        parent_memory_id=None,
        reminder_enabled=False,
        reminder_date=None,
        notification_id=None,
        photo_urls=list(goal.photo_urls),
        tags=list(goal.tags),
    )


@dataclass
class SweepResult:
    # goal id -> id of the memory that replaced it
    converted: dict[str, str] = field(default_factory=dict)
    failures: dict[str, Exception] = field(default_factory=dict)


def sweep_due_conversions(
    goals: Iterable[Entry],
    birth_date: date,
    now: datetime,
    convert: Callable[[Entry], Entry],
) -> SweepResult:
    """Convert every completed goal whose date has passed.

    *convert* commits one conversion and returns the new memory.  Each goal
    is handled independently; if any of them fails, ``PartialSweepFailure``
    is raised after all goals were tried.
    """
    result = SweepResult()
    for goal in goals:
        if not wants_conversion(goal):
            continue
        try:
            if not has_elapsed(goal_due_date(goal, birth_date), now):
                continue
            memory = convert(goal)
        except Exception as exc:
            logger.warning("sweep conversion failed goal=%s: %s", goal.id, exc)
            result.failures[goal.id] = exc
            continue
        result.converted[goal.id] = memory.id
        logger.info("sweep converted goal=%s memory=%s", goal.id, memory.id)

    if result.failures:
        raise PartialSweepFailure(result.converted, result.failures)
    return result
