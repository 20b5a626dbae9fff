"""EntryStore: the single write path for a user's week entries.

Every mutation goes through here: the storage collaborator is written
first and the in-memory ``EntryIndex`` only changes once the write was
accepted.  Recurring templates and goal conversions are driven from here
too.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Any, Callable, Protocol

from entry import Entry, EntryType, validate_lead_time
from entry_index import EntryIndex
from errors import PartialDeleteFailure, PersistenceFailure, RecurrenceNotConfigured
from goal_lifecycle import SweepResult, build_converted_memory, mark_completed, sweep_due_conversions
from recurrence import GenerationResult, generate_instances, has_elapsed
from week_coordinates import validate_coordinates

logger = logging.getLogger(__name__)


class EntryStorage(Protocol):
    """Persistence collaborator (see ``firestore_storage``)."""

    def save_entry(self, entry: Entry) -> None: ...

    def update_entry(self, entry: Entry) -> None: ...

    def delete_entry(self, entry_id: str) -> None: ...

    def load_entries(self, user_id: str) -> list[Entry]: ...

    def subscribe(self, user_id: str, on_change: Callable[[list[Entry]], None]) -> Any: ...

    def unsubscribe(self, handle: Any) -> None: ...


class ReminderScheduler(Protocol):
    """Notification collaborator (see ``reminders``)."""

    def schedule_reminder(self, entry: Entry, at: date) -> str: ...

    def cancel_notification(self, notification_id: str) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SaveResult:
    """Result of creating or updating an entry."""
    entry: Entry
    generation: GenerationResult | None = None
    # Goal instances deleted because recurrence was switched off.
    removed_ids: list[str] = field(default_factory=list)


@dataclass
class DeleteResult:
    deleted_ids: list[str] = field(default_factory=list)


class EntryStore:
    """Façade over storage, notifications and the entry index of one user."""

    def __init__(
        self,
        user_id: str,
        birth_date: date,
        storage: EntryStorage,
        notifications: ReminderScheduler | None = None,
        index: EntryIndex | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.user_id = user_id
        self.birth_date = birth_date
        self.storage = storage
        self.notifications = notifications
        self.index = index if index is not None else EntryIndex()
        self._clock = clock
        self._lock = threading.RLock()
        self._subscription: Any = None

    # ------------------------------------------------------------------
    # Loading and remote changes
    # ------------------------------------------------------------------

    def load(self) -> list[Entry]:
        """Replace the index with the user's stored entries."""
        try:
            entries = self.storage.load_entries(self.user_id)
        except Exception as exc:
            raise PersistenceFailure("load", None, str(exc)) from exc
        with self._lock:
            self.index.replace_all(entries)
        logger.info("load user=%s entries=%d", self.user_id, len(entries))
        return entries

    def start_listening(self) -> None:
        if self._subscription is not None:
            return
        self._subscription = self.storage.subscribe(self.user_id, self._on_remote_change)
        logger.info("start_listening user=%s", self.user_id)

    def stop_listening(self) -> None:
        if self._subscription is None:
            return
        self.storage.unsubscribe(self._subscription)
        self._subscription = None
        logger.info("stop_listening user=%s", self.user_id)

    def _on_remote_change(self, entries: list[Entry]) -> None:
        with self._lock:
            self.index.replace_all(entries)
        logger.info("remote snapshot user=%s entries=%d", self.user_id, len(entries))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_entry(self, entry_id: str) -> Entry | None:
        return self.index.get(entry_id)

    def query_week(self, age_year: int, week_index: int, day_in_week: int | None = None) -> list[Entry]:
        return self.index.query(age_year, week_index, day_in_week)

    def all_entries(self) -> list[Entry]:
        return self.index.all_entries()

    def _require(self, entry_id: str) -> Entry:
        entry = self.index.get(entry_id)
        if entry is None:
            raise KeyError(entry_id)
        return entry

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _validate(self, entry: Entry) -> None:
        validate_coordinates(entry.age_year, entry.week_index, entry.day_in_week, self.birth_date)
        validate_lead_time(entry.notification_lead_time, entry.lead_time_unit)
        if entry.is_recurring and not entry.is_memory:
            raise RecurrenceNotConfigured(
                f"Entry {entry.id} is a {entry.entry_type.value}, only memories recur"
            )
        if entry.is_recurring_template and (
                entry.frequency is None or entry.recurring_end_date is None):
            raise RecurrenceNotConfigured(
                f"Memory {entry.id} needs a frequency and an end date to recur"
            )

    def _save(self, entry: Entry) -> None:
        try:
            self.storage.save_entry(entry)
        except Exception as exc:
            raise PersistenceFailure("save", entry.id, str(exc)) from exc
        self.index.put(entry)

    def _update(self, entry: Entry) -> None:
        try:
            self.storage.update_entry(entry)
        except Exception as exc:
            raise PersistenceFailure("update", entry.id, str(exc)) from exc
        self.index.put(entry)

    def _delete(self, entry: Entry) -> None:
        try:
            self.storage.delete_entry(entry.id)
        except Exception as exc:
            raise PersistenceFailure("delete", entry.id, str(exc)) from exc
        self.index.remove(entry.id)
        self._cancel_reminder(entry)

    def _cancel_reminder(self, entry: Entry) -> None:
        if self.notifications is None or not entry.notification_id:
            return
        try:
            self.notifications.cancel_notification(entry.notification_id)
        except Exception:
            logger.warning("Failed to cancel notification: %s", entry.notification_id)

    def _schedule_reminder(self, entry: Entry) -> Entry:
        """Schedule the entry's reminder; returns the entry with its handle."""
        if (self.notifications is None or not entry.reminder_enabled
                or entry.reminder_date is None
                or has_elapsed(entry.reminder_date, self._clock())):
            return entry
        try:
            notification_id = self.notifications.schedule_reminder(entry, entry.reminder_date)
        except Exception:
            logger.warning("Failed to schedule reminder for entry %s", entry.id)
            return entry
        return replace(entry, notification_id=notification_id)

    def _restore_reminder(self, previous: Entry, attempted: Entry) -> None:
        """Undo the reminder scheduled for an update that was not persisted."""
        if self.notifications is None or not attempted.notification_id:
            return
        if attempted.notification_id != previous.notification_id:
            self._cancel_reminder(attempted)
            return
        # Same handle: the pending reminder was overwritten in place.
        if previous.reminder_date is None:
            return
        try:
            self.notifications.schedule_reminder(previous, previous.reminder_date)
        except Exception:
            logger.warning("Failed to restore reminder for entry %s", previous.id)

    def create_entry(self, entry: Entry) -> SaveResult:
        """Persist and index a new entry.

        A recurring template memory also gets its future goal instances.
        """
        self._validate(entry)
        with self._lock:
            entry = self._commit_new(entry)
            logger.info(
                "create_entry id=%s type=%s week=%s day=%s",
                entry.id, entry.entry_type.value, entry.week_key, entry.day_in_week,
            )
            generation = None
            if entry.is_recurring_template:
                generation = self._generate(entry)
        return SaveResult(entry=entry, generation=generation)

    def _commit_new(self, entry: Entry) -> Entry:
        """Schedule the entry's reminder, then persist and index it."""
        entry = self._schedule_reminder(entry)
        try:
            self._save(entry)
        except PersistenceFailure:
            self._cancel_reminder(entry)
            raise
        return entry

    def update_entry(self, entry: Entry) -> SaveResult:
        """Persist and re-index an edited entry.

        A changed reminder replaces the pending one; if the write fails the
        previous reminder is put back.  Switching recurrence on for a memory
        generates its goal instances.  Switching it off deletes them first,
        and ``PartialDeleteFailure`` leaves the template unchanged.
        """
        self._validate(entry)
        with self._lock:
            previous = self._require(entry.id)
            removed_ids: list[str] = []
            if previous.is_recurring_template and not entry.is_recurring_template:
                removed_ids = self._delete_children(previous)

            entry = replace(entry, updated_at=self._clock())
            reminder_changed = (
                (entry.reminder_enabled, entry.reminder_date)
                != (previous.reminder_enabled, previous.reminder_date)
            )
            if reminder_changed:
                entry = self._schedule_reminder(replace(entry, notification_id=None))
            try:
                self._update(entry)
            except PersistenceFailure:
                if reminder_changed:
                    self._restore_reminder(previous, entry)
                raise
            if reminder_changed and previous.notification_id != entry.notification_id:
                self._cancel_reminder(previous)
            logger.info(
                "update_entry id=%s week=%s removed=%d",
                entry.id, entry.week_key, len(removed_ids),
            )
            generation = None
            if entry.is_recurring_template and not previous.is_recurring_template:
                generation = self._generate(entry)
        return SaveResult(entry=entry, generation=generation, removed_ids=removed_ids)

    def _delete_children(self, template: Entry) -> list[str]:
        """Delete the goal instances of *template*; returns their ids.

        Raises ``PartialDeleteFailure`` after trying every instance.
        """
        deleted: list[str] = []
        failures: dict[str, Exception] = {}
        for child in self.index.children_of(template.id):
            try:
                self._delete(child)
            except PersistenceFailure as exc:
                failures[child.id] = exc
                continue
            deleted.append(child.id)
        if failures:
            logger.warning(
                "cascade incomplete template=%s failed=%d", template.id, len(failures),
            )
            raise PartialDeleteFailure(template.id, deleted, failures)
        return deleted

    def delete_entry(self, entry_id: str) -> DeleteResult:
        """Delete an entry; a memory takes its generated goal instances along.

        Instances are deleted remotely before the memory.  If any of them
        fails, the memory is kept and ``PartialDeleteFailure`` is raised,
        with the index reflecting exactly the deletes that succeeded.
        """
        with self._lock:
            entry = self._require(entry_id)
            result = DeleteResult()
            if entry.is_memory:
                result.deleted_ids.extend(self._delete_children(entry))
            self._delete(entry)
            result.deleted_ids.append(entry.id)
        logger.info("delete_entry id=%s deleted=%d", entry_id, len(result.deleted_ids))
        return result

    def mark_goal_completed(self, goal_id: str, convert_to_memory: bool) -> Entry:
        with self._lock:
            goal = self._require(goal_id)
            completed = mark_completed(goal, convert_to_memory, self._clock())
            self._update(completed)
        logger.info("mark_goal_completed id=%s convert=%s", goal_id, convert_to_memory)
        return completed

    # ------------------------------------------------------------------
    # Recurrence
    # ------------------------------------------------------------------

    def generate_recurring_instances(self, template_id: str) -> GenerationResult:
        """Materialize the missing future goal instances of a template."""
        with self._lock:
            return self._generate(self._require(template_id))

    def _generate(self, template: Entry) -> GenerationResult:
        result = generate_instances(template, self.birth_date, self.index, self._clock())
        committed: list[Entry] = []
        for instance in result.instances:
            try:
                instance = self._commit_new(instance)
            except PersistenceFailure:
                logger.warning(
                    "generation stopped template=%s committed=%d of %d",
                    template.id, len(committed), len(result.instances),
                )
                raise
            committed.append(instance)
        result.instances = committed
        return result

    # ------------------------------------------------------------------
    # Goal conversion
    # ------------------------------------------------------------------

    def sweep_due_conversions(self) -> SweepResult:
        """Turn completed goals whose date passed into memories.

        Meant to run once per session or data load.  Raises
        ``PartialSweepFailure`` when some conversions failed; the others are
        committed.
        """
        with self._lock:
            goals = self.index.entries_of_type(EntryType.GOAL)
            result = sweep_due_conversions(goals, self.birth_date, self._clock(), self._convert)
        logger.info("sweep user=%s converted=%d", self.user_id, len(result.converted))
        return result

    def _convert(self, goal: Entry) -> Entry:
        memory = build_converted_memory(goal, self._clock())
        self._save(memory)
        self._delete(goal)
        return memory
