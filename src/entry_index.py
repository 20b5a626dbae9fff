"""In-memory index of entries grouped by week box."""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from entry import Entry, EntryType

logger = logging.getLogger(__name__)

WeekKey = tuple[int, int]
ChangeCallback = Callable[[set[WeekKey]], None]


class EntryIndex:
    """Entries bucketed by ``(age_year, week_index)``.

    A week box can hold any number of entries.  Buckets are pruned as soon
    as they become empty.  Writes are expected to come from a single writer
    (the ``EntryStore``); observers registered with :meth:`on_changed` are
    told which week keys changed after every write.
    """

    def __init__(self, entries: Iterable[Entry] = ()):
        self._buckets: dict[WeekKey, list[Entry]] = {}
        self._locations: dict[str, WeekKey] = {}
        self._observers: list[ChangeCallback] = []
        for entry in entries:
            self._insert(entry)

    def __len__(self) -> int:
        return len(self._locations)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._locations

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def on_changed(self, callback: ChangeCallback) -> Callable[[], None]:
        """Register *callback*; returns a function that unregisters it."""
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _notify(self, keys: set[WeekKey]) -> None:
        if not keys:
            return
        for callback in list(self._observers):
            try:
                callback(set(keys))
            except Exception:
                logger.exception("EntryIndex observer failed keys=%s", sorted(keys))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _insert(self, entry: Entry) -> set[WeekKey]:
        changed: set[WeekKey] = set()
        key = entry.week_key
        old_key = self._locations.get(entry.id)
        if old_key is not None and old_key != key:
            self._discard(entry.id, old_key)
            changed.add(old_key)
        bucket = self._buckets.setdefault(key, [])
        for i, existing in enumerate(bucket):
            if existing.id == entry.id:
                bucket[i] = entry
                break
        else:
            bucket.append(entry)
        self._locations[entry.id] = key
        changed.add(key)
        return changed

    def _discard(self, entry_id: str, key: WeekKey) -> Entry | None:
        bucket = self._buckets.get(key, [])
        removed = None
        for i, existing in enumerate(bucket):
            if existing.id == entry_id:
                removed = bucket.pop(i)
                break
        if not bucket:
            self._buckets.pop(key, None)
        return removed

    def put(self, entry: Entry) -> None:
        """Insert *entry* or replace the entry with the same id.

        An entry whose week changed is moved out of its old bucket.
        """
        self._notify(self._insert(entry))

    def remove(self, entry_id: str) -> Entry | None:
        """Remove an entry by id; returns it, or ``None`` if not indexed."""
        key = self._locations.pop(entry_id, None)
        if key is None:
            return None
        removed = self._discard(entry_id, key)
        self._notify({key})
        return removed

    def replace_all(self, entries: Iterable[Entry]) -> None:
        """Swap the whole content, e.g. after a load or remote snapshot."""
        changed = set(self._buckets)
        self._buckets = {}
        self._locations = {}
        for entry in entries:
            changed |= self._insert(entry)
        self._notify(changed)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, entry_id: str) -> Entry | None:
        key = self._locations.get(entry_id)
        if key is None:
            return None
        for entry in self._buckets[key]:
            if entry.id == entry_id:
                return entry
        return None

    def query(self, age_year: int, week_index: int, day_in_week: int | None = None) -> list[Entry]:
        """Return the entries of a week box, optionally for one day.

        A day filter keeps entries on that day *and* entries without a day.
        """
        bucket = self._buckets.get((age_year, week_index), [])
        return [entry for entry in bucket if entry.matches_day(day_in_week)]

    def has_entries(self, age_year: int, week_index: int, day_in_week: int | None = None) -> bool:
        return bool(self.query(age_year, week_index, day_in_week))

    def week_keys(self) -> list[WeekKey]:
        return sorted(self._buckets)

    def all_entries(self) -> list[Entry]:
        """All entries, newest first."""
        entries = [entry for bucket in self._buckets.values() for entry in bucket]
        return sorted(entries, key=lambda e: e.created_at, reverse=True)

    def entries_of_type(self, entry_type: EntryType) -> list[Entry]:
        return [e for e in self.all_entries() if e.entry_type == entry_type]

    def favorites(self) -> list[Entry]:
        return [e for e in self.all_entries() if e.is_favorite]

    def search(self, text: str) -> list[Entry]:
        """Case-insensitive match on title, description, text and tags."""
        needle = text.lower()

        def matches(entry: Entry) -> bool:
            haystacks = [entry.title, entry.description or "", entry.text_content or ""]
            haystacks.extend(entry.tags)
            return any(needle in h.lower() for h in haystacks)

        return [e for e in self.all_entries() if matches(e)]

    def children_of(self, template_id: str) -> list[Entry]:
        """Goal instances generated from the template memory *template_id*."""
        return [
            entry
            for bucket in self._buckets.values()
            for entry in bucket
            if entry.is_goal and entry.parent_memory_id == template_id
        ]

    def find_goal(self, week_key: WeekKey, title: str) -> Entry | None:
        """Return a goal with *title* in the given week box, if any."""
        for entry in self._buckets.get(week_key, []):
            if entry.is_goal and entry.title == title:
                return entry
        return None
