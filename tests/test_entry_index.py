"""Tests for the in-memory entry index."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

from entry import Entry, EntryType
from entry_index import EntryIndex

BASE = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _make_entry(**kwargs) -> Entry:
    defaults = dict(
        user_id="alice",
        age_year=25,
        week_index=10,
        day_in_week=3,
        entry_type=EntryType.MEMORY,
        title="Entry",
        created_at=BASE,
    )
    defaults.update(kwargs)
    return Entry(**defaults)


class TestPut:
    def test_multiple_entries_per_week(self):
        index = EntryIndex()
        a = _make_entry(title="A")
        b = _make_entry(title="B")
        index.put(a)
        index.put(b)
        assert index.query(25, 10) == [a, b]
        assert len(index) == 2

    def test_replaces_by_id(self):
        index = EntryIndex()
        entry = _make_entry(title="Old")
        index.put(entry)
        index.put(replace(entry, title="New"))
        assert [e.title for e in index.query(25, 10)] == ["New"]
        assert len(index) == 1

    def test_moving_to_another_week_leaves_old_bucket(self):
        index = EntryIndex()
        entry = _make_entry()
        index.put(entry)
        index.put(replace(entry, week_index=11))
        assert index.query(25, 10) == []
        assert index.query(25, 11)[0].id == entry.id
        assert index.week_keys() == [(25, 11)]


class TestRemove:
    def test_removes_and_prunes_bucket(self):
        index = EntryIndex()
        entry = _make_entry()
        index.put(entry)
        assert index.remove(entry.id) == entry
        assert entry.id not in index
        assert index.week_keys() == []

    def test_keeps_other_entries(self):
        index = EntryIndex()
        a = _make_entry(title="A")
        b = _make_entry(title="B")
        index.put(a)
        index.put(b)
        index.remove(a.id)
        assert index.query(25, 10) == [b]

    def test_unknown_id(self):
        assert EntryIndex().remove("missing") is None


class TestQuery:
    def test_day_filter_includes_floating_entries(self):
        on_day = _make_entry(title="On day", day_in_week=3)
        other_day = _make_entry(title="Other day", day_in_week=5)
        floating = _make_entry(title="Floating", day_in_week=None)
        index = EntryIndex([on_day, other_day, floating])

        assert index.query(25, 10, 3) == [on_day, floating]
        assert index.query(25, 10, 5) == [other_day, floating]
        assert index.query(25, 10, 7) == [floating]
        assert index.query(25, 10) == [on_day, other_day, floating]

    def test_empty_week(self):
        index = EntryIndex()
        assert index.query(1, 1) == []
        assert not index.has_entries(1, 1)

    def test_has_entries_for_day(self):
        index = EntryIndex([_make_entry(day_in_week=2)])
        assert index.has_entries(25, 10, 2)
        assert not index.has_entries(25, 10, 4)


class TestReads:
    def test_get(self):
        entry = _make_entry()
        index = EntryIndex([entry])
        assert index.get(entry.id) == entry
        assert index.get("missing") is None

    def test_all_entries_newest_first(self):
        old = _make_entry(title="Old", created_at=BASE)
        new = _make_entry(title="New", week_index=2, created_at=BASE + timedelta(days=1))
        index = EntryIndex([old, new])
        assert [e.title for e in index.all_entries()] == ["New", "Old"]

    def test_entries_of_type_and_favorites(self):
        memory = _make_entry(is_favorite=True)
        goal = _make_entry(entry_type=EntryType.GOAL)
        index = EntryIndex([memory, goal])
        assert index.entries_of_type(EntryType.GOAL) == [goal]
        assert index.favorites() == [memory]

    def test_search(self):
        beach = _make_entry(title="Beach day")
        tagged = _make_entry(title="Lunch", tags=["Beach"])
        other = _make_entry(title="Dentist", description="checkup")
        index = EntryIndex([beach, tagged, other])
        assert {e.id for e in index.search("beach")} == {beach.id, tagged.id}
        assert index.search("CHECK") == [other]

    def test_children_of(self):
        template = _make_entry(is_recurring=True)
        child = _make_entry(entry_type=EntryType.GOAL, age_year=26, parent_memory_id=template.id)
        unrelated = _make_entry(entry_type=EntryType.GOAL, age_year=26)
        index = EntryIndex([template, child, unrelated])
        assert index.children_of(template.id) == [child]

    def test_find_goal(self):
        goal = _make_entry(entry_type=EntryType.GOAL, title="Birthday")
        memory = _make_entry(title="Anniversary")
        index = EntryIndex([goal, memory])
        assert index.find_goal((25, 10), "Birthday") == goal
        assert index.find_goal((25, 10), "Anniversary") is None
        assert index.find_goal((25, 11), "Birthday") is None


class TestObservers:
    def test_notified_with_changed_keys(self):
        index = EntryIndex()
        seen = []
        index.on_changed(seen.append)
        entry = _make_entry()
        index.put(entry)
        index.put(replace(entry, week_index=11))
        index.remove(entry.id)
        assert seen == [{(25, 10)}, {(25, 10), (25, 11)}, {(25, 11)}]

    def test_unsubscribe(self):
        index = EntryIndex()
        seen = []
        unsubscribe = index.on_changed(seen.append)
        unsubscribe()
        index.put(_make_entry())
        assert seen == []

    def test_failing_observer_does_not_break_writes(self):
        index = EntryIndex()

        def boom(keys):
            raise RuntimeError("observer failed")

        index.on_changed(boom)
        entry = _make_entry()
        index.put(entry)
        assert entry.id in index

    def test_replace_all(self):
        index = EntryIndex([_make_entry(week_index=1)])
        seen = []
        index.on_changed(seen.append)
        fresh = _make_entry(week_index=2)
        index.replace_all([fresh])
        assert index.week_keys() == [(25, 2)]
        assert seen == [{(25, 1), (25, 2)}]

    def test_no_notification_for_unknown_remove(self):
        index = EntryIndex()
        seen = []
        index.on_changed(seen.append)
        index.remove("missing")
        assert seen == []
