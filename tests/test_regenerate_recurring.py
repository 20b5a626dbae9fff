"""Tests for the bulk recurrence regeneration script."""

from datetime import date, datetime, timezone
from pathlib import Path
from unittest.mock import patch

from entry import Entry, EntryType, RecurringFrequency

# Import the script module directly
import importlib.util
import sys

_script_path = Path(__file__).resolve().parent.parent / "scripts" / "regenerate_recurring.py"
_spec = importlib.util.spec_from_file_location("regenerate_recurring", _script_path)
regen_mod = importlib.util.module_from_spec(_spec)
sys.modules["regenerate_recurring"] = regen_mod
_spec.loader.exec_module(regen_mod)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _make_template(**kwargs) -> Entry:
    defaults = dict(
        user_id="alice",
        age_year=25,
        week_index=10,
        day_in_week=3,
        entry_type=EntryType.MEMORY,
        title="Anniversary",
        is_recurring=True,
        frequency=RecurringFrequency.YEARLY,
        recurring_end_date=date(2027, 12, 31),
    )
    defaults.update(kwargs)
    return Entry(**defaults)


@patch("firestore_storage.save_entry")
@patch("firestore_storage.load_entries")
@patch("firestore_storage.load_birth_date", return_value=date(2000, 1, 1))
def test_regenerate_creates_missing_goals(mock_birth, mock_load, mock_save):
    template = _make_template()
    existing = Entry(
        user_id="alice", age_year=26, week_index=10, day_in_week=3,
        entry_type=EntryType.GOAL, title="Anniversary", parent_memory_id=template.id,
    )
    mock_load.return_value = [template, existing]

    count = regen_mod.regenerate("alice", now=NOW)

    assert count == 1
    saved = mock_save.call_args[0][0]
    assert (saved.age_year, saved.week_index) == (27, 10)
    assert saved.parent_memory_id == template.id


@patch("firestore_storage.save_entry")
@patch("firestore_storage.load_entries")
@patch("firestore_storage.load_birth_date", return_value=date(2000, 1, 1))
def test_regenerate_dry_run(mock_birth, mock_load, mock_save, capsys):
    mock_load.return_value = [_make_template()]

    count = regen_mod.regenerate("alice", dry_run=True, now=NOW)

    assert count == 2
    mock_save.assert_not_called()
    assert "[dry-run] Would create 'Anniversary' at year 26 week 10 day 3" in capsys.readouterr().out


@patch("firestore_storage.load_entries")
@patch("firestore_storage.load_birth_date", return_value=date(2000, 1, 1))
def test_regenerate_no_templates(mock_birth, mock_load):
    mock_load.return_value = [_make_template(is_recurring=False)]
    assert regen_mod.regenerate("alice", now=NOW) == 0


@patch("firestore_storage.load_birth_date", return_value=None)
def test_regenerate_without_birth_date(mock_birth):
    assert regen_mod.regenerate("alice", now=NOW) == 0
