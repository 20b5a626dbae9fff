"""Tests for Firestore reminder scheduling."""

from datetime import date
from unittest.mock import MagicMock, patch

from entry import Entry, EntryType
import reminders


def _make_goal(**kwargs) -> Entry:
    defaults = dict(
        id="goal-1",
        user_id="alice",
        age_year=26,
        week_index=10,
        day_in_week=3,
        entry_type=EntryType.GOAL,
        title="Anniversary",
        description="Dinner at eight",
    )
    defaults.update(kwargs)
    return Entry(**defaults)


@patch("reminders._get_client")
def test_schedule_writes_reminder_doc(mock_get_client):
    mock_db = MagicMock()
    mock_get_client.return_value = mock_db

    notification_id = reminders.schedule_reminder(_make_goal(), date(2026, 3, 7))

    assert notification_id == "goal-1-reminder"
    mock_db.collection.assert_called_once_with("reminders")
    mock_db.collection.return_value.document.assert_called_once_with("goal-1-reminder")
    body = mock_db.collection.return_value.document.return_value.set.call_args[0][0]
    assert body["entryId"] == "goal-1"
    assert body["userId"] == "alice"
    assert body["entryType"] == "goal"
    assert body["title"] == "Goal Reminder"
    assert body["body"] == "Anniversary"
    assert body["subtitle"] == "Dinner at eight"
    assert body["fireOn"] == "2026-03-07"


@patch("reminders._get_client")
def test_rescheduling_reuses_id(mock_get_client):
    mock_get_client.return_value = MagicMock()
    goal = _make_goal()
    assert reminders.schedule_reminder(goal, date(2026, 3, 7)) == reminders.schedule_reminder(
        goal, date(2026, 3, 1)
    )


@patch("reminders._get_client")
def test_cancel_deletes_doc(mock_get_client):
    mock_db = MagicMock()
    mock_get_client.return_value = mock_db

    reminders.cancel_notification("goal-1-reminder")

    mock_db.collection.return_value.document.assert_called_once_with("goal-1-reminder")
    mock_db.collection.return_value.document.return_value.delete.assert_called_once()
