"""Firestore-backed reminder scheduling.

A scheduled reminder is a document in the ``reminders`` collection that the
push worker picks up on its ``fireOn`` date.  Its id is the notification id
stored on the entry.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from entry import Entry

COLLECTION = "reminders"


def _get_client():
    """Return a Firestore client (reuses firestore_storage helper)."""
    from firestore_storage import _get_client as _fs_get_client
    return _fs_get_client()


def notification_id_for(entry: Entry) -> str:
    return f"{entry.id}-reminder"


def schedule_reminder(entry: Entry, at: date) -> str:
    """Schedule a reminder for *entry* on *at*; returns the notification id.

    Scheduling again for the same entry replaces the pending reminder.
    """
    notification_id = notification_id_for(entry)
    body = {
        "entryId": entry.id,
        "userId": entry.user_id,
        "entryType": entry.entry_type.value,
        "title": "Goal Reminder",
        "body": entry.title,
        "subtitle": entry.description,
        "fireOn": at.isoformat(),
        "createdAt": datetime.now(timezone.utc),
    }
    db = _get_client()
    db.collection(COLLECTION).document(notification_id).set(body)
    return notification_id


def cancel_notification(notification_id: str) -> None:
    db = _get_client()
    db.collection(COLLECTION).document(notification_id).delete()
