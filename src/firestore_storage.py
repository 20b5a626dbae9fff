"""Firestore-backed storage for week entries and user profiles."""

from __future__ import annotations

import logging
import os
from datetime import date, datetime
from typing import Any, Callable

from entry import Entry

logger = logging.getLogger(__name__)

COLLECTION = "entries"
PROFILES_COLLECTION = "userProfiles"


def _get_client():
    """Return a Firestore client (lazy import to avoid import-time errors).

    Respects ``LIFE_WEEKS_FIRESTORE_DATABASE`` to select a non-default
    database and ``GOOGLE_CLOUD_PROJECT`` for the project ID.
    """
    from google.cloud import firestore

    kwargs: dict[str, str] = {}
    database = os.environ.get("LIFE_WEEKS_FIRESTORE_DATABASE")
    if database:
        kwargs["database"] = database
    project = os.environ.get("GOOGLE_CLOUD_PROJECT")
    if project:
        kwargs["project"] = project
    return firestore.Client(**kwargs)


def _parse_docs(docs) -> list[Entry]:
    """Parse entry documents, skipping the ones that do not parse."""
    entries: list[Entry] = []
    for doc in docs:
        try:
            entries.append(Entry.from_dict(doc.to_dict()))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Skipping unparsable entry doc=%s: %s", doc.id, exc)
    return entries


def save_entry(entry: Entry) -> None:
    """Create (or overwrite) the entry document keyed by the entry id."""
    db = _get_client()
    db.collection(COLLECTION).document(entry.id).set(entry.to_dict())


def update_entry(entry: Entry) -> None:
    """Overwrite the entry's document with the full entry.

    Optional fields left out of ``to_dict`` are cleared in Firestore too.
    """
    db = _get_client()
    db.collection(COLLECTION).document(entry.id).set(entry.to_dict())


def delete_entry(entry_id: str) -> None:
    """Delete a single entry document by id."""
    db = _get_client()
    db.collection(COLLECTION).document(entry_id).delete()


def get_entry(entry_id: str) -> Entry | None:
    """Get a single entry by id. Returns None if not found."""
    db = _get_client()
    doc = db.collection(COLLECTION).document(entry_id).get()
    if not doc.exists:
        return None
    return Entry.from_dict(doc.to_dict())


def load_entries(user_id: str) -> list[Entry]:
    """Load every entry owned by *user_id*."""
    db = _get_client()
    docs = (
        db.collection(COLLECTION)
        .where("userId", "==", user_id)
        .stream()
    )
    return _parse_docs(docs)


def subscribe(user_id: str, on_change: Callable[[list[Entry]], None]) -> Any:
    """Call *on_change* with the user's full entry list on every change.

    Returns the Firestore watch handle to pass to :func:`unsubscribe`.
    """
    db = _get_client()
    query = db.collection(COLLECTION).where("userId", "==", user_id)

    def _on_snapshot(docs, changes, read_time) -> None:
        on_change(_parse_docs(docs))

    return query.on_snapshot(_on_snapshot)


def unsubscribe(handle: Any) -> None:
    handle.unsubscribe()


def load_birth_date(user_id: str) -> date | None:
    """Return the birth date stored on the user's profile, if any."""
    db = _get_client()
    doc = db.collection(PROFILES_COLLECTION).document(user_id).get()
    if not doc.exists:
        return None
    raw = (doc.to_dict() or {}).get("dateOfBirth")
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    return date.fromisoformat(raw[:10])
