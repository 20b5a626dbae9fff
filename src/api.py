"""HTTP API for Life Weeks, deployed to Cloud Run.

Uses Firebase ID token auth for all entry endpoints.  Each request works on
the caller's entries through an ``EntryStore`` loaded from Firestore.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from datetime import date

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Header, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel

import firestore_storage
import reminders
from entry import Entry, EntryType, LeadTimeUnit, RecurringFrequency
from entry_store import EntryStore
from errors import (
    PartialDeleteFailure,
    PartialSweepFailure,
    PersistenceFailure,
    RecurrenceNotConfigured,
    TemplateDateUnresolvable,
)

load_dotenv()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Life Weeks API")


@app.middleware("http")
async def logging_middleware(request: Request, call_next) -> Response:
    start = time.monotonic()
    response = await call_next(request)
    duration_ms = round((time.monotonic() - start) * 1000, 1)

    extra = {
        "method": request.method,
        "path": request.url.path,
        "status_code": response.status_code,
        "duration_ms": duration_ms,
    }

    trace_header = request.headers.get("x-cloud-trace-context")
    if trace_header:
        extra["trace"] = trace_header.split("/")[0]

    logger.info("request %s %s %d %.1fms", extra["method"], extra["path"],
                extra["status_code"], duration_ms, extra=extra)
    return response


# ---------------------------------------------------------------------------
# Auth and store helpers
# ---------------------------------------------------------------------------

def _verify_firebase_token(authorization: str = Header(...)) -> dict:
    """Verify a Firebase ID token and return the decoded token dict.

    Cloud Run uses Application Default Credentials (service account) to verify.
    """
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing Bearer token")
    token = authorization[len("Bearer "):]

    try:
        import firebase_admin
        from firebase_admin import auth as firebase_auth

        if not firebase_admin._apps:
            firebase_admin.initialize_app()

        decoded = firebase_auth.verify_id_token(token)
    except ImportError as exc:
        logger.error("firebase_admin_not_installed: %s", exc)
        raise HTTPException(status_code=500, detail="Firebase Admin not configured")
    except Exception as exc:
        logger.warning("firebase_auth_failure: %s", exc)
        raise HTTPException(status_code=401, detail="Invalid Firebase token")
    return decoded


def _get_uid(token: dict = Depends(_verify_firebase_token)) -> str:
    """Extract uid from a verified Firebase token."""
    return token["uid"]


def _get_store(uid: str = Depends(_get_uid)) -> EntryStore:
    """Build the caller's EntryStore, loaded from Firestore."""
    birth_date = firestore_storage.load_birth_date(uid)
    if birth_date is None:
        raise HTTPException(status_code=404, detail="Profile with a birth date not found")
    store = EntryStore(uid, birth_date, storage=firestore_storage, notifications=reminders)
    try:
        store.load()
    except PersistenceFailure:
        logger.exception("load_entries failed uid=%s", uid)
        raise HTTPException(status_code=502, detail="Failed to load entries")
    return store


def _require_entry(store: EntryStore, entry_id: str) -> Entry:
    entry = store.get_entry(entry_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Entry not found")
    return entry


def _entry_json(entry: Entry) -> dict:
    return entry.to_dict()


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class EntryRequest(BaseModel):
    age_year: int
    week_index: int
    day_in_week: int | None = None
    entry_type: EntryType
    title: str
    description: str | None = None
    text_content: str | None = None
    photo_urls: list[str] = []
    audio_url: str | None = None
    location_name: str | None = None
    location_latitude: float | None = None
    location_longitude: float | None = None
    tags: list[str] = []
    is_favorite: bool = False
    reminder_date: date | None = None
    reminder_enabled: bool = False
    is_recurring: bool = False
    frequency: RecurringFrequency | None = None
    recurring_end_date: date | None = None
    notification_lead_time: int | None = None
    lead_time_unit: LeadTimeUnit | None = None


class CompleteGoalRequest(BaseModel):
    convert_to_memory: bool = False


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/_healthz")
@app.get("/healthz")
def healthz():
    return {"ok": True}


# ---------------------------------------------------------------------------
# Entry endpoints (Firebase Auth)
# ---------------------------------------------------------------------------

@app.get("/entries")
def list_entries(
    type: EntryType | None = None,
    q: str | None = None,
    store: EntryStore = Depends(_get_store),
):
    if q:
        entries = store.index.search(q)
    elif type is not None:
        entries = store.index.entries_of_type(type)
    else:
        entries = store.all_entries()
    if q and type is not None:
        entries = [e for e in entries if e.entry_type == type]
    return {"entries": [_entry_json(e) for e in entries]}


@app.get("/entries/{entry_id}")
def get_entry(entry_id: str, store: EntryStore = Depends(_get_store)):
    return {"entry": _entry_json(_require_entry(store, entry_id))}


@app.get("/weeks/{age_year}/{week_index}")
def get_week(
    age_year: int,
    week_index: int,
    day: int | None = None,
    store: EntryStore = Depends(_get_store),
):
    entries = store.query_week(age_year, week_index, day)
    return {
        "age_year": age_year,
        "week_index": week_index,
        "day_in_week": day,
        "entries": [_entry_json(e) for e in entries],
    }


@app.post("/entries")
def create_entry(body: EntryRequest, store: EntryStore = Depends(_get_store)):
    entry = Entry(user_id=store.user_id, **body.model_dump())
    try:
        result = store.create_entry(entry)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except TemplateDateUnresolvable as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except PersistenceFailure:
        logger.exception("create_entry failed uid=%s", store.user_id)
        raise HTTPException(status_code=502, detail="Failed to save entry")
    logger.info("create_entry uid=%s id=%s", store.user_id, result.entry.id)
    generated = result.generation.instances if result.generation else []
    return {
        "entry": _entry_json(result.entry),
        "generated": [_entry_json(e) for e in generated],
    }


@app.put("/entries/{entry_id}")
def update_entry(entry_id: str, body: EntryRequest, store: EntryStore = Depends(_get_store)):
    existing = _require_entry(store, entry_id)
    entry = replace(existing, **body.model_dump())
    try:
        result = store.update_entry(entry)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except TemplateDateUnresolvable as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except PartialDeleteFailure as exc:
        logger.warning("update_entry partial uid=%s id=%s", store.user_id, entry_id)
        return JSONResponse(status_code=502, content={
            "ok": False,
            "deleted": exc.deleted_ids,
            "failed": {goal_id: str(cause) for goal_id, cause in exc.failures.items()},
        })
    except PersistenceFailure:
        logger.exception("update_entry failed uid=%s id=%s", store.user_id, entry_id)
        raise HTTPException(status_code=502, detail="Failed to update entry")
    generated = result.generation.instances if result.generation else []
    return {
        "entry": _entry_json(result.entry),
        "generated": [_entry_json(e) for e in generated],
        "removed": result.removed_ids,
    }


@app.delete("/entries/{entry_id}")
def delete_entry(entry_id: str, store: EntryStore = Depends(_get_store)):
    _require_entry(store, entry_id)
    try:
        result = store.delete_entry(entry_id)
    except PartialDeleteFailure as exc:
        logger.warning("delete_entry partial uid=%s id=%s", store.user_id, entry_id)
        return JSONResponse(status_code=502, content={
            "ok": False,
            "deleted": exc.deleted_ids,
            "failed": {goal_id: str(cause) for goal_id, cause in exc.failures.items()},
        })
    except PersistenceFailure:
        logger.exception("delete_entry failed uid=%s id=%s", store.user_id, entry_id)
        raise HTTPException(status_code=502, detail="Failed to delete entry")
    return {"ok": True, "deleted": result.deleted_ids}


@app.post("/entries/{entry_id}/complete")
def complete_goal(entry_id: str, body: CompleteGoalRequest, store: EntryStore = Depends(_get_store)):
    _require_entry(store, entry_id)
    try:
        goal = store.mark_goal_completed(entry_id, body.convert_to_memory)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except PersistenceFailure:
        logger.exception("complete_goal failed uid=%s id=%s", store.user_id, entry_id)
        raise HTTPException(status_code=502, detail="Failed to update goal")
    return {"entry": _entry_json(goal)}


@app.post("/entries/{entry_id}/recurrences")
def generate_recurrences(entry_id: str, store: EntryStore = Depends(_get_store)):
    _require_entry(store, entry_id)
    try:
        result = store.generate_recurring_instances(entry_id)
    except RecurrenceNotConfigured as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except TemplateDateUnresolvable as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except PersistenceFailure:
        logger.exception("generate_recurrences failed uid=%s id=%s", store.user_id, entry_id)
        raise HTTPException(status_code=502, detail="Failed to save generated goals")
    return {
        "generated": [_entry_json(e) for e in result.instances],
        "skipped_duplicates": result.skipped_count,
    }


@app.post("/sweep")
def sweep(store: EntryStore = Depends(_get_store)):
    try:
        result = store.sweep_due_conversions()
    except PartialSweepFailure as exc:
        logger.warning("sweep partial uid=%s failed=%d", store.user_id, len(exc.failures))
        return JSONResponse(status_code=207, content={
            "converted": exc.converted,
            "failed": {goal_id: str(cause) for goal_id, cause in exc.failures.items()},
        })
    return {"converted": result.converted, "failed": {}}
