"""Sweep: convert completed, past-due goals into memories for a user."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import date, datetime, time, timezone

from dotenv import load_dotenv

from errors import PartialSweepFailure
from goal_lifecycle import SweepResult

logger = logging.getLogger(__name__)


def run_sweep(user_id: str, now: datetime | None = None) -> SweepResult:
    """Load the user's entries and run one conversion sweep.

    Raises ``LookupError`` when the user has no birth date on file and
    ``PartialSweepFailure`` when some conversions failed.
    """
    import firestore_storage
    import reminders
    from entry_store import EntryStore

    birth_date = firestore_storage.load_birth_date(user_id)
    if birth_date is None:
        raise LookupError(f"No birth date on file for user {user_id}")

    kwargs = {}
    if now is not None:
        kwargs["clock"] = lambda: now
    store = EntryStore(user_id, birth_date, storage=firestore_storage,
                       notifications=reminders, **kwargs)
    store.load()
    return store.sweep_due_conversions()


def _log_firestore_config() -> None:
    """Log Firestore client configuration for debugging."""
    project = os.environ.get("GOOGLE_CLOUD_PROJECT", "(not set)")
    database = os.environ.get("LIFE_WEEKS_FIRESTORE_DATABASE", "(not set)")
    logger.info("Firestore config: project=%s, database=%s", project, database)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the sweep job."""
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    parser = argparse.ArgumentParser(
        description="Convert completed goals whose date has passed into memories",
    )
    parser.add_argument("--user-id", required=True, help="Owner of the entries")
    parser.add_argument(
        "--today", type=date.fromisoformat, default=None,
        help="Override today's date for testing (sweeps as of the start of that day)",
    )
    args = parser.parse_args(argv)
    now = None
    if args.today is not None:
        now = datetime.combine(args.today, time.min, tzinfo=timezone.utc)

    _log_firestore_config()

    try:
        logger.info("Starting goal sweep (user=%s)...", args.user_id)
        result = run_sweep(args.user_id, now)
    except PartialSweepFailure as exc:
        for goal_id, memory_id in exc.converted.items():
            print(f"Converted goal {goal_id} -> memory {memory_id}")
        for goal_id, cause in exc.failures.items():
            print(f"Failed to convert goal {goal_id}: {cause}")
        logger.error("Goal sweep incomplete: %d failed.", len(exc.failures))
        sys.exit(1)
    except Exception:
        logger.exception("Goal sweep failed")
        sys.exit(1)

    for goal_id, memory_id in result.converted.items():
        print(f"Converted goal {goal_id} -> memory {memory_id}")
    logger.info("Goal sweep done: %d converted.", len(result.converted))


if __name__ == "__main__":
    main()
