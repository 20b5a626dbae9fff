#!/usr/bin/env python3
"""Bulk regeneration: materialize missing goal instances of recurring memories.

Safe to re-run: occurrences whose week already holds a goal with the
template's title are skipped, so a run after a crash converges instead of
duplicating goals.

Usage:
    python scripts/regenerate_recurring.py --user-id <FIREBASE_UID>
    python scripts/regenerate_recurring.py --user-id <FIREBASE_UID> --dry-run
"""

from __future__ import annotations

import argparse
import sys
from datetime import datetime, timezone
from pathlib import Path

# Allow running from the repo root without installing.
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

import firestore_storage  # noqa: E402
import reminders  # noqa: E402
from entry_store import EntryStore  # noqa: E402
from recurrence import generate_instances  # noqa: E402


def regenerate(user_id: str, *, dry_run: bool = False, now: datetime | None = None) -> int:
    """Generate missing instances for every recurring template of *user_id*.

    Returns the number of goal instances created (or that would be).
    """
    birth_date = firestore_storage.load_birth_date(user_id)
    if birth_date is None:
        print(f"No birth date on file for user {user_id}; nothing to do.")
        return 0

    if now is None:
        now = datetime.now(timezone.utc)
    store = EntryStore(user_id, birth_date, storage=firestore_storage,
                       notifications=reminders, clock=lambda: now)
    store.load()

    templates = [e for e in store.all_entries() if e.is_recurring_template]
    if not templates:
        print("No recurring memories found.")
        return 0

    count = 0
    for template in templates:
        if dry_run:
            result = generate_instances(template, birth_date, store.index, now)
            for goal in result.instances:
                print(
                    f"[dry-run] Would create '{goal.title}' at "
                    f"year {goal.age_year} week {goal.week_index} day {goal.day_in_week}"
                )
        else:
            result = store.generate_recurring_instances(template.id)
            print(
                f"Template '{template.title}' ({template.id}): "
                f"{len(result.instances)} created, {result.skipped_count} already present"
            )
        count += len(result.instances)

    return count


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Materialize missing goal instances of recurring memories",
    )
    parser.add_argument(
        "--user-id", required=True,
        help="Firebase Auth UID whose recurring memories to process",
    )
    parser.add_argument(
        "--dry-run", action="store_true",
        help="Print what would be created without writing to Firestore",
    )
    args = parser.parse_args()

    count = regenerate(args.user_id, dry_run=args.dry_run)
    print(f"\nTotal: {count} goal(s) {'would be ' if args.dry_run else ''}created.")


if __name__ == "__main__":
    main()
