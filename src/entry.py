"""Core data structures for week entries (memories and goals)."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_entry_id() -> str:
    return str(uuid.uuid4())


class EntryType(str, Enum):
    MEMORY = "memory"
    GOAL = "goal"


class RecurringFrequency(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class LeadTimeUnit(str, Enum):
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"

    @property
    def max_value(self) -> int:
        """Largest lead time offered for this unit."""
        return {"days": 30, "weeks": 52, "months": 11}[self.value]


def validate_lead_time(lead_time: int | None, unit: LeadTimeUnit | None) -> None:
    """Raise ``ValueError`` for a lead time outside ``1..unit.max_value``."""
    if lead_time is None and unit is None:
        return
    if lead_time is None or unit is None:
        raise ValueError("notification_lead_time and lead_time_unit must be set together")
    if not 1 <= lead_time <= unit.max_value:
        raise ValueError(
            f"Lead time must be between 1 and {unit.max_value} {unit.value}, got {lead_time}"
        )


# Fields copied from a template memory onto goals it spawns, and from a goal
# onto the memory it becomes.
PAYLOAD_FIELDS = (
    "title",
    "description",
    "text_content",
    "photo_urls",
    "audio_url",
    "location_name",
    "location_latitude",
    "location_longitude",
    "tags",
)


@dataclass
class Entry:
    """A memory or goal pinned to a box of the life grid.

    ``day_in_week`` is ``None`` when the entry floats within its week.
    Recurrence fields are meaningful on template memories only, completion
    fields on goals only.
    """

    user_id: str
    age_year: int
    week_index: int
    entry_type: EntryType
    title: str
    day_in_week: int | None = None
    id: str = field(default_factory=new_entry_id)

    description: str | None = None
    text_content: str | None = None
    photo_urls: list[str] = field(default_factory=list)
    audio_url: str | None = None
    location_name: str | None = None
    location_latitude: float | None = None
    location_longitude: float | None = None
    tags: list[str] = field(default_factory=list)
    is_favorite: bool = False

    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    reminder_date: date | None = None
    reminder_enabled: bool = False
    notification_id: str | None = None

    is_recurring: bool = False
    frequency: RecurringFrequency | None = None
    recurring_end_date: date | None = None
    notification_lead_time: int | None = None
    lead_time_unit: LeadTimeUnit | None = None
    parent_memory_id: str | None = None

    is_completed: bool = False
    completed_at: datetime | None = None
    convert_to_memory_when_passed: bool = False

    @property
    def week_key(self) -> tuple[int, int]:
        return self.age_year, self.week_index

    @property
    def is_goal(self) -> bool:
        return self.entry_type == EntryType.GOAL

    @property
    def is_memory(self) -> bool:
        return self.entry_type == EntryType.MEMORY

    @property
    def is_recurring_template(self) -> bool:
        return self.is_memory and self.is_recurring

    def payload(self) -> dict:
        """Return the display payload, with list fields copied."""
        data = {name: getattr(self, name) for name in PAYLOAD_FIELDS}
        data["photo_urls"] = list(self.photo_urls)
        data["tags"] = list(self.tags)
        return data

    def matches_day(self, day_in_week: int | None) -> bool:
        """Whether this entry shows up under a day filter.

        Entries without a day match every day of their week.
        """
        if day_in_week is None or self.day_in_week is None:
            return True
        return self.day_in_week == day_in_week

    def to_dict(self) -> dict:
        """Serialize to a plain dict suitable for Firestore storage."""
        d: dict = {
            "id": self.id,
            "userId": self.user_id,
            "weekYear": self.age_year,
            "weekNumber": self.week_index,
            "entryType": self.entry_type.value,
            "dayOfWeek": self.day_in_week,
            "title": self.title,
            "description": self.description or "",
            "textContent": self.text_content or "",
            "photoURLs": list(self.photo_urls),
            "audioURL": self.audio_url or "",
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "tags": list(self.tags),
            "isFavorite": self.is_favorite,
            "reminderEnabled": self.reminder_enabled,
            "isRecurring": self.is_recurring,
            "isCompleted": self.is_completed,
            "convertToMemoryWhenPassed": self.convert_to_memory_when_passed,
        }
        optional = {
            "locationName": self.location_name,
            "locationLatitude": self.location_latitude,
            "locationLongitude": self.location_longitude,
            "reminderDate": self.reminder_date.isoformat() if self.reminder_date else None,
            "notificationId": self.notification_id,
            "recurringFrequency": self.frequency.value if self.frequency else None,
            "recurringEndDate": (
                self.recurring_end_date.isoformat() if self.recurring_end_date else None
            ),
            "notificationLeadTime": self.notification_lead_time,
            "notificationLeadTimeUnit": (
                self.lead_time_unit.value if self.lead_time_unit else None
            ),
            "parentMemoryId": self.parent_memory_id,
            "completedAt": self.completed_at,
        }
        d.update({key: value for key, value in optional.items() if value is not None})
        return d

    @classmethod
    def from_dict(cls, data: dict) -> Entry:
        """Deserialize from a Firestore document dict.

        Raises ``KeyError`` or ``ValueError`` when a required field is
        missing or malformed.
        """
        raw_frequency = data.get("recurringFrequency")
        raw_unit = data.get("notificationLeadTimeUnit")
        raw_reminder = data.get("reminderDate")
        raw_end = data.get("recurringEndDate")
        raw_completed = data.get("completedAt")
        raw_day = data.get("dayOfWeek")
        return cls(
            id=str(data["id"]),
            user_id=data["userId"],
            age_year=int(data["weekYear"]),
            week_index=int(data["weekNumber"]),
            entry_type=EntryType(data["entryType"]),
            day_in_week=int(raw_day) if raw_day is not None else None,
            title=data["title"],
            description=data.get("description") or None,
            text_content=data.get("textContent") or None,
            photo_urls=list(data.get("photoURLs") or []),
            audio_url=data.get("audioURL") or None,
            location_name=data.get("locationName"),
            location_latitude=data.get("locationLatitude"),
            location_longitude=data.get("locationLongitude"),
            created_at=_parse_datetime(data.get("createdAt")),
            updated_at=_parse_datetime(data.get("updatedAt")),
            tags=list(data.get("tags") or []),
            is_favorite=bool(data.get("isFavorite", False)),
            reminder_date=_parse_date(raw_reminder) if raw_reminder else None,
            reminder_enabled=bool(data.get("reminderEnabled", False)),
            notification_id=data.get("notificationId"),
            is_recurring=bool(data.get("isRecurring", False)),
            frequency=RecurringFrequency(raw_frequency) if raw_frequency else None,
            recurring_end_date=_parse_date(raw_end) if raw_end else None,
            notification_lead_time=data.get("notificationLeadTime"),
            lead_time_unit=LeadTimeUnit(raw_unit) if raw_unit else None,
            parent_memory_id=data.get("parentMemoryId"),
            is_completed=bool(data.get("isCompleted", False)),
            completed_at=_parse_datetime(raw_completed) if raw_completed else None,
            convert_to_memory_when_passed=bool(data.get("convertToMemoryWhenPassed", False)),
        )


def _parse_date(value: str | date) -> date:
    """Parse a date from a string or pass through if already a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def _parse_datetime(value: str | datetime | None) -> datetime:
    """Parse a stored timestamp; missing values fall back to now (UTC)."""
    if value is None:
        return _utcnow()
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
