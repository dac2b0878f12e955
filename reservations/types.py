"""Booking snapshot types shared by the recurrence engine and the invite pipeline."""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Iterable

from dateutil.parser import isoparse


def parse_wall_clock(value: Any) -> datetime:
    """
    Parse a wall-clock datetime.

    Accepts datetime, date (midnight), or ISO strings with either "T" or a
    space between date and time ("2025-01-06 09:00:00" is the stored form).
    Any zone information is discarded without conversion: the literal clock
    reading is what the user booked.

    Raises:
        ValueError: If the value can't be parsed
    """
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str) and value.strip():
        return isoparse(value.strip()).replace(tzinfo=None)
    raise ValueError(f"Invalid datetime value: {value!r}")


def parse_calendar_date(value: Any) -> date:
    """Parse a calendar date (date, datetime or "YYYY-MM-DD")."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_wall_clock(value).date()


def parse_email_list(value: str | Iterable[str] | None) -> tuple[str, ...]:
    """
    Normalize an attendee list.

    The reservations table stores attendees as one comma-separated string;
    callers may also pass a list. Entries are trimmed, blanks dropped and
    duplicates removed, keeping first-seen order.
    """
    if not value:
        return ()
    parts = value.split(",") if isinstance(value, str) else value

    seen: dict[str, None] = {}
    for part in parts:
        if part is None:
            continue
        email = str(part).strip()
        if email:
            seen.setdefault(email, None)
    return tuple(seen)


@dataclass(frozen=True)
class Booking:
    """
    One concrete reservation as seen by the notification pipeline.

    Immutable: an edit is described by a (previous, next) pair of snapshots.
    """

    booking_id: int | None
    start: datetime
    end: datetime
    organizer_email: str | None = None
    attendee_emails: tuple[str, ...] = field(default_factory=tuple)
    title: str | None = None
    description: str | None = None
    room_name_snapshot: str | None = None
    site_name_snapshot: str | None = None

    @property
    def location(self) -> str:
        parts = [p for p in (self.site_name_snapshot, self.room_name_snapshot) if p]
        return " - ".join(parts)

    @property
    def recipients(self) -> tuple[str, ...]:
        """Organizer plus attendees, deduplicated."""
        return parse_email_list([self.organizer_email or "", *self.attendee_emails])

    def with_id(self, booking_id: int) -> "Booking":
        return replace(self, booking_id=booking_id)

    @classmethod
    def from_row(cls, row: dict) -> "Booking":
        """Build from a reservations row (or API dict) using its column names."""
        organizer = (row.get("email") or "").strip() or None
        return cls(
            booking_id=row.get("id"),
            start=parse_wall_clock(row["start_time"]),
            end=parse_wall_clock(row["end_time"]),
            organizer_email=organizer,
            attendee_emails=parse_email_list(row.get("attendees_emails")),
            title=row.get("title"),
            description=row.get("description"),
            room_name_snapshot=row.get("room_name_snapshot"),
            site_name_snapshot=row.get("site_name_snapshot"),
        )

    def to_payload(self) -> dict:
        """JSON-safe snapshot stored inside queued jobs."""
        return {
            "id": self.booking_id,
            "start_time": self.start.isoformat(),
            "end_time": self.end.isoformat(),
            "email": self.organizer_email,
            "attendees_emails": ",".join(self.attendee_emails),
            "title": self.title,
            "description": self.description,
            "room_name_snapshot": self.room_name_snapshot,
            "site_name_snapshot": self.site_name_snapshot,
        }

    @classmethod
    def from_payload(cls, payload: dict) -> "Booking":
        return cls.from_row(payload)
