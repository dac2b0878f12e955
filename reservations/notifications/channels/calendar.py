"""Calendar invite generation using iCalendar format."""

from datetime import datetime, timezone

from icalendar import Calendar, Event, vCalAddress, vText

from reservations.config import get_ics_prodid, get_ics_uid_domain
from reservations.enums import IcsMethod, JobType
from reservations.types import Booking


ICS_METHOD_BY_JOB_TYPE = {
    JobType.invite_create: IcsMethod.REQUEST,
    JobType.invite_update: IcsMethod.REQUEST,
    JobType.invite_cancel: IcsMethod.CANCEL,
}

DEFAULT_SUMMARY = "Room Reservation"


def ics_method_for(job_type: JobType | str) -> IcsMethod:
    """Create and update both map to REQUEST; clients match on UID."""
    return ICS_METHOD_BY_JOB_TYPE[JobType(job_type)]


def event_uid(booking_id: int) -> str:
    """
    Stable event UID for a reservation.

    Calendar clients use it to tell "same event, updated" from "new event",
    so the format must never change.
    """
    return f"reservation-{booking_id}@{get_ics_uid_domain()}"


def build_ics(
    method: IcsMethod | str,
    booking: Booking,
    attendees: list[str],
    dtstamp: datetime | None = None,
) -> str:
    """
    Create an iCalendar document (iTIP format) for one reservation.

    Start and end are written as floating local time (no Z, no TZID): the
    stored values already are wall-clock readings. Text fields are escaped
    by vText.

    Args:
        method: REQUEST for create/update, CANCEL for removal
        booking: Reservation snapshot; must have a booking_id
        attendees: Recipient email addresses
        dtstamp: Creation stamp (defaults to now, UTC)

    Returns:
        iCalendar string
    """
    method = IcsMethod(method)
    if booking.booking_id is None:
        raise ValueError("Cannot build a calendar invite for an unsaved booking")

    cal = Calendar()
    cal.add("prodid", get_ics_prodid())
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("method", method.value)

    event = Event()
    event.add("uid", event_uid(booking.booking_id))
    # RFC 5545 requires DTSTAMP in UTC; the event times below stay floating
    event.add("dtstamp", dtstamp or datetime.now(timezone.utc))
    event.add("dtstart", booking.start.replace(tzinfo=None))
    event.add("dtend", booking.end.replace(tzinfo=None))
    event.add("summary", booking.title or DEFAULT_SUMMARY)
    event.add("description", booking.description or "")
    event.add("location", booking.location)

    if booking.organizer_email:
        organizer = vCalAddress(f"mailto:{booking.organizer_email}")
        organizer.params["cn"] = vText("Organizer")
        event.add("organizer", organizer)

    for email in attendees:
        attendee = vCalAddress(f"mailto:{email}")
        attendee.params["cn"] = vText(email)
        attendee.params["rsvp"] = vText("TRUE")
        event.add("attendee", attendee, encode=0)

    if method is IcsMethod.CANCEL:
        event.add("status", "CANCELLED")

    cal.add_component(event)
    return cal.to_ical().decode("utf-8")
