"""
Booking mutation helpers used by the reservation API before persistence.

The API validates and expands a request here, writes the resulting bookings
in its own transaction, and only after commit hands each saved booking to
the invite pipeline (see notifications.differ).
"""

import logging
from dataclasses import replace

from .config import get_weekends_enabled
from .recurrence import ValidationError, expand_reservation, validate_recurrence_payload
from .types import Booking, parse_wall_clock

logger = logging.getLogger(__name__)


def materialize_reservation(
    request: dict, weekends_enabled: bool | None = None
) -> list[Booking]:
    """
    Turn a reservation request into unsaved Booking instances.

    Args:
        request: API payload (start_time, end_time, email, attendees_emails,
            title, description, room/site snapshots, optional recurrence)
        weekends_enabled: Override the RECURRENCE_WEEKENDS_ENABLED setting

    Returns:
        One booking for a single reservation, one per occurrence for a
        recurring one. booking_id is None until the caller persists them.

    Raises:
        ValidationError: With every problem found in the request
    """
    errors = []
    start = end = None
    try:
        start = parse_wall_clock(request.get("start_time"))
        end = parse_wall_clock(request.get("end_time"))
    except (ValueError, TypeError, OverflowError):
        errors.append("Invalid datetime value.")

    if start is not None and end is not None and start >= end:
        errors.append("End time must be after start time.")

    recurrence = request.get("recurrence")
    if end is not None:
        errors.extend(validate_recurrence_payload(recurrence, end))

    if errors:
        raise ValidationError("; ".join(errors), errors=errors)

    if weekends_enabled is None:
        weekends_enabled = get_weekends_enabled()

    template = Booking.from_row({**request, "id": None, "start_time": start, "end_time": end})
    occurrences = expand_reservation(start, end, recurrence, weekends_enabled=weekends_enabled)

    if recurrence and not occurrences:
        logger.info(f"Recurring request for '{template.title}' produced no occurrences")

    return [replace(template, start=o.start, end=o.end) for o in occurrences]
