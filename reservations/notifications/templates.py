"""Message template loading and rendering."""

import html
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import yaml

from reservations.enums import JobType
from reservations.notifications.channels.email import (
    with_text_footer,
    wrap_html,
)
from reservations.types import Booking


_templates: dict | None = None


@dataclass(frozen=True)
class RenderedContent:
    """Subject and bodies for one invite email."""

    subject: str
    html: str
    text: str

    def to_payload(self) -> dict:
        return {"subject": self.subject, "html": self.html, "text": self.text}

    @classmethod
    def from_payload(cls, payload: dict) -> "RenderedContent":
        return cls(subject=payload["subject"], html=payload["html"], text=payload["text"])


TEMPLATES_PATH = Path(__file__).parent / "messages.yaml"


def load_templates() -> dict:
    """Invite templates from messages.yaml, read once per process."""
    global _templates
    if _templates is None:
        with open(TEMPLATES_PATH) as f:
            _templates = yaml.safe_load(f)
    return _templates


def render_message(template: str, context: dict) -> str:
    """
    Fill a template's {placeholders}.

    Raises:
        KeyError: If the template names a placeholder the context lacks
    """
    return template.format(**context)


def get_message(message_type: str, channel: str, context: dict) -> str:
    """
    Render one part of an invite email.

    Args:
        message_type: Job type value, e.g. "invite_update"
        channel: "email_subject" or "email_body"
        context: Placeholder values from build_invite_context()
    """
    return render_message(load_templates()[message_type][channel], context)


def format_wall_clock(value: datetime) -> str:
    """
    Format a wall-clock datetime for humans, without any zone conversion.

    Example: Monday, January 6, 2025 • 9:00 AM
    """
    hour = value.hour % 12 or 12
    return (
        f"{value:%A}, {value:%B} {value.day}, {value.year} • "
        f"{hour}:{value:%M} {value:%p}"
    )


def format_wall_clock_range(start: datetime, end: datetime) -> str:
    if start.date() == end.date():
        end_hour = end.hour % 12 or 12
        return f"{format_wall_clock(start)} to {end_hour}:{end:%M} {end:%p}"
    return f"{format_wall_clock(start)} to {format_wall_clock(end)}"


def build_invite_context(booking: Booking) -> dict:
    return {
        "title": booking.title or "Room Reservation",
        "room": booking.room_name_snapshot or "",
        "site": booking.site_name_snapshot or "",
        "location": booking.location,
        "when": format_wall_clock_range(booking.start, booking.end),
        "description": booking.description or "",
    }


def render_invite(job_type: JobType | str, booking: Booking) -> RenderedContent:
    """
    Resolve subject, HTML and text bodies for a job type and booking snapshot.

    Booking fields are user input, so the HTML body is rendered from an
    escaped copy of the context.
    """
    message_type = JobType(job_type).value
    context = build_invite_context(booking)
    html_context = {key: html.escape(value) for key, value in context.items()}

    subject = get_message(message_type, "email_subject", context)
    text_body = get_message(message_type, "email_body", context).strip()
    html_body = get_message(message_type, "email_body", html_context).strip()

    return RenderedContent(
        subject=subject,
        html=wrap_html(html_body),
        text=with_text_footer(text_body),
    )
