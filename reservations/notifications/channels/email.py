"""SendGrid email delivery channel for calendar invites."""

import asyncio
import base64
import logging

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import (
    Attachment,
    Disposition,
    FileContent,
    FileName,
    FileType,
    Mail,
)

from reservations.config import get_from_address, get_sendgrid_api_key
from reservations.enums import IcsMethod

logger = logging.getLogger(__name__)


ICS_FILENAME = "reservation.ics"

FOOTER = (
    "This message was sent automatically by the Briya Room Reservation System. "
    "Please do not reply to this email."
)

_client: SendGridAPIClient | None = None


class TransientDeliveryError(Exception):
    """The mail transport did not accept a message. Retried by the worker."""


def wrap_html(body: str) -> str:
    """
    Lay out an HTML-safe body as an email document.

    Line breaks become <br>; the body must already be escaped.
    """
    lines = body.replace("\n", "<br>\n")
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
</head>
<body style="font-family: Arial, sans-serif; line-height: 1.5; color: #111827;">
{lines}
<p style="font-size: 12px; color: #6b7280;">{FOOTER}</p>
</body>
</html>"""


def with_text_footer(body: str) -> str:
    return f"{body}\n\n--\n{FOOTER}"


def _get_sendgrid_client() -> SendGridAPIClient | None:
    """SendGrid client for SENDGRID_API_KEY, created on first use. None when unset."""
    global _client
    api_key = get_sendgrid_api_key()
    if _client is None and api_key:
        _client = SendGridAPIClient(api_key)
    return _client


def build_invite_message(
    recipients: list[str],
    subject: str,
    html: str,
    text: str,
    ics: str | None = None,
    ics_method: IcsMethod | str = IcsMethod.REQUEST,
) -> Mail:
    """Assemble the SendGrid message; every recipient gets a separate copy."""
    message = Mail(
        from_email=get_from_address(),
        to_emails=list(recipients),
        subject=subject,
        plain_text_content=text,
        html_content=html,
        is_multiple=True,
    )

    if ics:
        method = IcsMethod(ics_method).value
        message.attachment = Attachment(
            FileContent(base64.b64encode(ics.encode("utf-8")).decode("ascii")),
            FileName(ICS_FILENAME),
            FileType(f"text/calendar; method={method}"),
            Disposition("attachment"),
        )

    return message


async def send_invite_email(
    recipients: list[str],
    subject: str,
    html: str,
    text: str,
    ics: str | None = None,
    ics_method: IcsMethod | str = IcsMethod.REQUEST,
) -> None:
    """
    Send an invite email via SendGrid.

    Does not retry; retries belong to the worker.

    Raises:
        TransientDeliveryError: If SendGrid is not configured, the client
            raises, or the response is not 2xx
    """
    if not recipients:
        raise TransientDeliveryError("No recipients")

    client = _get_sendgrid_client()
    if not client:
        raise TransientDeliveryError("SendGrid not configured (SENDGRID_API_KEY not set)")

    message = build_invite_message(recipients, subject, html, text, ics, ics_method)

    try:
        # SendGrid client is blocking
        response = await asyncio.to_thread(client.send, message)
    except Exception as e:
        raise TransientDeliveryError(f"SendGrid error: {e}") from e

    if response.status_code not in (200, 201, 202):
        raise TransientDeliveryError(f"SendGrid returned status {response.status_code}")

    logger.info(f"Invite email '{subject}' accepted for {len(recipients)} recipient(s)")
