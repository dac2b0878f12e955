"""Tests for the SendGrid invite channel."""

import base64
from unittest.mock import MagicMock, patch

import pytest

from reservations.enums import IcsMethod
from reservations.notifications.channels.email import (
    TransientDeliveryError,
    build_invite_message,
    send_invite_email,
    with_text_footer,
    wrap_html,
)

ICS = "BEGIN:VCALENDAR\r\nMETHOD:CANCEL\r\nEND:VCALENDAR\r\n"


class TestLayout:
    def test_html_keeps_line_breaks_and_footer(self):
        html = wrap_html("Room: 101\nTime: 9:00 AM")

        assert "Room: 101<br>\nTime: 9:00 AM" in html
        assert "Please do not reply to this email." in html

    def test_text_footer(self):
        assert with_text_footer("Hello").startswith("Hello\n\n--\n")


class TestBuildInviteMessage:
    def test_one_personalization_per_recipient(self):
        message = build_invite_message(
            ["alice@example.com", "bob@example.com"], "Subject", "<p>Hi</p>", "Hi"
        )

        body = message.get()
        assert len(body["personalizations"]) == 2
        assert "attachments" not in body

    def test_ics_attachment_carries_method(self):
        message = build_invite_message(
            ["alice@example.com"], "Subject", "<p>Hi</p>", "Hi", ics=ICS, ics_method=IcsMethod.CANCEL
        )

        attachment = message.get()["attachments"][0]
        assert attachment["filename"] == "reservation.ics"
        assert attachment["type"] == "text/calendar; method=CANCEL"
        assert base64.b64decode(attachment["content"]).decode("utf-8") == ICS


class TestSendInviteEmail:
    @pytest.mark.asyncio
    async def test_sends_through_client(self):
        client = MagicMock()
        client.send.return_value = MagicMock(status_code=202)

        with patch(
            "reservations.notifications.channels.email._get_sendgrid_client",
            return_value=client,
        ):
            await send_invite_email(["alice@example.com"], "Subject", "<p>Hi</p>", "Hi", ics=ICS)

        client.send.assert_called_once()

    @pytest.mark.asyncio
    async def test_non_2xx_is_transient_failure(self):
        client = MagicMock()
        client.send.return_value = MagicMock(status_code=500)

        with patch(
            "reservations.notifications.channels.email._get_sendgrid_client",
            return_value=client,
        ):
            with pytest.raises(TransientDeliveryError, match="500"):
                await send_invite_email(["alice@example.com"], "Subject", "<p>Hi</p>", "Hi")

    @pytest.mark.asyncio
    async def test_client_exception_is_transient_failure(self):
        client = MagicMock()
        client.send.side_effect = RuntimeError("connection reset")

        with patch(
            "reservations.notifications.channels.email._get_sendgrid_client",
            return_value=client,
        ):
            with pytest.raises(TransientDeliveryError, match="connection reset"):
                await send_invite_email(["alice@example.com"], "Subject", "<p>Hi</p>", "Hi")

    @pytest.mark.asyncio
    async def test_not_configured(self):
        with patch(
            "reservations.notifications.channels.email._get_sendgrid_client",
            return_value=None,
        ):
            with pytest.raises(TransientDeliveryError, match="not configured"):
                await send_invite_email(["alice@example.com"], "Subject", "<p>Hi</p>", "Hi")

    @pytest.mark.asyncio
    async def test_no_recipients(self):
        with pytest.raises(TransientDeliveryError):
            await send_invite_email([], "Subject", "<p>Hi</p>", "Hi")

    @pytest.mark.asyncio
    async def test_missing_api_key_means_not_configured(self, monkeypatch):
        monkeypatch.delenv("SENDGRID_API_KEY", raising=False)

        with patch("reservations.notifications.channels.email._client", None):
            with pytest.raises(TransientDeliveryError, match="not configured"):
                await send_invite_email(["alice@example.com"], "Subject", "<p>Hi</p>", "Hi")
