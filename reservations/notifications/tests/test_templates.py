"""Tests for invite email templates."""

from dataclasses import replace
from datetime import datetime

import pytest

from reservations.enums import JobType
from reservations.notifications.templates import (
    RenderedContent,
    format_wall_clock,
    format_wall_clock_range,
    get_message,
    load_templates,
    render_invite,
)


class TestLoadTemplates:
    def test_every_job_type_has_subject_and_body(self):
        templates = load_templates()

        for job_type in JobType:
            assert "email_subject" in templates[job_type.value]
            assert "email_body" in templates[job_type.value]

    def test_missing_variable_raises(self):
        with pytest.raises(KeyError):
            get_message("invite_create", "email_subject", {})


class TestFormatWallClock:
    def test_morning(self):
        assert format_wall_clock(datetime(2025, 1, 6, 9, 0)) == "Monday, January 6, 2025 • 9:00 AM"

    def test_afternoon_and_noon(self):
        assert format_wall_clock(datetime(2025, 1, 6, 14, 30)).endswith("2:30 PM")
        assert format_wall_clock(datetime(2025, 1, 6, 12, 0)).endswith("12:00 PM")

    def test_same_day_range_shows_end_time_only(self):
        result = format_wall_clock_range(datetime(2025, 1, 6, 9), datetime(2025, 1, 6, 10))
        assert result == "Monday, January 6, 2025 • 9:00 AM to 10:00 AM"

    def test_overnight_range_shows_both_dates(self):
        result = format_wall_clock_range(datetime(2025, 1, 6, 22), datetime(2025, 1, 7, 1))
        assert result.endswith("to Tuesday, January 7, 2025 • 1:00 AM")


class TestRenderInvite:
    def test_create(self, booking):
        content = render_invite(JobType.invite_create, booking)

        assert content.subject == "Room Reservation: Team Sync"
        assert "Room: Room 101 – Main Campus" in content.text
        assert "Monday, January 6, 2025 • 9:00 AM to 10:00 AM" in content.text
        assert "<br>" in content.html

    def test_update_and_cancel_subjects(self, booking):
        assert render_invite(JobType.invite_update, booking).subject == (
            "Updated Reservation: Team Sync"
        )
        assert render_invite("invite_cancel", booking).subject == (
            "Reservation Cancelled: Team Sync"
        )

    def test_untitled_booking(self, booking):
        content = render_invite(JobType.invite_create, replace(booking, title=None))
        assert content.subject == "Room Reservation: Room Reservation"

    def test_payload_form(self, booking):
        content = render_invite(JobType.invite_create, booking)
        assert RenderedContent.from_payload(content.to_payload()) == content

    def test_html_body_escapes_booking_fields(self, booking):
        tricky = replace(booking, room_name_snapshot="<b>101</b>")

        content = render_invite(JobType.invite_create, tricky)

        assert "&lt;b&gt;101&lt;/b&gt;" in content.html
        assert "<b>101</b>" not in content.html
        assert "Room: <b>101</b> – Main Campus" in content.text
        assert "Please do not reply to this email." in content.text
