"""Tests for course email templates."""

from dripcourse.email.templates import render_week_unlocked, render_welcome
from dripcourse.enrollments.content import WeekContent, get_week_content


PORTAL_LINK = "https://course.example.com/portal?token=abc123"


class TestWelcomeTemplate:
    """Tests for render_welcome."""

    def test_renders_html_and_text(self) -> None:
        html, text = render_welcome(
            email="ana@example.com",
            portal_link=PORTAL_LINK,
            first_week=get_week_content(1),
            support_email="help@example.com",
        )

        assert "<!DOCTYPE html>" in html
        assert len(text) > 0

    def test_contains_portal_link_and_week_one(self) -> None:
        html, text = render_welcome(
            email="ana@example.com",
            portal_link=PORTAL_LINK,
            first_week=get_week_content(1),
            support_email="help@example.com",
        )

        assert PORTAL_LINK in html
        assert PORTAL_LINK in text
        assert "Created for a Purpose" in html
        assert "You Are God&#x27;s Masterpiece" in html
        assert "help@example.com" in text

    def test_uses_course_length(self) -> None:
        html, text = render_welcome(
            email="ana@example.com",
            portal_link=PORTAL_LINK,
            first_week=get_week_content(1),
            support_email="help@example.com",
            total_weeks=8,
            interval_days=3,
        )

        assert "8-week masterclass" in html
        assert "every 3 days" in text

    def test_escapes_user_input(self) -> None:
        html, _ = render_welcome(
            email="<script>@example.com",
            portal_link=PORTAL_LINK + '"&x=1',
            first_week=get_week_content(1),
            support_email="help@example.com",
        )

        assert "<script>" not in html
        assert "&lt;script&gt;" in html
        assert '"&x=1' not in html


class TestWeekUnlockedTemplate:
    """Tests for render_week_unlocked."""

    def test_contains_week_number_title_and_link(self) -> None:
        html, text = render_week_unlocked(get_week_content(3), PORTAL_LINK)

        assert "Week 3 is Now Available!" in html
        assert "Aligning Passion with Purpose" in html
        assert "completing Week 2" in text
        assert PORTAL_LINK in text

    def test_lists_sessions(self) -> None:
        week = WeekContent(4, "Custom", ("Monday: One", "Friday: Two"))

        html, text = render_week_unlocked(week, PORTAL_LINK)

        assert "<li>Monday: One</li>" in html
        assert "- Friday: Two" in text

    def test_unknown_week_has_generic_title(self) -> None:
        html, _ = render_week_unlocked(get_week_content(9), PORTAL_LINK)

        assert "Week 9" in html
