"""Tests for display helpers."""

from datetime import datetime, timezone

import pytest

from conftest import make_task
from rtm_client.models import Priority, TimeLeft, TimeLeftKind
from rtm_client.status_display import (
    ELLIPSIS,
    PRIORITY_COLORS,
    format_due,
    format_human_time,
    format_time_left,
    get_priority_color,
    tail_end,
)


class TestFormatHumanTime:
    """Tests for format_human_time."""

    @pytest.mark.parametrize(
        "secs,expected",
        [
            (5, "5 secs"),
            (1, "1 sec"),
            (60, "60 secs"),
            (90, "1 minute"),
            (150, "2 minutes"),
            (2 * 3600 + 1, "2 hours"),
            (3 * 86400 + 5, "3 days"),
        ],
    )
    def test_largest_unit(self, secs, expected):
        """The largest whole unit is used."""
        assert format_human_time(secs) == expected


class TestFormatTimeLeft:
    """Tests for format_time_left."""

    def test_urgent(self):
        """Less than an hour left is red."""
        text = format_time_left(TimeLeft(TimeLeftKind.REMAINING, 120))
        assert text.plain == "2 minutes"
        assert text.style == "red"

    def test_not_urgent(self):
        """More time left is yellow."""
        text = format_time_left(TimeLeft(TimeLeftKind.REMAINING, 2 * 86400 + 10))
        assert text.plain == "2 days"
        assert text.style == "yellow"

    def test_overdue(self):
        """Overdue tasks say how long ago."""
        text = format_time_left(TimeLeft(TimeLeftKind.OVERDUE, 7300))
        assert text.plain == "2 hours ago"

    def test_completed(self):
        """Completed tasks say done."""
        assert format_time_left(TimeLeft(TimeLeftKind.COMPLETED)).plain == "done"

    def test_no_due(self):
        """No due date renders nothing."""
        assert format_time_left(TimeLeft(TimeLeftKind.NO_DUE)).plain == ""


class TestFormatDue:
    """Tests for format_due."""

    def test_date_only(self):
        """Date-only due dates omit the time."""
        task = make_task("t1")
        task.due = datetime(2024, 6, 1, tzinfo=timezone.utc)
        assert format_due(task) == "2024-06-01"

    def test_no_due(self):
        """Tasks without a due date format as empty."""
        assert format_due(make_task("t1")) == ""


class TestPriority:
    """Tests for priority colors."""

    def test_every_priority_has_color(self):
        """All priorities are mapped."""
        for priority in Priority:
            assert get_priority_color(priority) == PRIORITY_COLORS[priority]


class TestTailEnd:
    """Tests for tail_end."""

    def test_short_text_unchanged(self):
        """Text that fits is returned as is."""
        assert tail_end("hello", 10) == "hello"

    def test_keeps_end(self):
        """Long text keeps its end behind an ellipsis."""
        result = tail_end("abcdefghij", 5)
        assert result == ELLIPSIS + "ghij"

    def test_wide_characters(self):
        """Double-width characters are measured in cells."""
        result = tail_end("日本語のテキスト", 7)
        assert result.startswith(ELLIPSIS)
        assert result.endswith("スト")

    def test_zero_width(self):
        """Zero width yields nothing."""
        assert tail_end("abc", 0) == ""
