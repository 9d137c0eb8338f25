"""Tests for SMS message composition."""

import asyncio
from datetime import date, datetime, timezone

import pytest

from tests.fakes import FakeAIComposer, local_event
from utils.events import Event, MessageStyle
from utils.message_composer import MessageComposer, format_event_line, group_by_time_of_day

TZ = "America/Los_Angeles"
DAY = date(2026, 10, 19)  # a Monday
NOW = datetime(2026, 10, 19, 14, 2, tzinfo=timezone.utc)


def section_items(message, header):
    """Bullet lines that follow a section header, up to the next blank line"""
    lines = message.splitlines()
    start = lines.index(header) + 1
    items = []
    for line in lines[start:]:
        if not line.strip():
            break
        items.append(line)
    return items


@pytest.fixture
def five_events():
    return [
        local_event("Standup", TZ, DAY, 8),
        local_event("Design review", TZ, DAY, 9, location="Zoom"),
        local_event("Dentist", TZ, DAY, 10, 30),
        local_event("Client call", TZ, DAY, 13),
        local_event("Code review", TZ, DAY, 15, minutes=30),
    ]


class TestDefaultFormat:
    """Tests for the deterministic formatter."""

    @pytest.mark.asyncio
    async def test_empty_day(self):
        """Test that no events gives a free-day message, never an empty one."""
        message = await MessageComposer().compose([], "Alex", MessageStyle.PROFESSIONAL, tz_name=TZ, now=NOW)

        assert message == "Good morning Alex! Free day ahead - no events scheduled for Monday. Enjoy!"

    @pytest.mark.asyncio
    async def test_flat_list_for_few_events(self):
        """Test that three events render as a numbered list."""
        events = [
            local_event("Standup", TZ, DAY, 9),
            local_event("Lunch", TZ, DAY, 12, location="Cafe"),
            local_event("Gym", TZ, DAY, 18),
        ]

        message = await MessageComposer().compose(events, "Alex", tz_name=TZ, now=NOW)

        numbered = [line for line in message.splitlines() if line[:2] in ("1.", "2.", "3.", "4.")]
        assert numbered == [
            "1. 9:00 AM - 10:00 AM - Standup",
            "2. 12:00 PM - 1:00 PM - Lunch (Cafe)",
            "3. 6:00 PM - 7:00 PM - Gym",
        ]
        assert message.startswith("Good morning Alex! 3 events today (9:00 AM - 7:00 PM):")
        assert "Morning" not in message
        assert message.endswith("Have a great day!")

    @pytest.mark.asyncio
    async def test_time_range_ends_with_latest_finish(self):
        """Test that a long early event, not the last to start, closes the day's range."""
        events = [
            local_event("Offsite", TZ, DAY, 9, minutes=9 * 60),
            local_event("Standup", TZ, DAY, 10, minutes=15),
        ]

        message = await MessageComposer().compose(events, "Alex", tz_name=TZ, now=NOW)

        assert message.startswith("Good morning Alex! 2 events today (9:00 AM - 6:00 PM):")

    @pytest.mark.asyncio
    async def test_time_range_ignores_all_day_events(self):
        start = datetime(2026, 10, 19, 7, 0, tzinfo=timezone.utc)  # midnight in Los Angeles
        holiday = Event(title="Holiday", start=start, end=start.replace(day=20), timezone=TZ, is_all_day=True)
        events = [holiday, local_event("Standup", TZ, DAY, 9, minutes=15)]

        message = await MessageComposer().compose(events, "Alex", tz_name=TZ, now=NOW)

        assert message.startswith("Good morning Alex! 2 events today (9:00 AM - 9:15 AM):")

    @pytest.mark.asyncio
    async def test_grouped_sections_above_threshold(self, five_events):
        """Test that five events are bucketed by time of day."""
        message = await MessageComposer().compose(five_events, "Alex", tz_name=TZ, now=NOW)

        morning = section_items(message, "Morning (3):")
        afternoon = section_items(message, "Afternoon (2):")
        assert len(morning) == 3
        assert len(afternoon) == 2
        assert all(line.startswith("• ") for line in morning + afternoon)
        assert "Evening" not in message
        assert "• 9:00 AM - 10:00 AM - Design review (Zoom)" in morning

    @pytest.mark.asyncio
    async def test_single_event_wording(self):
        """Test the singular count line."""
        events = [local_event("Standup", TZ, DAY, 9, minutes=15)]

        message = await MessageComposer().compose(events, "Alex", tz_name=TZ, now=NOW)

        assert message.startswith("Good morning Alex! 1 event today (9:00 AM - 9:15 AM):")

    @pytest.mark.asyncio
    async def test_long_sections_are_capped(self):
        """Test that a busy section is cut short with a remainder line."""
        events = [local_event(f"Slot {i}", TZ, DAY, 13 + i // 4, (i % 4) * 15, minutes=15) for i in range(12)]
        composer = MessageComposer()

        message = await composer.compose(events, "Alex", tz_name=TZ, now=NOW)

        items = section_items(message, "Afternoon (12):")
        assert len([line for line in items if line.startswith("• ")]) == composer.MAX_ITEMS_PER_SECTION
        assert items[-1] == "...and 4 more"

    def test_all_day_event_line(self):
        """Test that all-day events show no clock times."""
        event = Event(
            title="Public holiday",
            start=datetime(2026, 10, 19, 7, tzinfo=timezone.utc),
            end=datetime(2026, 10, 20, 7, tzinfo=timezone.utc),
            timezone=TZ,
            is_all_day=True,
        )

        assert format_event_line(event) == "All Day - Public holiday"

    def test_evening_bucket_boundary(self):
        """Test that 17:00 belongs to the evening and 16:59 to the afternoon."""
        groups = group_by_time_of_day([
            local_event("Late afternoon", TZ, DAY, 16, 59),
            local_event("Dinner", TZ, DAY, 17),
            local_event("Breakfast", TZ, DAY, 11, 59),
            local_event("Lunch", TZ, DAY, 12),
        ])

        assert [e.title for e in groups["Morning"]] == ["Breakfast"]
        assert [e.title for e in groups["Afternoon"]] == ["Late afternoon", "Lunch"]
        assert [e.title for e in groups["Evening"]] == ["Dinner"]


class TestAIComposition:
    """Tests for the AI path and its fallback."""

    @pytest.mark.asyncio
    async def test_uses_ai_reply(self, five_events):
        """Test that a good AI reply is used as-is."""
        ai = FakeAIComposer(reply="  MISSION BRIEFING for Alex: 5 objectives today.  ")
        composer = MessageComposer(ai)

        message = await composer.compose(five_events, "Alex", MessageStyle.MISSION, tz_name=TZ, now=NOW)

        assert message == "MISSION BRIEFING for Alex: 5 objectives today."
        assert ai.calls[0][1:] == ("Alex", MessageStyle.MISSION)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [RuntimeError("boom"), ValueError("bad json"), KeyError("choices")])
    async def test_falls_back_when_ai_raises(self, five_events, error):
        """Test that any AI failure yields the default message."""
        composer = MessageComposer(FakeAIComposer(error=error))

        message = await composer.compose(five_events, "Alex", MessageStyle.WITTY, tz_name=TZ, now=NOW)

        assert message == composer.format_summary(five_events, "Alex", tz_name=TZ, now=NOW)
        assert "Morning (3):" in message

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", ["", "   ", None])
    async def test_falls_back_on_empty_reply(self, reply):
        """Test that a blank AI reply is not sent."""
        composer = MessageComposer(FakeAIComposer(reply=reply))

        message = await composer.compose([], "Alex", tz_name=TZ, now=NOW)

        assert "Free day ahead" in message

    @pytest.mark.asyncio
    async def test_falls_back_on_timeout(self):
        """Test that a hung AI call is abandoned."""
        composer = MessageComposer(FakeAIComposer(reply="late", delay=1), ai_timeout=0.01)

        message = await composer.compose([], "Alex", tz_name=TZ, now=NOW)

        assert message.startswith("Good morning Alex! Free day ahead")

    @pytest.mark.asyncio
    async def test_cancellation_is_not_swallowed(self):
        """Test that cancelling the caller still cancels composition."""
        composer = MessageComposer(FakeAIComposer(reply="late", delay=5), ai_timeout=10)

        task = asyncio.ensure_future(composer.compose([], "Alex", tz_name=TZ, now=NOW))
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
