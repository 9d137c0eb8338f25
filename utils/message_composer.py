import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import List, Optional, Sequence
from zoneinfo import ZoneInfo

import config
from utils.errors import ComposerError
from utils.events import Event, MessageStyle

logger = logging.getLogger(__name__)


def format_clock(value: datetime) -> str:
    """9:05 AM style clock time"""
    return value.strftime("%I:%M %p").lstrip("0")


def format_event_time(event: Event) -> str:
    if event.is_all_day:
        return "All Day"
    return f"{format_clock(event.local_start)} - {format_clock(event.local_end)}"


def format_event_line(event: Event) -> str:
    line = f"{format_event_time(event)} - {event.title}"
    if event.location:
        line += f" ({event.location})"
    return line


def replace_name(body: str, old_name: str, new_name: str) -> str:
    """Swap the first whole-word mention of old_name; text that merely contains it is left alone"""
    if not old_name:
        return body
    pattern = re.compile(rf"(?<!\w){re.escape(old_name)}(?!\w)")
    return pattern.sub(lambda _: new_name, body, count=1)


def group_by_time_of_day(events: Sequence[Event]) -> dict[str, List[Event]]:
    """Bucket events into morning (<12), afternoon (12-17) and evening (>=17) by local start hour"""
    groups: dict[str, List[Event]] = {"Morning": [], "Afternoon": [], "Evening": []}
    for event in events:
        hour = event.local_start.hour
        if hour < 12:
            groups["Morning"].append(event)
        elif hour < 17:
            groups["Afternoon"].append(event)
        else:
            groups["Evening"].append(event)
    return groups


class MessageComposer:
    """Renders an event list into an SMS body.

    The AI paraphraser is tried first when one is configured. Whatever goes wrong
    with it, the deterministic formatter below produces the message instead, so
    composing never fails.
    """

    GROUP_THRESHOLD = 4
    MAX_ITEMS_PER_SECTION = 8

    def __init__(self, ai_composer=None, ai_timeout: float = config.AI_TIMEOUT):
        self.ai_composer = ai_composer
        self.ai_timeout = ai_timeout

    async def compose(
        self,
        events: Sequence[Event],
        display_name: str,
        style: MessageStyle = MessageStyle.PROFESSIONAL,
        tz_name: str = "UTC",
        now: Optional[datetime] = None,
    ) -> str:
        if self.ai_composer is not None:
            try:
                return await self._compose_with_ai(events, display_name, style)
            except Exception as e:
                logger.warning(f"AI composer failed ({type(e).__name__}: {e}), using default format")

        return self.format_summary(events, display_name, tz_name=tz_name, now=now)

    def personalize(
        self,
        body: str,
        events: Sequence[Event],
        owner_name: str,
        recipient_name: str,
        tz_name: str = "UTC",
        now: Optional[datetime] = None,
    ) -> str:
        """The owner's message as addressed to someone else.

        A default-format body is rendered again for the recipient. An AI body
        can only have the owner's name swapped where it appears as a word.
        """
        if body == self.format_summary(events, owner_name, tz_name=tz_name, now=now):
            return self.format_summary(events, recipient_name, tz_name=tz_name, now=now)
        return replace_name(body, owner_name, recipient_name)

    async def _compose_with_ai(self, events: Sequence[Event], display_name: str, style: MessageStyle) -> str:
        try:
            text = await asyncio.wait_for(
                self.ai_composer.compose(list(events), display_name, style),
                timeout=self.ai_timeout,
            )
        except asyncio.TimeoutError as e:
            raise ComposerError(f"AI composer timed out after {self.ai_timeout}s") from e

        if not isinstance(text, str) or not text.strip():
            raise ComposerError("AI composer returned an empty message")
        return text.strip()

    def format_summary(
        self,
        events: Sequence[Event],
        display_name: str,
        tz_name: str = "UTC",
        now: Optional[datetime] = None,
    ) -> str:
        """Deterministic daily summary; has no external dependency"""
        now = now or datetime.now(timezone.utc)
        greeting = f"Good morning{f' {display_name}' if display_name else ''}!"

        if not events:
            day_name = now.astimezone(ZoneInfo(tz_name)).strftime("%A")
            return f"{greeting} Free day ahead - no events scheduled for {day_name}. Enjoy!"

        count = "1 event" if len(events) == 1 else f"{len(events)} events"
        timed = [e for e in events if not e.is_all_day]
        if timed:
            # events are ordered by start; the day ends with whichever finishes last
            last = max(timed, key=lambda e: e.end)
            span = f"{format_clock(timed[0].local_start)} - {format_clock(last.local_end)}"
        else:
            span = "All Day"

        lines = [f"{greeting} {count} today ({span}):", ""]

        if len(events) > self.GROUP_THRESHOLD:
            for section, section_events in group_by_time_of_day(events).items():
                if not section_events:
                    continue
                lines.append(f"{section} ({len(section_events)}):")
                for event in section_events[:self.MAX_ITEMS_PER_SECTION]:
                    lines.append(f"• {format_event_line(event)}")
                if len(section_events) > self.MAX_ITEMS_PER_SECTION:
                    lines.append(f"...and {len(section_events) - self.MAX_ITEMS_PER_SECTION} more")
                lines.append("")
        else:
            for index, event in enumerate(events, start=1):
                lines.append(f"{index}. {format_event_line(event)}")
            lines.append("")

        lines.append("Have a great day!")
        return "\n".join(lines)
