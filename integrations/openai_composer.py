import logging
from datetime import timedelta
from typing import List, Dict, Any

from openai import AsyncOpenAI, OpenAIError

import config
from utils.errors import ComposerError
from utils.events import Event, MessageStyle
from utils.message_composer import format_event_time

logger = logging.getLogger(__name__)

STYLE_PROMPTS: Dict[MessageStyle, str] = {
    MessageStyle.PROFESSIONAL: """Create a professional and well-organized daily schedule summary.
- Use a polite, business-appropriate tone
- Start with a professional greeting mentioning the day
- List events in clear chronological order with times
- Highlight any important meetings or time-sensitive items
- End with a brief, professional closing""",

    MessageStyle.WITTY: """Create a fun and engaging daily schedule summary with personality.
- Start with a creative, witty greeting
- Use clever wordplay or light humor when describing events
- Make connections between events if relevant
- Keep it upbeat and energetic
- End with an encouraging, fun closing""",

    MessageStyle.SARCASTIC: """Create a playfully sarcastic daily schedule summary.
- Start with a dry, witty greeting
- Add sarcastic commentary about the day's events
- Use irony and understatement
- Keep it light-hearted, not mean-spirited
- End with a sarcastic but supportive closing""",

    MessageStyle.MISSION: """Create an epic mission briefing-style schedule summary.
- Start with "MISSION BRIEFING" or similar dramatic opening
- Frame each event as a mission objective or tactical operation
- Use military/action-movie language ("0900 hours", "objective", "rendezvous")
- Build excitement and motivation
- End with an epic rallying cry""",
}

missing_styles = set(MessageStyle) - set(STYLE_PROMPTS)
if missing_styles:
    raise RuntimeError(f"No prompt for message styles: {sorted(s.value for s in missing_styles)}")

SYSTEM_PROMPT = """You are an expert at creating personalized daily calendar SMS messages.

STYLE REQUIREMENTS:
{style_prompt}

FORMATTING RULES:
- Keep total message 200-400 characters for readability
- Use clear time formats (e.g., "9:00 AM" not "0900")
- List events chronologically
- NO markdown formatting
- Minimal emojis (1-2 max, only if they fit the style)
- SMS-friendly characters only
- Address the recipient by the name you are given"""

VIRTUAL_KEYWORDS = ["zoom", "teams", "meet", "webex", "skype", "virtual", "online"]


def analyze_events(events: List[Event]) -> Dict[str, Any]:
    """Context hints for the prompt: tight transitions, virtual meetings, busy periods"""
    has_back_to_back = any(
        later.start - earlier.end <= timedelta(minutes=15)
        for earlier, later in zip(events, events[1:])
    )
    has_virtual = any(
        e.location and any(k in e.location.lower() for k in VIRTUAL_KEYWORDS)
        for e in events
    )

    busy_periods = []
    if sum(1 for e in events if e.local_start.hour < 12) >= 3:
        busy_periods.append("morning")
    if sum(1 for e in events if e.local_start.hour >= 12) >= 3:
        busy_periods.append("afternoon")

    return {
        "has_back_to_back": has_back_to_back,
        "has_virtual_meetings": has_virtual,
        "busy_periods": busy_periods,
    }


def build_user_prompt(events: List[Event], name: str) -> str:
    if not events:
        return (
            f"Create a daily schedule SMS for {name} who has no events scheduled today. "
            "Make it positive and suggest they enjoy their free day."
        )

    lines = []
    for index, event in enumerate(events, start=1):
        line = f"{index}. {format_event_time(event)} - {event.title}"
        if event.location:
            line += f"\n   Location: {event.location}"
        if event.is_all_day:
            line += "\n   [All Day Event]"
        lines.append(line)

    analysis = analyze_events(events)
    context = []
    if analysis["has_back_to_back"]:
        context.append("- Back-to-back events (less than 15 min between them)")
    if analysis["has_virtual_meetings"]:
        context.append("- Some meetings are virtual/online")
    if analysis["busy_periods"]:
        context.append(f"- Busy {' and '.join(analysis['busy_periods'])} (3+ events)")

    prompt = f"Create a daily schedule SMS for {name}.\n\nToday's Events:\n" + "\n\n".join(lines)
    if context:
        prompt += "\n\nContext:\n" + "\n".join(context)
    return prompt


class OpenAIComposer:
    """Paraphrases the day's events in the account's message style"""

    def __init__(self, api_key: str = None, model: str = config.OPENAI_MODEL, max_tokens: int = 600):
        api_key = api_key or config.OPENAI_API_KEY
        if not api_key:
            raise ValueError("OPENAI_API_KEY environment variable is required")

        self.client = AsyncOpenAI(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens

    async def compose(self, events: List[Event], name: str, style: MessageStyle) -> str:
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT.format(style_prompt=STYLE_PROMPTS[MessageStyle(style)])},
            {"role": "user", "content": build_user_prompt(events, name)},
        ]

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
            )
        except OpenAIError as e:
            raise ComposerError(f"OpenAI request failed: {e}") from e

        if not response.choices or not response.choices[0].message.content:
            raise ComposerError("No text content in OpenAI response")

        text = response.choices[0].message.content.strip()
        logger.debug(f"Generated {len(text)} character message in {MessageStyle(style).value} style")
        return text
