"""In-process stand-ins for the calendar provider, SMS transport and AI composer."""

import asyncio
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from utils.encryption import encrypt_token
from utils.errors import TransportError
from utils.events import Event, EventSource


def local_event(title, tz_name, day, start_hour, start_minute=0, minutes=60, location=None):
    """Build a provider event from a local wall-clock time"""
    start = datetime(day.year, day.month, day.day, start_hour, start_minute, tzinfo=ZoneInfo(tz_name))
    return Event(
        title=title,
        start=start.astimezone(timezone.utc),
        end=(start + timedelta(minutes=minutes)).astimezone(timezone.utc),
        timezone=tz_name,
        location=location,
        source=EventSource.PROVIDER,
    )


class FakeProvider:
    def __init__(self, events=None, refresh_error=None, fetch_error=None, fetch_delay=0):
        self.events = list(events or [])
        self.refresh_error = refresh_error
        self.fetch_error = fetch_error
        self.fetch_delay = fetch_delay
        self.refresh_calls = 0
        self.fetch_calls = []

    async def refresh(self, account):
        self.refresh_calls += 1
        if self.refresh_error:
            raise self.refresh_error
        return {
            "access_token": encrypt_token("refreshed-access-token"),
            "token_expires_at": datetime(2099, 1, 1),
        }

    async def fetch_events(self, account, window_start, window_end):
        self.fetch_calls.append((window_start, window_end))
        if self.fetch_delay:
            await asyncio.sleep(self.fetch_delay)
        if self.fetch_error:
            raise self.fetch_error
        return list(self.events)


class FakeTransport:
    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.sent = []
        self.attempts = []

    async def send(self, to, body):
        self.attempts.append(to)
        if to in self.fail_for:
            raise TransportError(to, "rejected by carrier")
        self.sent.append((to, body))
        return f"SM{len(self.sent):04d}"

    def bodies_for(self, phone):
        return [body for to, body in self.sent if to == phone]


class FakeAIComposer:
    def __init__(self, reply=None, error=None, delay=0):
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls = []

    async def compose(self, events, name, style):
        self.calls.append((events, name, style))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.reply
