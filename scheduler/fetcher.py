import asyncio
import logging
from datetime import datetime, timedelta
from typing import List

import config
from utils.errors import ReauthRequired, TransientError
from utils.events import Event, EventSource, as_utc

logger = logging.getLogger(__name__)


def manual_event_to_event(manual, tz_name: str) -> Event:
    return Event(
        title=manual.title,
        start=as_utc(manual.start),
        end=as_utc(manual.end),
        timezone=tz_name,
        location=manual.location,
        is_all_day=manual.is_all_day,
        source=EventSource.MANUAL,
    )


class EventWindowFetcher:
    """Fetches the provider events in a forward window and merges the account's manual events"""

    def __init__(
        self,
        provider,
        store,
        refresh_margin: timedelta = timedelta(minutes=config.TOKEN_REFRESH_MARGIN_MINUTES),
        timeout: float = config.PROVIDER_TIMEOUT,
    ):
        self.provider = provider
        self.store = store
        self.refresh_margin = refresh_margin
        self.timeout = timeout

    async def refresh_if_expiring(self, account, now: datetime):
        """Refresh the provider credential when it expires within the safety margin.

        Any refresh failure other than a network hiccup means the user must log
        in again, so it surfaces as ReauthRequired.
        """
        if account.token_expires_at and as_utc(account.token_expires_at) - as_utc(now) > self.refresh_margin:
            return account

        logger.info(f"Refreshing access token for {account.email}")
        try:
            patch = await asyncio.wait_for(self.provider.refresh(account), timeout=self.timeout)
        except (ReauthRequired, TransientError):
            raise
        except asyncio.TimeoutError as e:
            raise TransientError(f"Token refresh timed out for {account.email}") from e
        except Exception as e:
            raise ReauthRequired(f"Failed to refresh access token for {account.email}: {e}") from e

        return await self.store.update(account.id, **patch)

    async def get_window(self, account, duration: timedelta, now: datetime) -> List[Event]:
        """Events starting in [now, now + duration), sorted by start, provider before manual on ties"""
        now = as_utc(now)
        window_end = now + duration

        account = await self.refresh_if_expiring(account, now)

        try:
            provider_events = await asyncio.wait_for(
                self.provider.fetch_events(account, now, window_end),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise TransientError(f"Calendar fetch timed out for {account.email}") from e

        manual_events = [
            manual_event_to_event(m, account.timezone)
            for m in account.manual_events
            if now <= as_utc(m.start) < window_end
        ]

        return sorted(list(provider_events) + manual_events, key=Event.sort_key)
