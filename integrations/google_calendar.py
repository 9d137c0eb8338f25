import asyncio
import logging
import aiohttp
from datetime import datetime, date, time, timedelta
from typing import List, Dict, Any, Optional
from zoneinfo import ZoneInfo
from google.oauth2.credentials import Credentials
from google.auth.transport.requests import Request
from google.auth import exceptions as google_exceptions
import config
from utils.encryption import encrypt_token, decrypt_token
from utils.errors import ReauthRequired, TransientError
from utils.events import Event, EventSource, as_utc

logger = logging.getLogger(__name__)


def _parse_datetime(value: str) -> datetime:
    return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def normalize_event(item: Dict[str, Any], tz_name: str) -> Event:
    """Convert a Google Calendar event resource into an Event.

    Timed events carry an RFC 3339 `dateTime`; all-day events only a `date`,
    which is taken as midnight in the event's own zone, else the account's.
    """
    start = item.get("start", {})
    end = item.get("end", {})
    display_tz = start.get("timeZone") or tz_name

    if "dateTime" in start:
        start_at = _parse_datetime(start["dateTime"])
        end_at = _parse_datetime(end["dateTime"]) if end.get("dateTime") else start_at
        is_all_day = False
    else:
        zone = ZoneInfo(display_tz)
        start_day = date.fromisoformat(start["date"])
        end_day = date.fromisoformat(end["date"]) if end.get("date") else start_day + timedelta(days=1)
        start_at = as_utc(datetime.combine(start_day, time.min, tzinfo=zone))
        end_at = as_utc(datetime.combine(end_day, time.min, tzinfo=zone))
        is_all_day = True

    return Event(
        title=item.get("summary") or "Untitled",
        start=start_at,
        end=end_at,
        timezone=tz_name,
        location=item.get("location") or None,
        is_all_day=is_all_day,
        source=EventSource.PROVIDER,
    )


class GoogleCalendarClient:
    BASE_URL = "https://www.googleapis.com/calendar/v3"

    def __init__(self, timeout: float = config.PROVIDER_TIMEOUT, calendar_id: str = "primary"):
        self.timeout = timeout
        self.calendar_id = calendar_id

    async def refresh(self, account) -> Dict[str, Any]:
        """Refresh the account's access token, returning the credential patch to persist"""
        if not account.refresh_token:
            raise ReauthRequired(f"No refresh token stored for {account.email}")

        credentials = Credentials(
            token=decrypt_token(account.access_token),
            refresh_token=decrypt_token(account.refresh_token),
            token_uri=config.GOOGLE_TOKEN_URI,
            client_id=config.GOOGLE_CLIENT_ID,
            client_secret=config.GOOGLE_CLIENT_SECRET,
        )

        try:
            await asyncio.wait_for(
                asyncio.to_thread(credentials.refresh, Request()),
                timeout=self.timeout,
            )
        except google_exceptions.RefreshError as e:
            raise ReauthRequired(f"Token refresh rejected for {account.email}: {e}") from e
        except google_exceptions.TransportError as e:
            raise TransientError(f"Token refresh failed for {account.email}: {e}") from e
        except asyncio.TimeoutError as e:
            raise TransientError(f"Token refresh timed out for {account.email}") from e

        # google-auth reports expiry as naive UTC
        expiry = credentials.expiry or (datetime.utcnow() + timedelta(hours=1))
        return {
            "access_token": encrypt_token(credentials.token),
            "token_expires_at": expiry,
        }

    async def fetch_events(self, account, window_start: datetime, window_end: datetime) -> List[Event]:
        """Fetch events overlapping [window_start, window_end) from Google Calendar"""
        token = decrypt_token(account.access_token)
        events = []
        page_token: Optional[str] = None

        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                while True:
                    params = {
                        "timeMin": as_utc(window_start).isoformat(),
                        "timeMax": as_utc(window_end).isoformat(),
                        "singleEvents": "true",
                        "orderBy": "startTime",
                        "maxResults": 250,
                    }
                    if page_token:
                        params["pageToken"] = page_token

                    async with session.get(
                        f"{self.BASE_URL}/calendars/{self.calendar_id}/events",
                        headers={"Authorization": f"Bearer {token}"},
                        params=params
                    ) as resp:
                        if resp.status in (401, 403):
                            raise ReauthRequired(f"Calendar access denied for {account.email} ({resp.status})")
                        if resp.status != 200:
                            raise TransientError(f"Calendar API returned {resp.status} for {account.email}")

                        data = await resp.json()

                    for item in data.get("items", []):
                        if item.get("status") == "cancelled":
                            continue
                        events.append(normalize_event(item, account.timezone))

                    page_token = data.get("nextPageToken")
                    if not page_token:
                        break
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientError(f"Calendar fetch failed for {account.email}: {e!r}") from e

        logger.debug(f"Fetched {len(events)} event(s) for {account.email}")
        return events
