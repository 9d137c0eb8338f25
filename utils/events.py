import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from utils.errors import ConfigurationError


class MessageStyle(str, enum.Enum):
    PROFESSIONAL = "professional"
    WITTY = "witty"
    SARCASTIC = "sarcastic"
    MISSION = "mission"


class EventSource(enum.IntEnum):
    # ordering is the tie-break when two events start at the same instant
    PROVIDER = 0
    MANUAL = 1


@dataclass(frozen=True)
class Event:
    """A calendar event normalized to UTC instants plus the zone to display it in"""

    title: str
    start: datetime
    end: datetime
    timezone: str = "UTC"
    location: Optional[str] = None
    is_all_day: bool = False
    source: EventSource = EventSource.PROVIDER

    @property
    def local_start(self) -> datetime:
        return self.start.astimezone(ZoneInfo(self.timezone))

    @property
    def local_end(self) -> datetime:
        return self.end.astimezone(ZoneInfo(self.timezone))

    def sort_key(self):
        return (self.start, self.source, self.title)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (as stored in the database) and normalize aware ones"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_naive_utc(value: datetime) -> datetime:
    return as_utc(value).replace(tzinfo=None)


def load_zone(name: Optional[str]) -> ZoneInfo:
    """Resolve an IANA zone name, raising ConfigurationError instead of falling back to UTC"""
    if not name:
        raise ConfigurationError("No timezone configured")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f"Invalid timezone {name!r}") from e


def parse_send_time(value: Optional[str]) -> tuple[int, int]:
    """Parse an HH:MM preferred send time"""
    try:
        hour_str, minute_str = (value or "").split(":")
        hour, minute = int(hour_str), int(minute_str)
    except ValueError as e:
        raise ConfigurationError(f"Invalid send time {value!r}") from e

    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ConfigurationError(f"Invalid send time {value!r}")
    return hour, minute
