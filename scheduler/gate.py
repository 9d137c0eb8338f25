"""Decides whether an account is due for its daily summary.

An account is due when the local hour (in its own timezone) equals the hour of
its preferred send time and nothing has been dispatched yet for the current
local date. Midnight is an hour like any other.
"""

import logging
from datetime import date, datetime

from utils.errors import ConfigurationError
from utils.events import as_utc, load_zone, parse_send_time

logger = logging.getLogger(__name__)


def local_now(account, now_utc: datetime) -> datetime:
    return as_utc(now_utc).astimezone(load_zone(account.timezone))


def local_date(account, now_utc: datetime) -> date:
    return local_now(account, now_utc).date()


def check_due(account, now_utc: datetime, minute_precision: bool = False) -> bool:
    """Like is_due, but raises ConfigurationError for a bad timezone or send time.

    With minute_precision (sub-hourly ticks) the configured minute is the
    trigger instant within the configured hour.
    """
    now_local = local_now(account, now_utc)
    hour, minute = parse_send_time(account.send_time)

    if account.last_delivery_date == now_local.date():
        return False

    if now_local.hour != hour:
        return False

    return not minute_precision or now_local.minute >= minute


def is_due(account, now_utc: datetime, minute_precision: bool = False) -> bool:
    """Fails closed: a misconfigured account is never due"""
    try:
        return check_due(account, now_utc, minute_precision)
    except ConfigurationError as e:
        logger.error(f"Account {account.email} ({account.id}) has invalid delivery settings: {e}")
        return False
