"""Freshness policy - how old a cached quote may be before it is refetched.

All functions are pure: the caller passes ``now`` (normally from an injected
``Clock``), so the same inputs always produce the same answer.

Market hours are judged on the serving process's local wall clock
(weekday and hour of ``now``), not on any exchange calendar. There is no
holiday awareness.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from config import settings


def is_market_open(
    now: datetime,
    open_hour: Optional[int] = None,
    close_hour: Optional[int] = None,
) -> bool:
    """True on Mon-Fri between ``open_hour`` (inclusive) and ``close_hour``."""
    open_hour = settings.MARKET_OPEN_HOUR if open_hour is None else open_hour
    close_hour = settings.MARKET_CLOSE_HOUR if close_hour is None else close_hour
    if now.weekday() >= 5:
        return False
    return open_hour <= now.hour < close_hour


def required_ttl_minutes(
    now: datetime,
    is_intraday: bool = False,
    override_minutes: Optional[int] = None,
) -> int:
    """Return the maximum cache age, in minutes, for a quote request.

    Args:
        now: Current local time.
        is_intraday: Request is for intraday bars rather than daily data.
        override_minutes: Operator override; wins over everything else.

    Returns:
        The override if set; otherwise the intraday TTL for intraday
        requests; otherwise the market-open or market-closed TTL.
    """
    if override_minutes is not None:
        return override_minutes
    if is_intraday:
        return settings.INTRADAY_TTL_MIN
    if is_market_open(now):
        return settings.MARKET_OPEN_TTL_MIN
    return settings.MARKET_CLOSED_TTL_MIN


def is_fresh(updated_at: datetime, ttl_minutes: int, now: datetime) -> bool:
    """True when ``now - updated_at`` is strictly less than the TTL.

    Naive timestamps (as read back from SQLite) are taken to be UTC.
    """
    if updated_at.tzinfo is None:
        updated_at = updated_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now - updated_at < timedelta(minutes=ttl_minutes)
