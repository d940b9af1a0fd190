"""Time zone helpers: UTC for storage, the digest zone for calendar decisions."""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from config import settings


def get_local_timezone() -> ZoneInfo:
    """Return the zone digest days and the 15:00 gate are computed in."""
    zone_name = settings.digest.timezone
    try:
        return ZoneInfo(zone_name)
    except ZoneInfoNotFoundError as exc:
        raise ValueError(f"Invalid timezone: {zone_name}") from exc


def ensure_utc(value: datetime) -> datetime:
    """Read naive values as UTC (SQLite round-trips) and normalize aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def as_local(value: datetime, tz: tzinfo | None = None) -> datetime:
    return ensure_utc(value).astimezone(tz or get_local_timezone())


def local_date_key(value: datetime) -> str:
    """Return the digest calendar day for an instant as YYYY-MM-DD."""
    return as_local(value).strftime("%Y-%m-%d")


def format_local_clock(value: datetime) -> str:
    """Render an instant as a short wall-clock time, e.g. ``3:15 PM CST``."""
    local = as_local(value)
    return f"{local.strftime('%I:%M %p').lstrip('0')} {local.tzname()}"


__all__ = ["as_local", "ensure_utc", "format_local_clock", "get_local_timezone", "local_date_key"]
