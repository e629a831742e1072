"""Timezone utilities for Invulnerable."""

from datetime import UTC, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from invulnerable.config import settings


def get_now() -> datetime:
    """
    Get the current time for storage.

    Returns:
        Timezone-aware datetime in UTC
    """
    return datetime.now(UTC)


def as_utc(dt: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    SQLite hands back naive values for stored timestamps; those were written
    as UTC, so a naive input is interpreted as UTC.

    Args:
        dt: Datetime to normalize (can be naive or aware)

    Returns:
        Timezone-aware datetime in UTC
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def get_timezone() -> ZoneInfo:
    """
    Get the configured display timezone.

    Returns:
        ZoneInfo object for the configured timezone
    """
    try:
        return ZoneInfo(settings.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        # Fallback to UTC if timezone is invalid
        return ZoneInfo("UTC")


def to_local(dt: datetime) -> datetime:
    """
    Convert a datetime to the configured display timezone.

    Args:
        dt: Datetime to convert (can be naive or aware)

    Returns:
        Timezone-aware datetime in the configured timezone
    """
    return as_utc(dt).astimezone(get_timezone())
