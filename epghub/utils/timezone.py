"""
Date and Time utilities

This module handles UTC normalization, ISO8601 parsing and XMLTV timestamp
parsing. Centralizes all date parsing logic to maintain consistency across the
application.
"""
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo
import logging

logger = logging.getLogger(__name__)

XMLTV_TIME_FORMAT = "%Y%m%d%H%M%S"


class DateFormatError(ValueError):
    """Raised when date format is invalid"""
    pass


def _normalize_iso8601_string(date_str: str) -> str:
    """Normalize ISO8601 string by replacing 'Z' with '+00:00'"""
    return date_str.replace('Z', '+00:00') if date_str.endswith('Z') else date_str


def parse_iso8601_to_utc(date_str: str) -> datetime:
    """
    Parse ISO8601 date string and convert to UTC datetime

    Args:
        date_str: ISO8601 datetime string (e.g., '2025-10-09T00:00:00Z' or '2025-10-09T00:00:00+01:00')

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        DateFormatError: If the date string format is invalid
    """
    try:
        normalized = _normalize_iso8601_string(date_str)
        dt = datetime.fromisoformat(normalized)
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except (ValueError, AttributeError) as e:
        raise DateFormatError(f"Invalid ISO8601 datetime format: '{date_str}'") from e


def ensure_utc(value: datetime) -> datetime:
    """
    Normalize a query instant to UTC.

    Naive datetimes are taken as host local time, matching datetime.astimezone().
    """
    return value.astimezone(timezone.utc)


def parse_xmltv_time(time_str: str | None) -> datetime | None:
    """
    Convert an XMLTV timestamp to a UTC datetime

    Accepts 'YYYYMMDDhhmmss' optionally followed by a '+hhmm'/'-hhmm' offset
    (spaces between the two parts are ignored). Without an offset the value is
    interpreted in the host machine's local time zone.

    Args:
        time_str: XMLTV time like '20080715003000 -0600'

    Returns:
        Timezone-aware datetime in UTC, or None when the value is unusable
    """
    value = (time_str or "").strip()
    if len(value) < 14:
        return None

    time_part = value[:14]
    if not time_part.isdigit():
        return None

    try:
        dt = datetime.strptime(time_part, XMLTV_TIME_FORMAT)
    except ValueError:
        return None

    tz_part = value[14:].replace(" ", "")
    if len(tz_part) == 5 and tz_part[0] in "+-" and tz_part[1:].isdigit():
        tz_sign = -1 if tz_part[0] == '-' else 1
        tz_offset = timedelta(hours=int(tz_part[1:3]), minutes=int(tz_part[3:5]))
        try:
            return (dt - tz_sign * tz_offset).replace(tzinfo=timezone.utc)
        except OverflowError:
            return None

    # No usable offset: host local time
    try:
        return dt.astimezone(timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def convert_to_timezone(value: datetime, target_tz: str) -> str:
    """
    Convert a UTC datetime to an ISO8601 string in the target timezone

    Args:
        value: Timezone-aware datetime
        target_tz: Target timezone (IANA format or 'UTC')

    Returns:
        ISO8601 timestamp in target timezone
    """
    if target_tz == "UTC":
        return value.astimezone(timezone.utc).isoformat()
    return value.astimezone(ZoneInfo(target_tz)).isoformat()
