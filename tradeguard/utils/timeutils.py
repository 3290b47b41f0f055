"""Timestamp normalisation.

Exchange payloads carry times as epoch seconds, epoch milliseconds or ISO
strings, and SQLite hands datetimes back without tzinfo. Everything is
converted to timezone-aware UTC before comparison.
"""

from datetime import datetime, timezone

# Epoch values above this are milliseconds (year 2001 in ms, year ~33658 in s)
_MS_THRESHOLD = 1e12


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value) -> datetime:
    """Convert a datetime, epoch number or ISO string to an aware UTC datetime.

    Naive datetimes are assumed to already be in UTC.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    if isinstance(value, str):
        text = value.strip()
        try:
            number = float(text)
        except ValueError:
            return to_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
        return to_utc(number)

    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > _MS_THRESHOLD else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)

    raise TypeError(f"Unsupported timestamp value: {value!r}")
