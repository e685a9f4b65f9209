"""
Datetime utility functions for handling timezone-aware datetimes.
"""
from datetime import datetime, timezone


def utc_now() -> datetime:
    """
    Return the current datetime in UTC timezone.

    Using this function instead of datetime.now(timezone.utc) directly
    enables easier testing through mocking.

    Returns:
        A timezone-aware datetime object representing the current time in UTC.
    """
    return datetime.now(timezone.utc)
