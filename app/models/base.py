"""Shared helpers for table models."""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """
    Current time as a naive UTC datetime.

    Columns are plain TIMESTAMP (no time zone), so every value written or
    compared against them goes through this helper.
    """
    return datetime.now(UTC).replace(tzinfo=None)
