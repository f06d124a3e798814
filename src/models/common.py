"""Shared helpers used across the ORM models and fixtures."""

from datetime import datetime, timezone

from uuid_extensions import uuid7


def utc_now() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(tz=timezone.utc)


def new_string_id() -> str:
    """Generate a string primary key from a UUID v7."""
    return str(uuid7())
