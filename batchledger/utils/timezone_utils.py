from __future__ import annotations

from datetime import datetime, timezone as dt_timezone


class TimezoneUtils:
    """Timestamp helpers shared by models and services."""

    @staticmethod
    def utc_now() -> datetime:
        """Return the current UTC timestamp (timezone aware)."""
        return datetime.now(dt_timezone.utc)

    @staticmethod
    def ensure_utc(value: datetime | None) -> datetime | None:
        """Treat naive datetimes as UTC and convert aware ones to UTC."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt_timezone.utc)
        return value.astimezone(dt_timezone.utc)
