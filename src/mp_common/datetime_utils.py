"""UTC datetime utilities."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def isoformat_or_none(value: datetime | None) -> str | None:
    """ISO8601 string for optional timestamps (order transition stamps, resolved_at)."""
    return value.isoformat() if value else None
