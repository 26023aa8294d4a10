"""UTC datetime utilities."""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def seconds_until(moment: datetime, now: datetime | None = None) -> float:
    """Seconds from `now` until `moment`, never negative."""
    now = now or utc_now()
    return max((moment - now).total_seconds(), 0.0)


def minutes_after(start: datetime, minutes: int) -> datetime:
    return start + timedelta(minutes=minutes)
