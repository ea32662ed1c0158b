"""Time-based reset rules for document sequences."""

from datetime import datetime, timezone

from src.core.documents.models import ResetFrequency


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they were stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def reset_due(
    frequency: str | ResetFrequency,
    last_reset_date: datetime | None,
    now: datetime,
) -> bool:
    """Return True when the period containing last_reset_date is over."""
    frequency = ResetFrequency(frequency)
    if frequency == ResetFrequency.NEVER:
        return False
    if last_reset_date is None:
        return True

    last = _as_utc(last_reset_date)
    current = _as_utc(now)

    if frequency == ResetFrequency.YEARLY:
        return last.year != current.year
    if frequency == ResetFrequency.MONTHLY:
        return (last.year, last.month) != (current.year, current.month)
    return last.date() != current.date()


def period_start(frequency: str | ResetFrequency, now: datetime) -> datetime | None:
    """Start of the reset period containing now, or None when numbers never reset."""
    frequency = ResetFrequency(frequency)
    current = _as_utc(now)
    midnight = current.replace(hour=0, minute=0, second=0, microsecond=0)

    if frequency == ResetFrequency.NEVER:
        return None
    if frequency == ResetFrequency.YEARLY:
        return midnight.replace(month=1, day=1)
    if frequency == ResetFrequency.MONTHLY:
        return midnight.replace(day=1)
    return midnight
