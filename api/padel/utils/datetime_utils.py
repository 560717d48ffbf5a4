"""Datetime helpers.

All datetimes are stored in UTC. Some backends (SQLite) hand back naive
values, so anything read from the database goes through ``as_utc`` before
being compared with ``utcnow()``.
"""

from datetime import UTC, date, datetime, timedelta


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to a naive datetime, or convert an aware one to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def hours_until(value: datetime, now: datetime | None = None) -> float:
    now = now or utcnow()
    return (as_utc(value) - now).total_seconds() / 3600


def next_weekday_occurrence(after: date, day_of_week: int) -> date:
    """Next date strictly after ``after`` falling on ``day_of_week`` (0 = Sunday .. 6 = Saturday)."""
    # date.weekday() is Monday=0; shift to Sunday=0
    current = (after.weekday() + 1) % 7
    delta = (day_of_week - current) % 7
    return after + timedelta(days=delta or 7)
