"""Time normalization helpers shared by the conflict detector and slot suggester."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def coerce_zoneinfo(timezone: str | None) -> ZoneInfo | tzinfo:
    if not timezone:
        return UTC
    try:
        return ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        return UTC


def is_date_only(value: date | datetime) -> bool:
    return isinstance(value, date) and not isinstance(value, datetime)


def ensure_valid_timezone(value: str) -> None:
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"timezone must be a valid IANA timezone: {value}") from exc


def midnight(value: date, tz: tzinfo) -> datetime:
    return datetime(value.year, value.month, value.day, tzinfo=tz)


def to_aware(value: date | datetime, tz: tzinfo) -> datetime:
    """Return *value* as an aware datetime.

    Dates become local midnight in *tz*; naive datetimes are interpreted in *tz*.
    """
    if is_date_only(value):
        return midnight(value, tz)
    assert isinstance(value, datetime)
    return value if value.tzinfo is not None else value.replace(tzinfo=tz)


def effective_span(
    start: date | datetime,
    end: date | datetime,
    timezone: str | None,
) -> tuple[datetime, datetime]:
    """Normalize event boundaries into an aware half-open ``[start, end)`` span.

    All-day boundaries cover midnight to midnight. Provider all-day end dates are
    exclusive; an end date on or before the start date still spans one full day.
    """
    tz = coerce_zoneinfo(timezone)
    if is_date_only(start) and is_date_only(end):
        end_date = end if end > start else start + timedelta(days=1)
        return midnight(start, tz), midnight(end_date, tz)
    return to_aware(start, tz), to_aware(end, tz)


def overlaps(
    start_a: datetime,
    end_a: datetime,
    start_b: datetime,
    end_b: datetime,
) -> bool:
    """Half-open interval overlap: touching boundaries do not overlap."""
    return start_a < end_b and start_b < end_a
