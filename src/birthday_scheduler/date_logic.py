from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from birthday_scheduler.errors import InvalidTimeZone

DEFAULT_DELIVERY_HOUR = 9
ALLOWED_LEAP_DAY_RULES = {"feb28", "mar1"}


def validate_leap_day_rule(leap_day_rule: str) -> None:
    if leap_day_rule not in ALLOWED_LEAP_DAY_RULES:
        raise ValueError(f"Unsupported leap day rule: {leap_day_rule}")


def is_leap_year(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def resolve_time_zone(name: str) -> ZoneInfo:
    if not isinstance(name, str) or not name.strip():
        raise InvalidTimeZone(str(name))
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidTimeZone(name) from exc


def occasion_date_for_year(occasion: date, year: int, leap_day_rule: str = "mar1") -> date:
    """Return the calendar date the occasion falls on in ``year``.

    A Feb 29 occasion in a non-leap year either rolls over into March 1
    (``mar1``, the plain day-of-month overflow) or is pinned to Feb 28
    (``feb28``).
    """
    validate_leap_day_rule(leap_day_rule)
    if occasion.month == 2 and occasion.day == 29 and not is_leap_year(year):
        if leap_day_rule == "feb28":
            return date(year, 2, 28)
        return date(year, 2, 1) + timedelta(days=occasion.day - 1)
    return date(year, occasion.month, occasion.day)


def local_occurrence(
    occasion: date,
    year: int,
    tz: ZoneInfo,
    *,
    hour: int = DEFAULT_DELIVERY_HOUR,
    leap_day_rule: str = "mar1",
) -> datetime:
    local_date = occasion_date_for_year(occasion, year, leap_day_rule)
    return datetime.combine(local_date, time(hour=hour), tzinfo=tz)


def next_occurrence(
    occasion: date,
    time_zone: str,
    reference: datetime | None = None,
    *,
    hour: int = DEFAULT_DELIVERY_HOUR,
    leap_day_rule: str = "mar1",
) -> datetime:
    """Return the soonest UTC instant after ``reference`` that is ``hour``:00
    local time in ``time_zone`` on the occasion's month and day.

    The year of ``occasion`` is ignored. When this year's occurrence is not
    strictly in the future the local wall-clock time is resolved again for
    the following year, so that year's UTC offset applies.
    """
    tz = resolve_time_zone(time_zone)
    if reference is None:
        reference = datetime.now(UTC)
    elif reference.tzinfo is None:
        raise ValueError("reference must be timezone-aware")

    year = reference.astimezone(tz).year
    candidate = local_occurrence(occasion, year, tz, hour=hour, leap_day_rule=leap_day_rule)
    if candidate <= reference:
        candidate = local_occurrence(occasion, year + 1, tz, hour=hour, leap_day_rule=leap_day_rule)
    return candidate.astimezone(UTC)


def format_schedule_instant(instant: datetime) -> str:
    # Second precision, no offset suffix; the scheduler reads it as UTC.
    return instant.astimezone(UTC).replace(tzinfo=None, microsecond=0).isoformat()


def schedule_expression(instant: datetime) -> str:
    return f"at({format_schedule_instant(instant)})"
