# salon/timeutils.py
#
# Instants are kept as aware UTC datetimes inside the app and written to the
# database as aware UTC. Some drivers hand them back naive, so reads go
# through from_db. Wall-clock values (schedules, requested dates) are
# always read in an explicit business timezone.

from datetime import date, datetime, time, timedelta, timezone
from typing import Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import InvalidRequest


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidRequest(f"Unknown timezone: {name}")


def to_utc(value: datetime, tz: ZoneInfo) -> datetime:
    """Naive values are wall-clock time in ``tz``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=tz)
    return value.astimezone(timezone.utc)


def to_db(value: datetime) -> datetime:
    return value.astimezone(timezone.utc)


def from_db(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_instant(day: date, at: time, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, at, tzinfo=tz).astimezone(timezone.utc)


def local_day_bounds(day: date, tz: ZoneInfo) -> Tuple[datetime, datetime]:
    start = local_instant(day, time.min, tz)
    end = local_instant(day + timedelta(days=1), time.min, tz)
    return start, end


def local_date(instant: datetime, tz: ZoneInfo) -> date:
    return from_db(instant).astimezone(tz).date()


def schedule_weekday(day: date) -> int:
    # 0 = Sunday ... 6 = Saturday
    return (day.weekday() + 1) % 7


def parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def format_hhmm(value: time) -> str:
    return value.strftime("%H:%M")
