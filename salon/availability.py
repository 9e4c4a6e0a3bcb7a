# salon/availability.py

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Union
from zoneinfo import ZoneInfo

from sqlmodel import Session, select

from .config import SLOT_STEP_MINUTES, MIN_BOOKING_LEAD_MINUTES
from .core import Interval, merge_intervals, has_overlapping
from .data import BLOCKING_STATUSES
from .errors import InvalidRequest, NotFound
from .models import Appointment, Schedule, Service, Staff, Vacation
from .timeutils import (
    from_db,
    get_zone,
    local_day_bounds,
    local_instant,
    parse_hhmm,
    schedule_weekday,
    to_db,
    utcnow,
)

logger = logging.getLogger(__name__)

NOT_WORKING_MESSAGE = "Staff is not available on this day"
ON_VACATION_MESSAGE = "Staff is on vacation on this day"


@dataclass(frozen=True)
class DayOff:
    reason: str = NOT_WORKING_MESSAGE


@dataclass(frozen=True)
class WorkingWindow:
    start: datetime
    end: datetime
    breaks: List[Interval] = field(default_factory=list)


@dataclass(frozen=True)
class Slot:
    start: datetime
    end: datetime


@dataclass
class AvailabilityResult:
    slots: List[Slot]
    timezone: str
    message: Optional[str] = None


def _break_interval(item: dict, day: date, tz: ZoneInfo) -> Optional[Interval]:
    try:
        start = parse_hhmm(item["start_time"])
        end = parse_hhmm(item["end_time"])
    except (KeyError, TypeError, ValueError):
        logger.warning("Ignoring unreadable break %r", item)
        return None
    return local_instant(day, start, tz), local_instant(day, end, tz)


def resolve_working_window(
    schedules: Iterable[Schedule],
    day: date,
    tz: ZoneInfo,
    vacations: Iterable[Vacation] = (),
) -> Union[WorkingWindow, DayOff]:
    """Working hours and breaks of one staff member on ``day``.

    Fails closed: a missing or inconsistent schedule entry is a day off.
    Breaks come back sorted with overlapping ones merged.
    """
    weekday = schedule_weekday(day)
    entry = next((s for s in schedules if s.day_of_week == weekday), None)
    if entry is None or not entry.is_working_day:
        return DayOff()
    if entry.start_time is None or entry.end_time is None or entry.start_time >= entry.end_time:
        logger.warning("Schedule %s for weekday %s has no valid hours, treating as day off", entry.id, weekday)
        return DayOff()

    for vacation in vacations:
        if vacation.status == "approved" and vacation.start_date <= day <= vacation.end_date:
            return DayOff(ON_VACATION_MESSAGE)

    start = local_instant(day, entry.start_time, tz)
    end = local_instant(day, entry.end_time, tz)

    raw_breaks = [b for b in (_break_interval(item, day, tz) for item in entry.breaks or []) if b]
    if has_overlapping(raw_breaks):
        logger.warning("Schedule %s has overlapping breaks, merging them", entry.id)
    return WorkingWindow(start=start, end=end, breaks=merge_intervals(raw_breaks))


def load_occupied_intervals(
    session: Session,
    staff_id: int,
    day: date,
    tz: ZoneInfo,
    exclude_appointment_id: Optional[int] = None,
) -> List[Interval]:
    """Time taken by non-cancelled appointments of ``staff_id`` on the local ``day``."""
    day_start, day_end = local_day_bounds(day, tz)

    stmt = (
        select(Appointment)
        .where(Appointment.staff_id == staff_id)
        .where(Appointment.status.in_(BLOCKING_STATUSES))
        .where(Appointment.starts_at < to_db(day_end))
        .where(Appointment.ends_at > to_db(day_start))
    )
    if exclude_appointment_id is not None:
        stmt = stmt.where(Appointment.id != exclude_appointment_id)

    intervals = [(from_db(a.starts_at), from_db(a.ends_at)) for a in session.exec(stmt).all()]
    if has_overlapping(intervals):
        logger.warning("Staff %s has overlapping appointments on %s", staff_id, day)
    return merge_intervals(intervals)


def generate_slots(
    window: Union[WorkingWindow, DayOff],
    breaks: Iterable[Interval],
    occupied: Iterable[Interval],
    duration_minutes: int,
    step_minutes: int,
    not_before: Optional[datetime] = None,
) -> List[Slot]:
    """Bookable ``[start, start + duration)`` windows inside ``window``.

    Candidates start at ``window.start`` and advance by ``step_minutes``. A
    candidate is kept when it ends inside the window, does not intersect a
    break or an occupied interval, and does not start before ``not_before``.
    """
    if duration_minutes is None or duration_minutes <= 0:
        raise InvalidRequest("Service duration must be a positive number of minutes")
    if step_minutes is None or step_minutes <= 0:
        raise InvalidRequest("Slot step must be a positive number of minutes")
    if isinstance(window, DayOff):
        return []

    blocked = merge_intervals(list(breaks) + list(occupied))
    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=step_minutes)

    slots: List[Slot] = []
    i = 0
    t = window.start
    while t + duration <= window.end:
        end = t + duration
        # skip blocked intervals that finished before this candidate
        while i < len(blocked) and blocked[i][1] <= t:
            i += 1
        free = i == len(blocked) or blocked[i][0] >= end
        if free and (not_before is None or t >= not_before):
            slots.append(Slot(start=t, end=end))
        t += step
    return slots


def staff_zone(staff: Staff) -> ZoneInfo:
    return get_zone(staff.timezone)


def load_bookable_staff(session: Session, staff_id: int) -> Staff:
    staff = session.get(Staff, staff_id)
    if staff is None or not staff.is_active:
        raise NotFound("Staff not found")
    return staff


def load_bookable_service(session: Session, staff: Staff, service_id: int) -> Service:
    service = session.get(Service, service_id)
    if service is None or not service.is_active:
        raise NotFound("Service not found")
    if staff.service_ids and service.id not in staff.service_ids:
        raise InvalidRequest("This staff member does not provide the selected service")
    return service


def load_staff_calendar(session: Session, staff_id: int):
    schedules = session.exec(select(Schedule).where(Schedule.staff_id == staff_id)).all()
    vacations = session.exec(
        select(Vacation)
        .where(Vacation.staff_id == staff_id)
        .where(Vacation.status == "approved")
    ).all()
    return schedules, vacations


def get_available_slots(
    session: Session,
    staff_id: int,
    service_id: int,
    day: date,
    now: Optional[datetime] = None,
) -> AvailabilityResult:
    # 1) Lookup staff and service
    staff = load_bookable_staff(session, staff_id)
    service = load_bookable_service(session, staff, service_id)
    tz = staff_zone(staff)

    # 2) Resolve working window for the day
    schedules, vacations = load_staff_calendar(session, staff.id)
    window = resolve_working_window(schedules, day, tz, vacations)
    if isinstance(window, DayOff):
        return AvailabilityResult(slots=[], timezone=staff.timezone, message=window.reason)

    # 3) Collect occupied intervals
    occupied = load_occupied_intervals(session, staff.id, day, tz)

    # 4) Generate slots, nothing inside the booking lead time
    now = now or utcnow()
    not_before = now + timedelta(minutes=MIN_BOOKING_LEAD_MINUTES)
    slots = generate_slots(
        window,
        window.breaks,
        occupied,
        service.duration_minutes,
        SLOT_STEP_MINUTES,
        not_before=not_before,
    )

    logger.debug("Staff %s has %d free slots on %s for service %s", staff.id, len(slots), day, service.id)
    local_slots = [Slot(start=s.start.astimezone(tz), end=s.end.astimezone(tz)) for s in slots]
    return AvailabilityResult(slots=local_slots, timezone=staff.timezone)
