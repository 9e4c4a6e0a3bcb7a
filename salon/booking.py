# salon/booking.py

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .availability import (
    DayOff,
    load_bookable_service,
    load_bookable_staff,
    load_occupied_intervals,
    load_staff_calendar,
    resolve_working_window,
    staff_zone,
)
from .config import SLOT_STEP_MINUTES, MIN_BOOKING_LEAD_MINUTES
from .core import overlaps
from .data import STATUS_TRANSITIONS
from .errors import Conflict, InvalidRequest
from .models import Appointment, Service, Staff
from .timeutils import from_db, to_db, to_utc, utcnow

logger = logging.getLogger(__name__)

_locks_guard = threading.Lock()
_staff_locks: Dict[int, threading.Lock] = {}


@contextmanager
def staff_lock(staff_id: int):
    """Serialize calendar writes for one staff member within this process."""
    with _locks_guard:
        lock = _staff_locks.setdefault(staff_id, threading.Lock())
    with lock:
        yield


def _lock_staff_row(session: Session, staff_id: int) -> None:
    # FOR UPDATE serializes writers across processes on databases that support it;
    # SQLite ignores it and relies on staff_lock
    session.exec(select(Staff.id).where(Staff.id == staff_id).with_for_update()).first()


@contextmanager
def calendar_write(session: Session, staff_id: int):
    """Hold both calendar locks for a check-then-write on one staff member."""
    with staff_lock(staff_id):
        _lock_staff_row(session, staff_id)
        yield


def validate_slot(
    session: Session,
    staff: Staff,
    service: Service,
    starts_at: datetime,
    now: Optional[datetime] = None,
    exclude_appointment_id: Optional[int] = None,
):
    """Check that ``service`` can start at ``starts_at`` on the staff calendar.

    Returns the aware UTC ``(start, end)`` of the appointment. Problems with the
    request itself raise InvalidRequest, a clash with another appointment
    raises Conflict.
    """
    tz = staff_zone(staff)
    start = to_utc(starts_at, tz)
    end = start + timedelta(minutes=service.duration_minutes)
    day = start.astimezone(tz).date()

    # 1) Prevent booking in the past or inside the lead time
    now = now or utcnow()
    if start < now:
        raise InvalidRequest("Cannot book an appointment in the past")
    if start < now + timedelta(minutes=MIN_BOOKING_LEAD_MINUTES):
        raise InvalidRequest(f"Appointments must be booked at least {MIN_BOOKING_LEAD_MINUTES} minutes ahead")

    # 2) Working day and working hours
    schedules, vacations = load_staff_calendar(session, staff.id)
    window = resolve_working_window(schedules, day, tz, vacations)
    if isinstance(window, DayOff):
        raise InvalidRequest(window.reason)
    if start < window.start or end > window.end:
        raise InvalidRequest("Appointment is outside of staff working hours")

    # 3) Slot grid alignment
    offset_minutes = (start - window.start) / timedelta(minutes=1)
    if offset_minutes % SLOT_STEP_MINUTES != 0:
        raise InvalidRequest(f"Start time must be in {SLOT_STEP_MINUTES}-minute increments")

    # 4) Breaks
    for break_start, break_end in window.breaks:
        if overlaps(start, end, break_start, break_end):
            raise InvalidRequest("Appointment conflicts with staff break time")

    # 5) Existing appointments
    for busy_start, busy_end in load_occupied_intervals(
        session, staff.id, day, tz, exclude_appointment_id=exclude_appointment_id
    ):
        if overlaps(start, end, busy_start, busy_end):
            raise Conflict("This time slot is already booked")

    return start, end


def _commit(session: Session, appointment: Appointment) -> Appointment:
    session.add(appointment)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise Conflict("This time slot is already booked")
    session.refresh(appointment)
    return appointment


def book_appointment(
    session: Session,
    client_id: int,
    staff_id: int,
    service_id: int,
    starts_at: datetime,
    notes: str = "",
    now: Optional[datetime] = None,
) -> Appointment:
    staff = load_bookable_staff(session, staff_id)
    service = load_bookable_service(session, staff, service_id)

    with calendar_write(session, staff.id):
        start, end = validate_slot(session, staff, service, starts_at, now=now)

        appointment = Appointment(
            client_id=client_id,
            staff_id=staff.id,
            service_id=service.id,
            starts_at=to_db(start),
            ends_at=to_db(end),
            duration_minutes=service.duration_minutes,
            status="pending",
            notes=notes or "",
        )
        appointment = _commit(session, appointment)

    logger.info(
        "Booked appointment %s: staff=%s service=%s client=%s start=%s",
        appointment.id, staff.id, service.id, client_id, start.isoformat(),
    )
    return appointment


def reschedule_appointment(
    session: Session,
    appointment: Appointment,
    staff_id: Optional[int] = None,
    service_id: Optional[int] = None,
    starts_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Appointment:
    if appointment.status not in ("pending", "confirmed"):
        raise Conflict(f"Cannot update appointment with status: {appointment.status}")

    staff = load_bookable_staff(session, staff_id or appointment.staff_id)
    service = load_bookable_service(session, staff, service_id or appointment.service_id)
    new_start = starts_at if starts_at is not None else from_db(appointment.starts_at)

    with calendar_write(session, staff.id):
        start, end = validate_slot(
            session, staff, service, new_start, now=now, exclude_appointment_id=appointment.id
        )

        appointment.staff_id = staff.id
        appointment.service_id = service.id
        appointment.starts_at = to_db(start)
        appointment.ends_at = to_db(end)
        appointment.duration_minutes = service.duration_minutes
        appointment.updated_at = to_db(utcnow())
        appointment = _commit(session, appointment)

    logger.info("Rescheduled appointment %s to staff=%s start=%s", appointment.id, staff.id, start.isoformat())
    return appointment


def transition_status(
    session: Session,
    appointment: Appointment,
    new_status: str,
    actor_id: int,
    reason: Optional[str] = None,
) -> Appointment:
    current = appointment.status
    if new_status not in STATUS_TRANSITIONS.get(current, set()):
        raise Conflict(f"Cannot change appointment from {current} to {new_status}")

    appointment.status = new_status
    if new_status == "cancelled":
        appointment.cancelled_by = actor_id
        appointment.cancel_reason = reason or "No reason provided"
    appointment.updated_at = to_db(utcnow())

    session.add(appointment)
    session.commit()
    session.refresh(appointment)

    logger.info("Appointment %s: %s -> %s by user %s", appointment.id, current, new_status, actor_id)
    return appointment
