# salon/routers/appointments_routes.py

import math
from datetime import date
from typing import Optional, List

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlmodel import Session, select

from salon.db import get_session
from salon.models import Appointment, Service, Staff, User
from salon.schemas import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentPage,
    AppointmentPublic,
    AppointmentStats,
    AppointmentStatus,
    AppointmentUpdate,
    AvailableSlotsResponse,
    ReminderResult,
)
from salon.auth import get_current_user
from salon.availability import get_available_slots
from salon.booking import book_appointment, reschedule_appointment, transition_status
from salon.deps import authorize
from salon.notifications import (
    notify_booked,
    notify_cancelled,
    notify_completed,
    notify_rescheduled,
    send_reminders,
)
from salon.config import BUSINESS_TIMEZONE
from salon.errors import InvalidRequest, NotFound
from salon.timeutils import get_zone, local_day_bounds, to_db

router = APIRouter(
    prefix="/api/appointments",
    tags=["appointments"],
)


def get_appointment_or_404(session: Session, appt_id: int) -> Appointment:
    appointment = session.get(Appointment, appt_id)
    if appointment is None:
        raise NotFound("Appointment not found")
    return appointment


def _on_day(stmt, on_date: date, tz_name: str):
    day_start, day_end = local_day_bounds(on_date, get_zone(tz_name))
    return stmt.where(Appointment.starts_at >= to_db(day_start)).where(Appointment.starts_at < to_db(day_end))


@router.get("/available-slots", response_model=AvailableSlotsResponse)
def available_slots(
    staff_id: int = Query(alias="staffId"),
    service_id: int = Query(alias="serviceId"),
    on_date: date = Query(alias="date"),
    session: Session = Depends(get_session),
):
    result = get_available_slots(session, staff_id, service_id, on_date)
    return {
        "success": True,
        "data": [{"start": s.start, "end": s.end} for s in result.slots],
        "timezone": result.timezone,
        "message": result.message,
    }


@router.post("", response_model=AppointmentPublic, status_code=201)
def create_appointment(
    appt: AppointmentCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    # Staff book on their own calendar for a client; admins for anyone
    if appt.client_id is not None and appt.client_id != current_user["id"]:
        authorize(current_user, appt.staff_id, "appointment:book_for_client")
        booked_for = session.get(User, appt.client_id)
        if booked_for is None:
            raise NotFound("Client not found")
        if booked_for.role != "client":
            raise InvalidRequest("Appointments can only be booked for client accounts")
        client_id = booked_for.id
    else:
        authorize(current_user, None, "appointment:book")
        client_id = current_user["id"]

    appointment = book_appointment(
        session,
        client_id=client_id,
        staff_id=appt.staff_id,
        service_id=appt.service_id,
        starts_at=appt.date,
        notes=appt.notes,
    )
    notify_booked(session, appointment)
    return appointment


@router.post("/send-reminders", response_model=ReminderResult)
def send_appointment_reminders(
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    authorize(current_user, None, "appointment:remind")
    return send_reminders(session)


@router.get("/me", response_model=List[AppointmentPublic])
def list_my_appointments(
    status: Optional[AppointmentStatus] = None,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    stmt = select(Appointment).where(Appointment.client_id == current_user["id"])

    if status is not None:
        stmt = stmt.where(Appointment.status == status.value)

    stmt = stmt.order_by(Appointment.starts_at)
    return session.exec(stmt).all()


@router.get("/stats", response_model=AppointmentStats)
def appointment_stats(
    start_date: Optional[date] = Query(default=None, alias="startDate"),
    end_date: Optional[date] = Query(default=None, alias="endDate"),
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    authorize(current_user, None, "appointment:stats")

    tz = get_zone(BUSINESS_TIMEZONE)

    def in_range(stmt):
        # inclusive business-day range
        if start_date is not None:
            stmt = stmt.where(Appointment.starts_at >= to_db(local_day_bounds(start_date, tz)[0]))
        if end_date is not None:
            stmt = stmt.where(Appointment.starts_at < to_db(local_day_bounds(end_date, tz)[1]))
        return stmt

    by_status = dict(session.exec(
        in_range(select(Appointment.status, func.count(Appointment.id)).group_by(Appointment.status))
    ).all())

    by_service = session.exec(
        in_range(
            select(Service.id, Service.name, func.count(Appointment.id))
            .select_from(Appointment)
            .join(Service, Service.id == Appointment.service_id)
            .where(Appointment.status.not_in(("cancelled", "no-show")))
            .group_by(Service.id, Service.name)
        ).order_by(func.count(Appointment.id).desc())
    ).all()

    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "by_service": [
            {"service_id": sid, "service_name": name, "count": count} for sid, name, count in by_service
        ],
    }


@router.get("/staff/{staff_id}", response_model=List[AppointmentPublic])
def list_staff_appointments(
    staff_id: int,
    status: Optional[AppointmentStatus] = None,
    on_date: Optional[date] = Query(default=None, alias="date"),
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    staff = session.get(Staff, staff_id)
    if staff is None:
        raise NotFound("Staff member not found")
    authorize(current_user, staff, "appointment:list_staff")

    stmt = select(Appointment).where(Appointment.staff_id == staff.id)
    if on_date is not None:
        stmt = _on_day(stmt, on_date, staff.timezone)
    if status is not None:
        stmt = stmt.where(Appointment.status == status.value)

    stmt = stmt.order_by(Appointment.starts_at)
    return session.exec(stmt).all()


@router.get("", response_model=AppointmentPage)
def list_appointments(
    status: Optional[AppointmentStatus] = None,
    on_date: Optional[date] = Query(default=None, alias="date"),
    staff_id: Optional[int] = Query(default=None, alias="staffId"),
    client_id: Optional[int] = Query(default=None, alias="clientId"),
    service_id: Optional[int] = Query(default=None, alias="serviceId"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    authorize(current_user, None, "appointment:list")

    stmt = select(Appointment)
    if status is not None:
        stmt = stmt.where(Appointment.status == status.value)
    if staff_id is not None:
        stmt = stmt.where(Appointment.staff_id == staff_id)
    if client_id is not None:
        stmt = stmt.where(Appointment.client_id == client_id)
    if service_id is not None:
        stmt = stmt.where(Appointment.service_id == service_id)
    if on_date is not None:
        staff = session.get(Staff, staff_id) if staff_id is not None else None
        stmt = _on_day(stmt, on_date, staff.timezone if staff else BUSINESS_TIMEZONE)

    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()
    rows = session.exec(
        stmt.order_by(Appointment.starts_at).offset((page - 1) * limit).limit(limit)
    ).all()

    return {
        "total": total,
        "page": page,
        "pages": max(1, math.ceil(total / limit)),
        "data": rows,
    }


@router.get("/{appt_id}", response_model=AppointmentPublic)
def get_appointment(
    appt_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    appointment = get_appointment_or_404(session, appt_id)
    authorize(current_user, appointment, "appointment:read")
    return appointment


@router.put("/{appt_id}", response_model=AppointmentPublic)
def update_appointment(
    appt_id: int,
    update: AppointmentUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    appointment = get_appointment_or_404(session, appt_id)
    authorize(current_user, appointment, "appointment:update")

    if update.notes is not None:
        appointment.notes = update.notes
        session.add(appointment)

    if update.date is not None or update.staff_id is not None or update.service_id is not None:
        appointment = reschedule_appointment(
            session,
            appointment,
            staff_id=update.staff_id,
            service_id=update.service_id,
            starts_at=update.date,
        )
        notify_rescheduled(session, appointment)
        return appointment

    session.commit()
    session.refresh(appointment)
    return appointment


@router.put("/{appt_id}/cancel", response_model=AppointmentPublic)
def cancel_appointment(
    appt_id: int,
    body: Optional[AppointmentCancel] = None,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    appointment = get_appointment_or_404(session, appt_id)
    authorize(current_user, appointment, "appointment:cancel")
    reason = body.reason if body is not None else None
    appointment = transition_status(session, appointment, "cancelled", current_user["id"], reason)
    notify_cancelled(session, appointment, by_client=current_user["role"] == "client")
    return appointment


@router.put("/{appt_id}/confirm", response_model=AppointmentPublic)
def confirm_appointment(
    appt_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    appointment = get_appointment_or_404(session, appt_id)
    authorize(current_user, appointment, "appointment:confirm")
    return transition_status(session, appointment, "confirmed", current_user["id"])


@router.put("/{appt_id}/complete", response_model=AppointmentPublic)
def complete_appointment(
    appt_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    appointment = get_appointment_or_404(session, appt_id)
    authorize(current_user, appointment, "appointment:complete")
    appointment = transition_status(session, appointment, "completed", current_user["id"])
    notify_completed(session, appointment)
    return appointment


@router.put("/{appt_id}/no-show", response_model=AppointmentPublic)
def mark_no_show(
    appt_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    appointment = get_appointment_or_404(session, appt_id)
    authorize(current_user, appointment, "appointment:no_show")
    return transition_status(session, appointment, "no-show", current_user["id"])
