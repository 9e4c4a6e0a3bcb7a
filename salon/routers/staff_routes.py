# salon/routers/staff_routes.py

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from salon.db import get_session
from salon.data import DEFAULT_WEEKLY_SCHEDULE, STAFF_SPECIALTIES
from salon.errors import Conflict, InvalidRequest, NotFound
from salon.models import Appointment, Schedule, Staff, User, Vacation
from salon.schemas import (
    ScheduleEntry,
    ScheduleUpdate,
    StaffCreate,
    StaffProfileUpdate,
    StaffPublic,
    StaffUpdate,
    UserRole,
    VacationCreate,
    VacationPublic,
    VacationReview,
)
from salon.auth import get_current_user, hash_password
from salon.booking import calendar_write
from salon.deps import authorize
from salon.timeutils import (
    get_zone,
    local_date,
    local_day_bounds,
    parse_hhmm,
    schedule_weekday,
    to_db,
    utcnow,
)
from salon.config import BUSINESS_TIMEZONE

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/staff",
    tags=["staff"],
)


def staff_public(staff: Staff, user: Optional[User]) -> dict:
    return {
        "id": staff.id,
        "user_id": staff.user_id,
        "name": f"{user.first_name} {user.last_name}".strip() if user else "",
        "title": staff.title,
        "bio": staff.bio,
        "specialties": staff.specialties or [],
        "service_ids": staff.service_ids or [],
        "experience_years": staff.experience_years,
        "timezone": staff.timezone,
        "is_active": staff.is_active,
    }


def get_staff_or_404(session: Session, staff_id: int) -> Staff:
    staff = session.get(Staff, staff_id)
    if staff is None:
        raise NotFound("Staff member not found")
    return staff


def vacation_public(vacation: Vacation, conflicting: Optional[List[int]] = None) -> dict:
    data = vacation.model_dump()
    data["conflicting_appointment_ids"] = conflicting or []
    return data


def active_appointments_between(session: Session, staff: Staff, start_day, end_day) -> List[Appointment]:
    tz = get_zone(staff.timezone)
    range_start, _ = local_day_bounds(start_day, tz)
    _, range_end = local_day_bounds(end_day, tz)
    return session.exec(
        select(Appointment)
        .where(Appointment.staff_id == staff.id)
        .where(Appointment.status.in_(("pending", "confirmed")))
        .where(Appointment.starts_at >= to_db(range_start))
        .where(Appointment.starts_at < to_db(range_end))
        .order_by(Appointment.starts_at)
    ).all()


@router.get("", response_model=List[StaffPublic])
def list_staff(
    active: bool = True,
    specialty: Optional[str] = None,
    service: Optional[int] = None,
    session: Session = Depends(get_session),
):
    rows = session.exec(
        select(Staff, User)
        .join(User, User.id == Staff.user_id)
        .where(Staff.is_active == active)
        .order_by(Staff.title, User.last_name)
    ).all()

    result = []
    for staff, user in rows:
        if specialty is not None and specialty not in (staff.specialties or []):
            continue
        if service is not None and staff.service_ids and service not in staff.service_ids:
            continue
        result.append(staff_public(staff, user))
    return result


@router.post("", response_model=StaffPublic, status_code=201)
def create_staff(
    payload: StaffCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    authorize(current_user, None, "staff:create")

    email = payload.email.strip().lower()
    if session.exec(select(User).where(User.email == email)).first() is not None:
        raise Conflict("Email already registered")
    timezone_name = payload.timezone or BUSINESS_TIMEZONE
    get_zone(timezone_name)

    # 1) User account
    user = User(
        email=email,
        password_hash=hash_password(payload.password),
        role="admin" if payload.role == UserRole.admin else "staff",
        first_name=payload.first_name,
        last_name=payload.last_name,
        phone=payload.phone,
    )
    session.add(user)
    session.flush()

    # 2) Staff profile
    staff = Staff(
        user_id=user.id,
        title=payload.title,
        bio=payload.bio,
        specialties=payload.specialties,
        service_ids=payload.service_ids,
        experience_years=payload.experience_years,
        timezone=timezone_name,
    )
    session.add(staff)
    session.flush()

    # 3) Default weekly schedule
    for entry in DEFAULT_WEEKLY_SCHEDULE:
        session.add(Schedule(
            staff_id=staff.id,
            day_of_week=entry["day_of_week"],
            is_working_day=entry["is_working_day"],
            start_time=parse_hhmm(entry["start_time"]) if entry["start_time"] else None,
            end_time=parse_hhmm(entry["end_time"]) if entry["end_time"] else None,
            breaks=list(entry["breaks"]),
        ))

    session.commit()
    session.refresh(staff)
    session.refresh(user)

    logger.info("Created staff member %s for user %s", staff.id, user.id)
    return staff_public(staff, user)


@router.put("/profile", response_model=StaffPublic)
def update_own_profile(
    update: StaffProfileUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    if current_user["staff_id"] is None:
        raise NotFound("Staff profile not found")
    staff = get_staff_or_404(session, current_user["staff_id"])
    authorize(current_user, staff, "staff:update_profile")

    for key, value in update.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(staff, key, value)
    session.add(staff)
    session.commit()
    session.refresh(staff)
    return staff_public(staff, session.get(User, staff.user_id))


@router.get("/specialties", response_model=List[str])
def list_specialties():
    return list(STAFF_SPECIALTIES)


@router.get("/user/{user_id}", response_model=StaffPublic)
def get_staff_by_user(
    user_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    staff = session.exec(select(Staff).where(Staff.user_id == user_id)).first()
    if staff is None:
        raise NotFound("Staff profile not found")
    authorize(current_user, staff, "staff:read_by_user")
    return staff_public(staff, session.get(User, staff.user_id))


@router.get("/{staff_id}", response_model=StaffPublic)
def get_staff(staff_id: int, session: Session = Depends(get_session)):
    staff = get_staff_or_404(session, staff_id)
    return staff_public(staff, session.get(User, staff.user_id))


@router.put("/{staff_id}", response_model=StaffPublic)
def update_staff(
    staff_id: int,
    update: StaffUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    authorize(current_user, None, "staff:update")
    staff = get_staff_or_404(session, staff_id)

    changes = update.model_dump(exclude_unset=True, exclude_none=True)
    if "timezone" in changes:
        get_zone(changes["timezone"])
    for key, value in changes.items():
        setattr(staff, key, value)

    session.add(staff)
    session.commit()
    session.refresh(staff)
    logger.info("Updated staff member %s: %s", staff.id, sorted(changes))
    return staff_public(staff, session.get(User, staff.user_id))


# Schedules

@router.get("/{staff_id}/schedules", response_model=List[ScheduleEntry])
def get_schedules(
    staff_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    staff = get_staff_or_404(session, staff_id)
    authorize(current_user, staff, "schedule:read")

    rows = session.exec(
        select(Schedule)
        .where(Schedule.staff_id == staff.id)
        .order_by(Schedule.day_of_week)
    ).all()
    return [ScheduleEntry.from_model(row) for row in rows]


@router.put("/{staff_id}/schedules/{day_of_week}", response_model=ScheduleEntry)
def update_schedule(
    staff_id: int,
    day_of_week: int,
    schedule: ScheduleUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    staff = get_staff_or_404(session, staff_id)
    authorize(current_user, staff, "schedule:write")

    if not (0 <= day_of_week <= 6):
        raise InvalidRequest("Day of week must be between 0 (Sunday) and 6 (Saturday)")

    # The stranded-booking check and the write must not interleave with a booking
    with calendar_write(session, staff.id):
        db_schedule = session.exec(
            select(Schedule)
            .where(Schedule.staff_id == staff.id)
            .where(Schedule.day_of_week == day_of_week)
        ).first()

        # Turning a working day off must not strand booked clients
        was_working = db_schedule is not None and db_schedule.is_working_day
        if was_working and not schedule.is_working_day:
            tz = get_zone(staff.timezone)
            upcoming = session.exec(
                select(Appointment)
                .where(Appointment.staff_id == staff.id)
                .where(Appointment.status.in_(("pending", "confirmed")))
                .where(Appointment.starts_at >= to_db(utcnow()))
            ).all()
            stranded = [a for a in upcoming if schedule_weekday(local_date(a.starts_at, tz)) == day_of_week]
            if stranded:
                raise Conflict(
                    f"Cannot set as non-working day. There are {len(stranded)} appointments scheduled for this day."
                )

        # DB upsert: one schedule per staff member and weekday
        if db_schedule is None:
            db_schedule = Schedule(staff_id=staff.id, day_of_week=day_of_week)
        db_schedule.is_working_day = schedule.is_working_day
        db_schedule.start_time = schedule.start_time.to_time() if schedule.start_time else None
        db_schedule.end_time = schedule.end_time.to_time() if schedule.end_time else None
        db_schedule.breaks = [b.to_record() for b in schedule.breaks]
        db_schedule.updated_at = to_db(utcnow())

        session.add(db_schedule)
        session.commit()
        session.refresh(db_schedule)

    logger.info("Schedule updated: staff=%s day=%s working=%s", staff.id, day_of_week, db_schedule.is_working_day)
    return ScheduleEntry.from_model(db_schedule)


# Vacations

@router.get("/{staff_id}/vacations", response_model=List[VacationPublic])
def get_vacations(
    staff_id: int,
    status: Optional[str] = None,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    staff = get_staff_or_404(session, staff_id)
    authorize(current_user, staff, "vacation:read")

    stmt = select(Vacation).where(Vacation.staff_id == staff.id)
    if status is not None:
        stmt = stmt.where(Vacation.status == status)
    return [vacation_public(v) for v in session.exec(stmt.order_by(Vacation.start_date)).all()]


@router.post("/{staff_id}/vacations", response_model=VacationPublic, status_code=201)
def request_vacation(
    staff_id: int,
    payload: VacationCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    staff = get_staff_or_404(session, staff_id)
    authorize(current_user, staff, "vacation:request")

    # Admin requests are approved right away
    approved = current_user["role"] == "admin"

    # An approval and its conflict report must see the same calendar as concurrent bookings
    with calendar_write(session, staff.id):
        overlapping = session.exec(
            select(Vacation)
            .where(Vacation.staff_id == staff.id)
            .where(Vacation.status.in_(("pending", "approved")))
            .where(Vacation.start_date <= payload.end_date)
            .where(Vacation.end_date >= payload.start_date)
        ).first()
        if overlapping is not None:
            raise Conflict("This vacation period overlaps with an existing vacation")

        vacation = Vacation(
            staff_id=staff.id,
            start_date=payload.start_date,
            end_date=payload.end_date,
            reason=payload.reason,
            status="approved" if approved else "pending",
            reviewed_by=current_user["id"] if approved else None,
        )
        session.add(vacation)
        session.commit()
        session.refresh(vacation)

        conflicting = []
        if approved:
            conflicting = [a.id for a in active_appointments_between(session, staff, vacation.start_date, vacation.end_date)]

    logger.info("Vacation %s requested for staff %s (%s)", vacation.id, staff.id, vacation.status)
    return vacation_public(vacation, conflicting)


@router.put("/vacations/{vacation_id}", response_model=VacationPublic)
def review_vacation(
    vacation_id: int,
    review: VacationReview,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    vacation = session.get(Vacation, vacation_id)
    if vacation is None:
        raise NotFound("Vacation request not found")
    authorize(current_user, vacation, "vacation:review")

    staff = get_staff_or_404(session, vacation.staff_id)
    with calendar_write(session, staff.id):
        vacation.status = review.status.value
        vacation.reviewed_by = current_user["id"]
        if review.status.value == "rejected" and review.rejection_reason:
            vacation.rejection_reason = review.rejection_reason

        session.add(vacation)
        session.commit()
        session.refresh(vacation)

        conflicting = []
        if vacation.status == "approved":
            conflicting = [a.id for a in active_appointments_between(session, staff, vacation.start_date, vacation.end_date)]

    if conflicting:
        logger.warning(
            "Vacation %s approved with %d appointments to reschedule", vacation.id, len(conflicting)
        )
    return vacation_public(vacation, conflicting)


@router.delete("/vacations/{vacation_id}", status_code=204)
def cancel_vacation(
    vacation_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    vacation = session.get(Vacation, vacation_id)
    if vacation is None:
        raise NotFound("Vacation request not found")
    authorize(current_user, vacation, "vacation:cancel")

    if vacation.status not in ("pending", "approved"):
        raise Conflict(f"Cannot cancel vacation with status: {vacation.status}")

    staff = get_staff_or_404(session, vacation.staff_id)
    today = datetime.now(get_zone(staff.timezone)).date()
    if vacation.start_date <= today:
        raise Conflict("Cannot cancel vacation that has already started")

    session.delete(vacation)
    session.commit()
    logger.info("Vacation %s cancelled by user %s", vacation_id, current_user["id"])
