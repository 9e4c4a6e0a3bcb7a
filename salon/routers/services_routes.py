# salon/routers/services_routes.py

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from salon.db import get_session
from salon.errors import Conflict, NotFound
from salon.models import Appointment, Service, Staff
from salon.schemas import ServiceCategory, ServiceCreate, ServicePublic, ServiceUpdate
from salon.auth import get_current_user
from salon.deps import authorize
from salon.timeutils import to_db, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/services",
    tags=["services"],
)


def get_service_or_404(session: Session, service_id: int) -> Service:
    service = session.get(Service, service_id)
    if service is None:
        raise NotFound("Service not found")
    return service


@router.get("", response_model=List[ServicePublic])
def list_services(
    category: Optional[ServiceCategory] = None,
    active: bool = True,
    session: Session = Depends(get_session),
):
    stmt = select(Service).where(Service.is_active == active)
    if category is not None:
        stmt = stmt.where(Service.category == category.value)
    stmt = stmt.order_by(Service.category, Service.name)
    return session.exec(stmt).all()


@router.get("/categories", response_model=List[str])
def list_categories(session: Session = Depends(get_session)):
    stmt = select(Service.category).where(Service.is_active == True).distinct()  # noqa: E712
    return sorted(session.exec(stmt).all())


@router.get("/{service_id}", response_model=ServicePublic)
def get_service(service_id: int, session: Session = Depends(get_session)):
    return get_service_or_404(session, service_id)


@router.post("", response_model=ServicePublic, status_code=201)
def create_service(
    service: ServiceCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    authorize(current_user, None, "service:write")

    db_service = Service(
        **service.model_dump(exclude={"category"}),
        category=service.category.value,
        created_by=current_user["id"],
    )
    session.add(db_service)
    session.commit()
    session.refresh(db_service)

    logger.info("Created service %s (%s)", db_service.id, db_service.name)
    return db_service


@router.put("/{service_id}", response_model=ServicePublic)
def update_service(
    service_id: int,
    update: ServiceUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    authorize(current_user, None, "service:write")
    service = get_service_or_404(session, service_id)

    changes = update.model_dump(exclude_unset=True, exclude_none=True)

    # Duration changes would invalidate booked slots
    new_duration = changes.get("duration_minutes")
    if new_duration is not None and new_duration != service.duration_minutes:
        upcoming = session.exec(
            select(Appointment)
            .where(Appointment.service_id == service.id)
            .where(Appointment.starts_at >= to_db(utcnow()))
            .where(Appointment.status.in_(("pending", "confirmed")))
        ).all()
        if upcoming:
            raise Conflict(
                f"Cannot change duration for a service with {len(upcoming)} future appointments. "
                "Please reschedule or cancel these appointments first."
            )

    if "category" in changes:
        changes["category"] = changes["category"].value
    for key, value in changes.items():
        setattr(service, key, value)

    session.add(service)
    session.commit()
    session.refresh(service)
    return service


@router.delete("/{service_id}", status_code=204)
def delete_service(
    service_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    authorize(current_user, None, "service:write")
    service = get_service_or_404(session, service_id)

    booked = session.exec(select(Appointment.id).where(Appointment.service_id == service.id)).first()
    if booked is not None:
        raise Conflict("Cannot delete service with existing appointments. Deactivate it instead.")

    # Drop the service from staff offerings
    for staff in session.exec(select(Staff)).all():
        if service.id in (staff.service_ids or []):
            staff.service_ids = [sid for sid in staff.service_ids if sid != service.id]
            session.add(staff)

    session.delete(service)
    session.commit()
    logger.info("Deleted service %s", service_id)
