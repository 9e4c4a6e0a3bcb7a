# salon/routers/users_routes.py

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from salon.db import get_session
from salon.models import Staff, User
from salon.schemas import UserPublic, UserRole, UserUpdate
from salon.auth import get_current_user
from salon.deps import authorize
from salon.routers.auth_routes import user_public

router = APIRouter(
    prefix="/api/users",
    tags=["users"],
)


@router.get("", response_model=List[UserPublic])
def list_users(
    role: Optional[UserRole] = None,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    authorize(current_user, None, "user:list")

    stmt = select(User)
    if role is not None:
        stmt = stmt.where(User.role == role.value)
    users = session.exec(stmt.order_by(User.last_name, User.first_name)).all()

    staff_ids = {s.user_id: s.id for s in session.exec(select(Staff)).all()}
    return [user_public(u, staff_ids.get(u.id)) for u in users]


@router.put("/me", response_model=UserPublic)
def update_me(
    update: UserUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    user = session.get(User, current_user["id"])
    for key, value in update.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(user, key, value)

    session.add(user)
    session.commit()
    session.refresh(user)
    return user_public(user, current_user["staff_id"])
