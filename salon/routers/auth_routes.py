# salon/routers/auth_routes.py

import logging

from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm
from sqlmodel import Session, select

from salon.db import get_session
from salon.errors import Conflict, Unauthorized
from salon.models import User
from salon.schemas import PasswordUpdate, Token, UserCreate, UserPublic
from salon.auth import verify_password, create_access_token, get_current_user, hash_password

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/auth",
    tags=["auth"],
)


def user_public(user: User, staff_id=None) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "role": user.role,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "phone": user.phone,
        "staff_id": staff_id,
    }


@router.post("/register", status_code=201, response_model=UserPublic)
def register(
    user: UserCreate,
    session: Session = Depends(get_session),
):
    # 1) Check if email already exists
    email = user.email.strip().lower()
    existing = session.exec(
        select(User).where(User.email == email)
    ).first()
    if existing is not None:
        raise Conflict("Email already registered")

    # 2) Create client account
    db_user = User(
        email=email,
        password_hash=hash_password(user.password),
        role="client",
        first_name=user.first_name,
        last_name=user.last_name,
        phone=user.phone,
    )

    session.add(db_user)
    session.commit()
    session.refresh(db_user)  # fills db_user.id

    logger.info("Registered client %s", db_user.id)
    return user_public(db_user)


@router.post("/login", response_model=Token)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: Session = Depends(get_session),
):
    email = form_data.username.strip().lower()
    password = form_data.password

    user = session.exec(
        select(User).where(User.email == email)
    ).first()

    if user is None or not verify_password(password, user.password_hash):
        raise Unauthorized("Invalid credentials")

    token = create_access_token({"sub": user.email})
    return {"access_token": token, "token_type": "bearer"}


@router.get("/me", response_model=UserPublic)
def me(
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    user = session.get(User, current_user["id"])
    return user_public(user, current_user["staff_id"])


@router.put("/password")
def update_password(
    body: PasswordUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    user = session.get(User, current_user["id"])
    if not verify_password(body.current_password, user.password_hash):
        raise Unauthorized("Current password is incorrect")

    user.password_hash = hash_password(body.new_password)
    session.add(user)
    session.commit()

    logger.info("Password changed for user %s", user.id)
    return {"success": True, "message": "Password updated successfully"}
