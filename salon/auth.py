# salon/auth.py

from datetime import timedelta
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from passlib.context import CryptContext


from sqlmodel import Session, select
from .config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES
from .db import get_session
from .errors import Unauthorized
from .models import Staff, User
from .timeutils import utcnow

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def create_access_token(data: dict, expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES) -> str:
    to_encode = data.copy()
    expire = utcnow() + timedelta(minutes=expires_minutes)
    to_encode["exp"] = expire
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def subject_for(session: Session, user: User) -> dict:
    """The per-request identity handed to the authorization policy."""
    staff_id = None
    if user.role in ("staff", "admin"):
        staff = session.exec(select(Staff).where(Staff.user_id == user.id)).first()
        if staff is not None:
            staff_id = staff.id

    return {
        "id": user.id,
        "email": user.email,
        "role": user.role,
        "staff_id": staff_id,
    }


def get_current_user(
    token: str = Depends(oauth2_scheme),
    session: Session = Depends(get_session),
) -> dict:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise Unauthorized("Invalid token")

    email = payload.get("sub")
    if email is None:
        raise Unauthorized("Invalid token")

    user = session.exec(
        select(User).where(User.email == email)
    ).first()

    if user is None:
        raise Unauthorized("User not found")

    return subject_for(session, user)
