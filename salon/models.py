# salon/models.py

from typing import Optional, List
from datetime import datetime, date as Date, time

from sqlalchemy import UniqueConstraint
from sqlalchemy.types import JSON
from sqlmodel import SQLModel, Field, Column

from .config import BUSINESS_TIMEZONE
from .timeutils import utcnow, to_db


def _now() -> datetime:
    return to_db(utcnow())


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    password_hash: str
    role: str = "client"  # client, staff or admin
    first_name: str = ""
    last_name: str = ""
    phone: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)


class Service(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    description: str = ""
    price: float
    duration_minutes: int
    category: str = Field(index=True)
    is_active: bool = True
    created_by: Optional[int] = Field(default=None, foreign_key="user.id")
    created_at: datetime = Field(default_factory=_now)


class Staff(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True, unique=True)
    title: str = "Junior Stylist"
    bio: str = "New team member"
    specialties: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    # empty list means the staff member offers every service
    service_ids: List[int] = Field(default_factory=list, sa_column=Column(JSON))
    experience_years: int = 0
    timezone: str = BUSINESS_TIMEZONE
    is_active: bool = True


class Schedule(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("staff_id", "day_of_week", name="uq_staff_weekday"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    staff_id: int = Field(foreign_key="staff.id", index=True)
    day_of_week: int  # 0=Sunday ... 6=Saturday
    is_working_day: bool = True
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    # [{"name": "Lunch", "start_time": "12:00", "end_time": "13:00"}, ...]
    breaks: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    updated_at: datetime = Field(default_factory=_now)


class Vacation(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    staff_id: int = Field(foreign_key="staff.id", index=True)
    start_date: Date
    end_date: Date  # inclusive
    reason: str = "Time off"
    status: str = "pending"  # pending, approved or rejected
    reviewed_by: Optional[int] = Field(default=None, foreign_key="user.id")
    rejection_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)


class Appointment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    client_id: int = Field(foreign_key="user.id", index=True)
    staff_id: int = Field(foreign_key="staff.id", index=True)
    service_id: int = Field(foreign_key="service.id", index=True)
    # UTC
    starts_at: datetime = Field(index=True)
    ends_at: datetime
    duration_minutes: int
    status: str = Field(default="pending", index=True)
    notes: str = ""
    cancelled_by: Optional[int] = Field(default=None, foreign_key="user.id")
    cancel_reason: Optional[str] = None
    confirmation_sent: bool = False
    reminder_sent: bool = False
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
