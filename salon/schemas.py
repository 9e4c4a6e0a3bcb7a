# salon/schemas.py

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from enum import Enum
from datetime import datetime, date, time, timezone
from typing import Dict, List, Optional

from .data import STAFF_SPECIALTIES, STAFF_TITLES
from .timeutils import format_hhmm, parse_hhmm


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserRole(str, Enum):
    client = "client"
    staff = "staff"
    admin = "admin"


class UserCreate(BaseModel):
    email: str
    password: str = Field(min_length=8, max_length=72)
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    phone: Optional[str] = None


class UserUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    phone: Optional[str] = None


class PasswordUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(alias="currentPassword")
    new_password: str = Field(alias="newPassword", min_length=8, max_length=72)


class UserPublic(BaseModel):
    id: int
    email: str
    role: UserRole
    first_name: str
    last_name: str
    phone: Optional[str] = None
    staff_id: Optional[int] = None


# Services

class ServiceCategory(str, Enum):
    haircut = "haircut"
    coloring = "coloring"
    styling = "styling"
    treatment = "treatment"
    extensions = "extensions"
    special = "special"


class ServiceCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    price: float = Field(ge=0)
    duration_minutes: int = Field(ge=5, le=480)
    category: ServiceCategory
    is_active: bool = True


class ServiceUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    price: Optional[float] = Field(default=None, ge=0)
    duration_minutes: Optional[int] = Field(default=None, ge=5, le=480)
    category: Optional[ServiceCategory] = None
    is_active: Optional[bool] = None


class ServicePublic(BaseModel):
    id: int
    name: str
    description: str
    price: float
    duration_minutes: int
    category: str
    is_active: bool


# Staff

def check_title(value: Optional[str]) -> Optional[str]:
    if value is not None and value not in STAFF_TITLES:
        raise ValueError(f"Title must be one of: {', '.join(STAFF_TITLES)}")
    return value


def check_specialties(value: Optional[List[str]]) -> Optional[List[str]]:
    unknown = [s for s in value or [] if s not in STAFF_SPECIALTIES]
    if unknown:
        raise ValueError(f"Unknown specialties: {', '.join(unknown)}")
    return value


class StaffCreate(BaseModel):
    email: str
    password: str = Field(min_length=8, max_length=72)
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    phone: Optional[str] = None
    title: str = "Junior Stylist"
    bio: str = Field(default="New team member", max_length=1000)
    specialties: List[str] = Field(default_factory=lambda: ["haircuts"])
    service_ids: List[int] = Field(default_factory=list)
    experience_years: int = Field(default=0, ge=0)
    timezone: Optional[str] = None
    role: UserRole = UserRole.staff

    @field_validator("title")
    @classmethod
    def known_title(cls, value):
        return check_title(value)

    @field_validator("specialties")
    @classmethod
    def known_specialties(cls, value):
        return check_specialties(value)


class StaffUpdate(BaseModel):
    title: Optional[str] = None
    bio: Optional[str] = Field(default=None, max_length=1000)
    specialties: Optional[List[str]] = None
    service_ids: Optional[List[int]] = None
    experience_years: Optional[int] = Field(default=None, ge=0)
    timezone: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("title")
    @classmethod
    def known_title(cls, value):
        return check_title(value)

    @field_validator("specialties")
    @classmethod
    def known_specialties(cls, value):
        return check_specialties(value)


class StaffProfileUpdate(BaseModel):
    bio: Optional[str] = Field(default=None, max_length=1000)
    specialties: Optional[List[str]] = None

    @field_validator("specialties")
    @classmethod
    def known_specialties(cls, value):
        return check_specialties(value)


class StaffPublic(BaseModel):
    id: int
    user_id: int
    name: str
    title: str
    bio: str
    specialties: List[str]
    service_ids: List[int]
    experience_years: int
    timezone: str
    is_active: bool


# Schedules: wire format keeps the camelCase keys the booking client sends

class TimeOfDay(BaseModel):
    hours: int = Field(ge=0, le=23)
    minutes: int = Field(default=0, ge=0, le=59)

    def to_time(self) -> time:
        return time(self.hours, self.minutes)

    @classmethod
    def from_time(cls, value: time) -> "TimeOfDay":
        return cls(hours=value.hour, minutes=value.minute)


class BreakPeriod(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = "Break"
    start_time: TimeOfDay = Field(alias="startTime")
    end_time: TimeOfDay = Field(alias="endTime")

    def to_record(self) -> dict:
        return {
            "name": self.name,
            "start_time": format_hhmm(self.start_time.to_time()),
            "end_time": format_hhmm(self.end_time.to_time()),
        }

    @classmethod
    def from_record(cls, record: dict) -> "BreakPeriod":
        return cls(
            name=record.get("name", "Break"),
            start_time=TimeOfDay.from_time(parse_hhmm(record["start_time"])),
            end_time=TimeOfDay.from_time(parse_hhmm(record["end_time"])),
        )


class ScheduleUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_working_day: bool = Field(default=True, alias="isWorkingDay")
    start_time: Optional[TimeOfDay] = Field(default=None, alias="startTime")
    end_time: Optional[TimeOfDay] = Field(default=None, alias="endTime")
    breaks: List[BreakPeriod] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_hours(self):
        if not self.is_working_day:
            return self
        if self.start_time is None or self.end_time is None:
            raise ValueError("startTime and endTime are required on a working day")
        start, end = self.start_time.to_time(), self.end_time.to_time()
        if end <= start:
            raise ValueError("End time must be after start time")

        previous_end = None
        for item in sorted(self.breaks, key=lambda b: b.start_time.to_time()):
            b_start, b_end = item.start_time.to_time(), item.end_time.to_time()
            if b_end <= b_start:
                raise ValueError(f"Break '{item.name}' must end after it starts")
            if b_start < start or b_end > end:
                raise ValueError(f"Break '{item.name}' must be within working hours")
            if previous_end is not None and b_start < previous_end:
                raise ValueError("Breaks must not overlap")
            previous_end = b_end
        return self


class ScheduleEntry(ScheduleUpdate):
    staff_id: int = Field(alias="staffId")
    day_of_week: int = Field(alias="dayOfWeek", ge=0, le=6)

    @classmethod
    def from_model(cls, row) -> "ScheduleEntry":
        return cls(
            staff_id=row.staff_id,
            day_of_week=row.day_of_week,
            is_working_day=row.is_working_day,
            start_time=TimeOfDay.from_time(row.start_time) if row.start_time else None,
            end_time=TimeOfDay.from_time(row.end_time) if row.end_time else None,
            breaks=[BreakPeriod.from_record(b) for b in row.breaks or []],
        )


# Vacations

class VacationStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class VacationCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_date: date = Field(alias="startDate")
    end_date: date = Field(alias="endDate")
    reason: str = Field(default="Time off", max_length=500)

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date < self.start_date:
            raise ValueError("End date must not be before start date")
        return self


class VacationReview(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: VacationStatus
    rejection_reason: Optional[str] = Field(default=None, alias="rejectionReason", max_length=500)

    @field_validator("status")
    @classmethod
    def reviewed_status(cls, value):
        if value == VacationStatus.pending:
            raise ValueError("Status must be either approved or rejected")
        return value


class VacationPublic(BaseModel):
    id: int
    staff_id: int
    start_date: date
    end_date: date
    reason: str
    status: VacationStatus
    rejection_reason: Optional[str] = None
    conflicting_appointment_ids: List[int] = Field(default_factory=list)


# Appointments

class AppointmentStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    completed = "completed"
    cancelled = "cancelled"
    no_show = "no-show"


class AppointmentCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    service_id: int = Field(alias="serviceId")
    staff_id: int = Field(alias="staffId")
    date: datetime
    notes: str = Field(default="", max_length=500)
    client_id: Optional[int] = Field(default=None, alias="clientId")


class AppointmentUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    service_id: Optional[int] = Field(default=None, alias="serviceId")
    staff_id: Optional[int] = Field(default=None, alias="staffId")
    date: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=500)


class AppointmentCancel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=200)


class AppointmentPublic(BaseModel):
    id: int
    client_id: int
    staff_id: int
    service_id: int
    starts_at: datetime
    ends_at: datetime
    duration_minutes: int
    status: AppointmentStatus
    notes: str
    cancel_reason: Optional[str] = None
    confirmation_sent: bool = False
    reminder_sent: bool = False

    @field_validator("starts_at", "ends_at")
    @classmethod
    def mark_utc(cls, value: datetime) -> datetime:
        # SQLite reads back naive UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class AppointmentPage(BaseModel):
    total: int
    page: int
    pages: int
    data: List[AppointmentPublic]


class ReminderFailure(BaseModel):
    id: int
    error: str


class ReminderResult(BaseModel):
    message: str
    total: int
    sent: List[int]
    failed: List[ReminderFailure]


class ServiceCount(BaseModel):
    service_id: int
    service_name: str
    count: int


class AppointmentStats(BaseModel):
    total: int
    by_status: Dict[str, int]
    by_service: List[ServiceCount]


class SlotPublic(BaseModel):
    start: datetime
    end: datetime


class AvailableSlotsResponse(BaseModel):
    success: bool = True
    data: List[SlotPublic]
    timezone: str
    message: Optional[str] = None
