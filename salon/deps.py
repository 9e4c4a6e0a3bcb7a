# salon/deps.py
#
# Every role check in the API goes through authorize(). The subject is the
# dict built by auth.get_current_user for the current request.

from typing import Any, Optional

from .errors import Forbidden
from .models import Appointment, Staff, Vacation

ADMIN_ONLY = {
    "service:write",
    "staff:create",
    "staff:update",
    "user:list",
    "vacation:review",
    "appointment:list",
    "appointment:update",
    "appointment:stats",
    "appointment:remind",
}

# actions a staff member may take on their own Staff record
STAFF_SELF = {
    "staff:update_profile",
    "staff:read_by_user",
    "schedule:read",
    "schedule:write",
    "vacation:read",
    "vacation:request",
    "appointment:list_staff",
    "appointment:book_for_client",
}

# actions the staff member assigned to an appointment may take
ASSIGNED_STAFF = {
    "appointment:read",
    "appointment:cancel",
    "appointment:confirm",
    "appointment:complete",
    "appointment:no_show",
}

# actions the client who booked an appointment may take
BOOKING_CLIENT = {
    "appointment:read",
    "appointment:cancel",
}


def _staff_id_of(resource: Any) -> Optional[int]:
    if isinstance(resource, Staff):
        return resource.id
    if isinstance(resource, (Appointment, Vacation)):
        return resource.staff_id
    if isinstance(resource, int):
        return resource
    return None


def is_allowed(subject: dict, resource: Any, action: str) -> bool:
    role = subject.get("role")
    if role == "admin":
        return True
    if action in ADMIN_ONLY:
        return False

    if role == "staff":
        owns = subject.get("staff_id") is not None and subject["staff_id"] == _staff_id_of(resource)
        if action in STAFF_SELF or action == "vacation:cancel":
            return owns
        if action in ASSIGNED_STAFF:
            return isinstance(resource, Appointment) and owns
        return False

    if role == "client":
        if action == "appointment:book":
            return True
        if action in BOOKING_CLIENT:
            return isinstance(resource, Appointment) and resource.client_id == subject.get("id")
        return False

    return False


def authorize(subject: dict, resource: Any, action: str) -> None:
    if not is_allowed(subject, resource, action):
        raise Forbidden(f"Role ({subject.get('role')}) is not authorized to {action.replace(':', ' ')}")
