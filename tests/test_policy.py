import pytest

from salon.deps import authorize, is_allowed
from salon.errors import Forbidden
from salon.models import Appointment, Staff, Vacation

ADMIN = {"id": 1, "email": "a@x", "role": "admin", "staff_id": None}
STYLIST = {"id": 2, "email": "s@x", "role": "staff", "staff_id": 10}
OTHER_STYLIST = {"id": 3, "email": "o@x", "role": "staff", "staff_id": 11}
CLIENT = {"id": 4, "email": "c@x", "role": "client", "staff_id": None}

OWN_STAFF = Staff(id=10, user_id=2)
APPOINTMENT = Appointment(id=5, client_id=4, staff_id=10, service_id=1, starts_at=None, ends_at=None, duration_minutes=30)
VACATION = Vacation(id=6, staff_id=10, start_date=None, end_date=None)


@pytest.mark.parametrize("action", [
    "service:write", "staff:create", "user:list", "vacation:review", "appointment:stats", "appointment:remind",
])
def test_admin_only_actions(action):
    assert is_allowed(ADMIN, None, action)
    assert not is_allowed(STYLIST, OWN_STAFF, action)
    assert not is_allowed(CLIENT, None, action)


class TestStaffMember:

    @pytest.mark.parametrize("action", [
        "schedule:write", "vacation:request", "appointment:list_staff", "staff:update_profile", "staff:read_by_user",
    ])
    def test_own_calendar_only(self, action):
        assert is_allowed(STYLIST, OWN_STAFF, action)
        assert not is_allowed(OTHER_STYLIST, OWN_STAFF, action)

    def test_assigned_appointment(self):
        assert is_allowed(STYLIST, APPOINTMENT, "appointment:confirm")
        assert is_allowed(STYLIST, APPOINTMENT, "appointment:no_show")
        assert not is_allowed(OTHER_STYLIST, APPOINTMENT, "appointment:confirm")

    def test_appointment_actions_need_an_appointment(self):
        assert not is_allowed(STYLIST, OWN_STAFF, "appointment:complete")

    def test_book_for_client_on_own_calendar(self):
        assert is_allowed(STYLIST, 10, "appointment:book_for_client")
        assert not is_allowed(STYLIST, 11, "appointment:book_for_client")

    def test_cancel_own_vacation(self):
        assert is_allowed(STYLIST, VACATION, "vacation:cancel")
        assert not is_allowed(OTHER_STYLIST, VACATION, "vacation:cancel")

    def test_staff_without_profile(self):
        subject = dict(STYLIST, staff_id=None)
        assert not is_allowed(subject, Staff(id=None, user_id=2), "schedule:write")


class TestClient:

    def test_can_book(self):
        assert is_allowed(CLIENT, None, "appointment:book")

    def test_cannot_book_for_others(self):
        assert not is_allowed(CLIENT, 10, "appointment:book_for_client")

    def test_own_appointment(self):
        assert is_allowed(CLIENT, APPOINTMENT, "appointment:read")
        assert is_allowed(CLIENT, APPOINTMENT, "appointment:cancel")
        assert not is_allowed(CLIENT, APPOINTMENT, "appointment:confirm")

    def test_someone_elses_appointment(self):
        stranger = dict(CLIENT, id=99)
        assert not is_allowed(stranger, APPOINTMENT, "appointment:read")


def test_unknown_role_is_denied():
    assert not is_allowed({"id": 7, "role": "guest"}, None, "appointment:book")


def test_authorize_raises_forbidden():
    with pytest.raises(Forbidden, match="client"):
        authorize(CLIENT, None, "service:write")
