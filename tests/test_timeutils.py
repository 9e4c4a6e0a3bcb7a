"""
Tests for UTC storage helpers in salon/timeutils.py.
"""

from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from sqlmodel import select

from salon.models import Appointment
from salon.timeutils import from_db, local_instant, to_db

from conftest import TZ_NAME

NY = ZoneInfo(TZ_NAME)


class TestStorageValues:

    def test_to_db_is_aware_utc(self):
        stored = to_db(datetime(2030, 1, 7, 10, 0, tzinfo=NY))

        assert stored.tzinfo is not None
        assert stored.utcoffset() == timedelta(0)
        assert stored == datetime(2030, 1, 7, 15, 0, tzinfo=timezone.utc)

    def test_from_db_accepts_naive_utc(self):
        assert from_db(datetime(2030, 1, 7, 15, 0)) == datetime(2030, 1, 7, 15, 0, tzinfo=timezone.utc)

    def test_from_db_accepts_aware_values(self):
        value = from_db(datetime(2030, 1, 7, 10, 0, tzinfo=NY))
        assert value.tzinfo == timezone.utc
        assert value.hour == 15


class TestDatabaseRoundTrip:

    def test_appointment_times_survive_a_write(self, session, customer, stylist, haircut, monday):
        start = local_instant(monday, time(10, 0), NY)
        appt = Appointment(
            client_id=customer.id,
            staff_id=stylist.id,
            service_id=haircut.id,
            starts_at=to_db(start),
            ends_at=to_db(start + timedelta(hours=1)),
            duration_minutes=60,
        )
        session.add(appt)
        session.commit()
        session.expire_all()

        stored = session.exec(select(Appointment).where(Appointment.id == appt.id)).one()
        assert from_db(stored.starts_at) == start
        assert from_db(stored.ends_at) - from_db(stored.starts_at) == timedelta(hours=1)
        assert from_db(stored.created_at).tzinfo == timezone.utc

    def test_range_filter_uses_stored_instants(self, session, customer, stylist, haircut, monday):
        start = local_instant(monday, time(10, 0), NY)
        session.add(Appointment(
            client_id=customer.id,
            staff_id=stylist.id,
            service_id=haircut.id,
            starts_at=to_db(start),
            ends_at=to_db(start + timedelta(hours=1)),
            duration_minutes=60,
        ))
        session.commit()

        found = session.exec(
            select(Appointment)
            .where(Appointment.starts_at >= to_db(start - timedelta(minutes=1)))
            .where(Appointment.starts_at < to_db(start + timedelta(minutes=1)))
        ).all()
        assert len(found) == 1
