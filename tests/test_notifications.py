import logging
import smtplib
from datetime import time, timedelta
from zoneinfo import ZoneInfo

import pytest

from conftest import auth_header, TZ_NAME

from salon.models import Appointment
from salon.notifications import send_email, send_reminders
from salon.timeutils import local_instant, to_db

NY = ZoneInfo(TZ_NAME)


@pytest.fixture
def outbox(monkeypatch):
    sent = []

    def capture(to, subject, text):
        sent.append({"to": to, "subject": subject, "text": text})
        return True

    monkeypatch.setattr("salon.notifications.send_email", capture)
    return sent


@pytest.fixture
def smtp_server(monkeypatch):
    delivered = []

    class FakeSMTP:
        def __init__(self, host, port, timeout=None):
            self.host, self.port = host, port
            self.tls = False
            self.credentials = None

        def __enter__(self):
            return self

        def __exit__(self, *exc_info):
            return False

        def starttls(self, context=None):
            self.tls = True

        def login(self, username, password):
            self.credentials = (username, password)

        def send_message(self, msg):
            delivered.append((self, msg))

    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    monkeypatch.setattr("salon.notifications.MAIL_BACKEND", "smtp")
    monkeypatch.setattr("salon.notifications.SMTP_HOST", "mail.salon.test")
    monkeypatch.setattr("salon.notifications.SMTP_PORT", 587)
    monkeypatch.setattr("salon.notifications.SMTP_USERNAME", "bookings")
    monkeypatch.setattr("salon.notifications.SMTP_PASSWORD", "mail-pass")
    monkeypatch.setattr("salon.notifications.SMTP_SECURE", False)
    monkeypatch.setattr("salon.notifications.SMTP_STARTTLS", True)
    return delivered


def book(client, user, staff, service, day, hhmm="10:00"):
    body = {"staffId": staff.id, "serviceId": service.id, "date": f"{day.isoformat()}T{hhmm}:00"}
    return client.post("/api/appointments", json=body, headers=auth_header(user))


def subjects(outbox):
    return [(m["to"], m["subject"]) for m in outbox]


class TestBackends:

    def test_console_backend_logs_the_message(self, monkeypatch, caplog):
        monkeypatch.setattr("salon.notifications.MAIL_BACKEND", "console")
        with caplog.at_level(logging.INFO, logger="salon.notifications"):
            assert send_email("client@salon.test", "Appointment Reminder", "See you tomorrow")

        assert "Appointment Reminder" in caplog.text
        assert "client@salon.test" in caplog.text

    def test_disabled_backend_sends_nothing(self, monkeypatch, caplog):
        monkeypatch.setattr("salon.notifications.MAIL_BACKEND", "disabled")
        with caplog.at_level(logging.INFO, logger="salon.notifications"):
            assert send_email("client@salon.test", "Appointment Reminder", "See you tomorrow") is False
        assert caplog.text == ""

    def test_smtp_backend(self, smtp_server):
        assert send_email("client@salon.test", "Appointment Reminder", "See you tomorrow")

        server, msg = smtp_server[0]
        assert (server.host, server.port) == ("mail.salon.test", 587)
        assert server.tls is True
        assert server.credentials == ("bookings", "mail-pass")
        assert msg["To"] == "client@salon.test"
        assert msg["Subject"] == "Appointment Reminder"
        assert msg.get_payload() == "See you tomorrow"

    def test_smtp_errors_reach_the_caller(self, smtp_server, monkeypatch):
        def refuse(*args, **kwargs):
            raise ConnectionRefusedError("no mail server")

        monkeypatch.setattr(smtplib, "SMTP", refuse)
        with pytest.raises(OSError):
            send_email("client@salon.test", "Appointment Reminder", "See you tomorrow")


class TestAppointmentEmails:

    def test_booking_notifies_client_and_staff(self, client, session, outbox, customer, stylist, haircut, monday):
        response = book(client, customer, stylist, haircut, monday)

        assert response.status_code == 201
        assert subjects(outbox) == [
            ("client@salon.test", "Appointment Confirmation"),
            ("stylist@salon.test", "New Appointment Notification"),
        ]
        assert "Haircut" in outbox[0]["text"]
        assert "10:00 AM" in outbox[0]["text"]
        assert response.json()["confirmation_sent"] is True
        assert session.get(Appointment, response.json()["id"]).confirmation_sent is True

    def test_mail_outage_does_not_fail_booking(self, client, monkeypatch, customer, stylist, haircut, monday):
        monkeypatch.setattr("salon.notifications.MAIL_BACKEND", "smtp")
        monkeypatch.setattr("salon.notifications.SMTP_SECURE", False)

        def refuse(*args, **kwargs):
            raise ConnectionRefusedError("no mail server")

        monkeypatch.setattr(smtplib, "SMTP", refuse)

        response = book(client, customer, stylist, haircut, monday)

        assert response.status_code == 201
        assert response.json()["confirmation_sent"] is False

    def test_smtp_rejection_does_not_fail_cancel(self, client, monkeypatch, customer, stylist, haircut, monday):
        appt_id = book(client, customer, stylist, haircut, monday).json()["id"]

        def reject(to, subject, text):
            raise smtplib.SMTPRecipientsRefused({to: (550, b"mailbox unavailable")})

        monkeypatch.setattr("salon.notifications.send_email", reject)
        response = client.put(f"/api/appointments/{appt_id}/cancel", headers=auth_header(customer))

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

    def test_client_cancel_tells_staff(self, client, outbox, customer, stylist, haircut, monday):
        appt_id = book(client, customer, stylist, haircut, monday).json()["id"]
        outbox.clear()

        client.put(f"/api/appointments/{appt_id}/cancel", json={"reason": "Sick"}, headers=auth_header(customer))

        assert subjects(outbox) == [
            ("client@salon.test", "Appointment Cancelled"),
            ("stylist@salon.test", "Appointment Cancelled by Client"),
        ]
        assert "Reason: Sick" in outbox[1]["text"]

    def test_staff_cancel_only_tells_client(self, client, outbox, customer, stylist_user, stylist, haircut, monday):
        appt_id = book(client, customer, stylist, haircut, monday).json()["id"]
        outbox.clear()

        client.put(f"/api/appointments/{appt_id}/cancel", headers=auth_header(stylist_user))

        assert subjects(outbox) == [("client@salon.test", "Appointment Cancelled")]

    def test_reschedule_and_complete(self, client, outbox, admin, customer, stylist, haircut, monday):
        appt_id = book(client, customer, stylist, haircut, monday).json()["id"]
        outbox.clear()
        headers = auth_header(admin)

        client.put(f"/api/appointments/{appt_id}", json={"date": f"{monday.isoformat()}T15:00:00"}, headers=headers)
        client.put(f"/api/appointments/{appt_id}/confirm", headers=headers)
        client.put(f"/api/appointments/{appt_id}/complete", headers=headers)

        assert subjects(outbox) == [
            ("client@salon.test", "Appointment Updated"),
            ("client@salon.test", "Thank You for Your Visit"),
        ]
        assert "03:00 PM" in outbox[0]["text"]


class TestReminders:

    @pytest.fixture
    def add(self, session, customer, stylist, haircut):
        def add_appointment(day, hour, status="confirmed", tz=NY):
            start = local_instant(day, time(hour, 0), tz)
            appt = Appointment(
                client_id=customer.id,
                staff_id=stylist.id,
                service_id=haircut.id,
                starts_at=to_db(start),
                ends_at=to_db(start + timedelta(hours=1)),
                duration_minutes=60,
                status=status,
            )
            session.add(appt)
            session.commit()
            session.refresh(appt)
            return appt
        return add_appointment

    @pytest.fixture
    def now(self, monday):
        return local_instant(monday - timedelta(days=1), time(12, 0), NY)

    def test_reminds_confirmed_appointments_tomorrow(self, session, outbox, add, monday, now):
        due = add(monday, 10)
        pending = add(monday, 14, status="pending")
        later = add(monday + timedelta(days=1), 10)

        result = send_reminders(session, now=now)

        assert result == {"message": "Sent 1 reminders, 0 failed", "total": 1, "sent": [due.id], "failed": []}
        assert subjects(outbox) == [("client@salon.test", "Appointment Reminder")]
        session.expire_all()
        assert session.get(Appointment, due.id).reminder_sent is True
        assert session.get(Appointment, pending.id).reminder_sent is False
        assert session.get(Appointment, later.id).reminder_sent is False

    def test_each_appointment_is_reminded_once(self, session, outbox, add, monday, now):
        add(monday, 10)

        send_reminders(session, now=now)
        again = send_reminders(session, now=now)

        assert again["total"] == 0
        assert len(outbox) == 1

    def test_tomorrow_is_the_staff_local_day(self, session, outbox, add, stylist, monday):
        tokyo = ZoneInfo("Asia/Tokyo")
        stylist.timezone = "Asia/Tokyo"
        session.add(stylist)
        session.commit()
        # 08:00 Monday in Tokyo is still Sunday in UTC
        due = add(monday, 8, tz=tokyo)

        result = send_reminders(session, now=local_instant(monday - timedelta(days=1), time(12, 0), tokyo))

        assert result["sent"] == [due.id]

    def test_failed_reminder_is_reported(self, session, monkeypatch, add, monday, now):
        due = add(monday, 10)

        def reject(to, subject, text):
            raise smtplib.SMTPException("mailbox unavailable")

        monkeypatch.setattr("salon.notifications.send_email", reject)

        result = send_reminders(session, now=now)

        assert result["sent"] == []
        assert result["failed"] == [{"id": due.id, "error": "mailbox unavailable"}]
        session.expire_all()
        assert session.get(Appointment, due.id).reminder_sent is False

    def test_disabled_mail_leaves_reminders_pending(self, session, monkeypatch, add, monday, now):
        monkeypatch.setattr("salon.notifications.MAIL_BACKEND", "disabled")
        due = add(monday, 10)

        result = send_reminders(session, now=now)

        assert result["failed"] == [{"id": due.id, "error": "Mail delivery is disabled"}]

    def test_admin_route(self, client, outbox, admin):
        response = client.post("/api/appointments/send-reminders", headers=auth_header(admin))

        assert response.status_code == 200
        assert response.json() == {"message": "Sent 0 reminders, 0 failed", "total": 0, "sent": [], "failed": []}

    def test_route_requires_admin(self, client, customer):
        response = client.post("/api/appointments/send-reminders", headers=auth_header(customer))
        assert response.status_code == 403
