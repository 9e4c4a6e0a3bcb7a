# salon/notifications.py
#
# Appointment e-mails. A failed delivery is logged and never fails the
# request that triggered it.

import logging
import smtplib
import ssl
from datetime import timedelta
from email.mime.text import MIMEText
from typing import Optional

from sqlmodel import Session, select

from .config import (
    EMAIL_FROM_ADDRESS,
    MAIL_BACKEND,
    SMTP_HOST,
    SMTP_PASSWORD,
    SMTP_PORT,
    SMTP_SECURE,
    SMTP_STARTTLS,
    SMTP_USERNAME,
)
from .models import Appointment, Service, Staff, User
from .timeutils import from_db, get_zone, local_date, to_db, utcnow

logger = logging.getLogger(__name__)


def _send_smtp(to: str, subject: str, text: str) -> None:
    msg = MIMEText(text, "plain")
    msg["Subject"] = subject
    msg["From"] = EMAIL_FROM_ADDRESS
    msg["To"] = to

    if SMTP_SECURE:
        server = smtplib.SMTP_SSL(SMTP_HOST, SMTP_PORT, context=ssl.create_default_context(), timeout=30)
    else:
        server = smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=30)

    with server:
        if not SMTP_SECURE and SMTP_STARTTLS:
            server.starttls(context=ssl.create_default_context())
        if SMTP_USERNAME:
            server.login(SMTP_USERNAME, SMTP_PASSWORD)
        server.send_message(msg)


def send_email(to: str, subject: str, text: str) -> bool:
    """Hand one message to the configured backend.

    Returns False when mail is disabled. SMTP errors propagate so callers can
    decide whether a failure matters.
    """
    if MAIL_BACKEND == "disabled":
        return False
    if MAIL_BACKEND == "smtp":
        _send_smtp(to, subject, text)
        logger.info("Sent '%s' to %s via %s", subject, to, SMTP_HOST)
        return True

    logger.info("Email to %s: %s\n%s", to, subject, text)
    return True


def _deliver(to: Optional[str], subject: str, text: str) -> bool:
    if not to:
        return False
    try:
        return send_email(to, subject, text)
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("Failed to send '%s' to %s: %s", subject, to, exc)
        return False


class _Details:
    """The people, service and local times an appointment e-mail talks about."""

    def __init__(self, session: Session, appointment: Appointment):
        self.client = session.get(User, appointment.client_id)
        staff = session.get(Staff, appointment.staff_id)
        self.stylist = session.get(User, staff.user_id)
        self.service = session.get(Service, appointment.service_id)

        tz = get_zone(staff.timezone)
        self.start = from_db(appointment.starts_at).astimezone(tz)
        self.end = from_db(appointment.ends_at).astimezone(tz)

    @property
    def when(self) -> str:
        return f"{self.start:%A, %B %d, %Y} at {self.start:%I:%M %p}"

    @property
    def stylist_name(self) -> str:
        return f"{self.stylist.first_name} {self.stylist.last_name}".strip()

    @property
    def client_name(self) -> str:
        return f"{self.client.first_name} {self.client.last_name}".strip()


def notify_booked(session: Session, appointment: Appointment) -> None:
    d = _Details(session, appointment)

    confirmed = _deliver(
        d.client.email,
        "Appointment Confirmation",
        f"Hello {d.client.first_name},\n\n"
        f"Your appointment is booked for {d.when} with {d.stylist_name} for {d.service.name} "
        f"({appointment.duration_minutes} minutes, ${d.service.price:.2f}).\n\n"
        "If you need to cancel or reschedule, please contact us at least 24 hours in advance.",
    )
    if confirmed:
        appointment.confirmation_sent = True
        session.add(appointment)
        session.commit()
        session.refresh(appointment)

    _deliver(
        d.stylist.email,
        "New Appointment Notification",
        f"Hello {d.stylist.first_name},\n\n"
        f"You have a new appointment on {d.when} with {d.client_name} for {d.service.name}.\n\n"
        "Please check your schedule.",
    )


def notify_rescheduled(session: Session, appointment: Appointment) -> None:
    d = _Details(session, appointment)
    _deliver(
        d.client.email,
        "Appointment Updated",
        f"Hello {d.client.first_name},\n\n"
        f"Your appointment is now on {d.when} with {d.stylist_name} for {d.service.name}.",
    )


def notify_cancelled(session: Session, appointment: Appointment, by_client: bool) -> None:
    d = _Details(session, appointment)
    _deliver(
        d.client.email,
        "Appointment Cancelled",
        f"Hello {d.client.first_name},\n\n"
        f"Your appointment on {d.when} for {d.service.name} has been cancelled.\n"
        f"Reason: {appointment.cancel_reason}",
    )
    if by_client:
        _deliver(
            d.stylist.email,
            "Appointment Cancelled by Client",
            f"Hello {d.stylist.first_name},\n\n"
            f"{d.client_name} cancelled their appointment on {d.when} for {d.service.name}.\n"
            f"Reason: {appointment.cancel_reason}",
        )


def notify_completed(session: Session, appointment: Appointment) -> None:
    d = _Details(session, appointment)
    _deliver(
        d.client.email,
        "Thank You for Your Visit",
        f"Hello {d.client.first_name},\n\n"
        f"Thank you for visiting {d.stylist_name} for your {d.service.name}. We hope to see you again soon!",
    )


def send_reminders(session: Session, now=None) -> dict:
    """E-mail every confirmed appointment falling tomorrow in its staff timezone.

    Each appointment is reminded at most once.
    """
    now = now or utcnow()
    # tomorrow ends at most two days (plus a DST hour) from now in any zone
    candidates = session.exec(
        select(Appointment)
        .where(Appointment.status == "confirmed")
        .where(Appointment.reminder_sent == False)  # noqa: E712
        .where(Appointment.starts_at >= to_db(now))
        .where(Appointment.starts_at < to_db(now + timedelta(days=2, hours=1)))
        .order_by(Appointment.starts_at)
    ).all()

    due = []
    for appointment in candidates:
        tz = get_zone(session.get(Staff, appointment.staff_id).timezone)
        if local_date(appointment.starts_at, tz) == now.astimezone(tz).date() + timedelta(days=1):
            due.append(appointment)

    sent, failed = [], []
    for appointment in due:
        d = _Details(session, appointment)
        try:
            delivered = send_email(
                d.client.email,
                "Appointment Reminder",
                f"Hello {d.client.first_name},\n\n"
                f"This is a reminder of your appointment tomorrow, {d.when}, with {d.stylist_name} "
                f"for {d.service.name} ({appointment.duration_minutes} minutes).\n\n"
                "If you need to cancel or reschedule, please contact us as soon as possible.",
            )
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Reminder for appointment %s failed: %s", appointment.id, exc)
            failed.append({"id": appointment.id, "error": str(exc)})
            continue

        if not delivered:
            failed.append({"id": appointment.id, "error": "Mail delivery is disabled"})
            continue

        appointment.reminder_sent = True
        session.add(appointment)
        session.commit()
        sent.append(appointment.id)

    logger.info("Reminders: %d sent, %d failed", len(sent), len(failed))
    return {
        "message": f"Sent {len(sent)} reminders, {len(failed)} failed",
        "total": len(due),
        "sent": sent,
        "failed": failed,
    }
