"""Appointment email notifications.

Routes hand a ``Notifier`` (resolved through the ``get_notifier`` dependency)
to FastAPI background tasks via ``dispatch_notification``, so sending happens
after the response and a failed send is logged instead of surfacing to the
caller.
"""

import logging
import smtplib
from datetime import date
from email.message import EmailMessage
from enum import Enum
from html import escape

from dental_office.core import config
from dental_office.scheduling.slots import format_12_hour

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    NEW_APPOINTMENT_TO_DENTIST = "new-appointment-to-dentist"
    APPROVED_TO_PATIENT = "approved-to-patient"
    COMPLETED_THANK_YOU = "completed-thank-you"
    NO_SHOW_RESCHEDULE = "no-show-reschedule"
    CANCELLATION_CONFIRMATION = "cancellation-confirmation"
    RESCHEDULE_NOTIFICATION_TO_DENTIST = "reschedule-notification-to-dentist"
    RESCHEDULE_CONFIRMATION_TO_PATIENT = "reschedule-confirmation-to-patient"


def format_long_date(value: date | str) -> str:
    if isinstance(value, str):
        value = date.fromisoformat(value)
    return f"{value.strftime('%A, %B')} {value.day}, {value.year}"


def appointment_context(appointment) -> dict:
    """Snapshot the fields templates need while the session is still open."""
    return {
        "appointment_id": appointment.id,
        "patient_name": appointment.patient_name,
        "dentist_name": appointment.dentist_name,
        "service_name": appointment.service_name,
        "date": appointment.date.isoformat(),
        "time": appointment.time,
        "duration": appointment.duration,
        "notes": appointment.notes or "",
    }


def _details(rows: list[tuple[str, str]]) -> str:
    items = "".join(f"<li><strong>{label}:</strong> {escape(str(value))}</li>" for label, value in rows)
    return f'<ul style="list-style: none; padding: 0;">{items}</ul>'


def _layout(title: str, color: str, body: str, link_path: str, link_label: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f'<h2 style="color: {color};">{title}</h2>'
        f"{body}"
        f'<p style="text-align: center; margin: 30px 0;"><a href="{config.FRONTEND_URL}{link_path}" '
        f'style="background-color: {color}; color: white; padding: 12px 24px; text-decoration: none;">'
        f"{link_label}</a></p>"
        f'<p style="color: #6b7280; font-size: 14px;">Best regards,<br>{config.CLINIC_NAME} Team</p>'
        "</div>"
    )


def render_email(kind: NotificationKind, data: dict) -> tuple[str, str]:
    kind = NotificationKind(kind)
    clinic = config.CLINIC_NAME
    patient = escape(data.get("patient_name") or "")
    dentist = escape(data.get("dentist_name") or "")
    when = [
        ("Service", data.get("service_name") or ""),
        ("Date", format_long_date(data["date"])),
        ("Time", format_12_hour(data["time"])),
    ]

    if kind is NotificationKind.NEW_APPOINTMENT_TO_DENTIST:
        rows = [("Patient", data.get("patient_name") or ""), *when, ("Duration", f"{data.get('duration')} minutes")]
        if data.get("notes"):
            rows.append(("Notes", data["notes"]))
        body = (
            f"<p>Dear Dr. {dentist},</p>"
            f"<p>You have received a new appointment request from <strong>{patient}</strong>.</p>"
            f"{_details(rows)}<p>Please log in to your dashboard to review and approve this appointment.</p>"
        )
        return (
            f"New Appointment Request - {clinic}",
            _layout("New Appointment Request", "#2563eb", body, "/dentist/appointments", "Review Appointment"),
        )

    if kind is NotificationKind.APPROVED_TO_PATIENT:
        body = (
            f"<p>Dear {patient},</p>"
            f"<p>Your appointment has been confirmed by Dr. {dentist}.</p>"
            f"{_details([('Dentist', 'Dr. ' + (data.get('dentist_name') or '')), *when])}"
            "<p><strong>Please arrive 15 minutes early</strong> for check-in.</p>"
            "<p>If you need to reschedule or cancel, please do so at least 24 hours in advance.</p>"
        )
        return (
            f"Appointment Confirmed - {clinic}",
            _layout("Appointment Confirmed!", "#059669", body, "/dashboard/appointments", "View My Appointments"),
        )

    if kind is NotificationKind.COMPLETED_THANK_YOU:
        body = (
            f"<p>Dear {patient},</p>"
            f"<p>Thank you for choosing {clinic}. We hope you had a positive experience with Dr. {dentist}.</p>"
            f"{_details(when[:2])}<p>Your feedback helps us improve our services.</p>"
        )
        return (
            f"Thank You for Your Visit - {clinic}",
            _layout(
                "Thank You for Your Visit!",
                "#2563eb",
                body,
                f"/feedback?appointment={data.get('appointment_id')}",
                "Leave Feedback",
            ),
        )

    if kind is NotificationKind.NO_SHOW_RESCHEDULE:
        body = (
            f"<p>Dear {patient},</p>"
            f"<p>We noticed that you missed your scheduled appointment with Dr. {dentist}.</p>"
            f"{_details(when)}<p>Would you like to book a new time?</p>"
        )
        return (
            "Missed Appointment - Reschedule Request",
            _layout("Missed Appointment", "#dc2626", body, "/dashboard/book", "Reschedule Appointment"),
        )

    if kind is NotificationKind.CANCELLATION_CONFIRMATION:
        by_dentist = data.get("cancelled_by") == "dentist"
        reason = f"by Dr. {dentist}" if by_dentist else "as requested"
        closing = (
            "<p><strong>Note:</strong> Please contact the office if you need clarification.</p>"
            if by_dentist
            else "<p>We understand plans can change. We hope to see you again soon!</p>"
        )
        body = (
            f"<p>Dear {patient},</p>"
            f"<p>This is to confirm that your appointment has been cancelled {reason}.</p>"
            f"{_details(when)}{closing}"
        )
        return (
            f"Appointment Cancelled - {clinic}",
            _layout("Appointment Cancelled", "#dc2626", body, "/dashboard/book", "Book New Appointment"),
        )

    previous = [
        ("Previous date", format_long_date(data["previous_date"])),
        ("Previous time", format_12_hour(data["previous_time"])),
    ] if data.get("previous_date") and data.get("previous_time") else []

    if kind is NotificationKind.RESCHEDULE_NOTIFICATION_TO_DENTIST:
        body = (
            f"<p>Dear Dr. {dentist},</p>"
            f"<p><strong>{patient}</strong> has rescheduled an appointment. It is pending your approval.</p>"
            f"{_details([('Patient', data.get('patient_name') or ''), *previous, *when])}"
        )
        return (
            f"Appointment Rescheduled - {clinic}",
            _layout("Appointment Rescheduled", "#d97706", body, "/dentist/appointments", "Review Appointment"),
        )

    body = (
        f"<p>Dear {patient},</p>"
        f"<p>Your appointment with Dr. {dentist} has been rescheduled and is awaiting confirmation.</p>"
        f"{_details([*previous, *when])}"
    )
    return (
        f"Appointment Rescheduled - {clinic}",
        _layout("Appointment Rescheduled", "#2563eb", body, "/dashboard/appointments", "View My Appointments"),
    )


class Notifier:
    def notify(self, kind: NotificationKind, recipient_email: str, template_data: dict) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Used when no SMTP host is configured; records what would have been sent."""

    def __init__(self) -> None:
        self.sent: list[tuple[NotificationKind, str, dict]] = []

    def notify(self, kind: NotificationKind, recipient_email: str, template_data: dict) -> None:
        subject, _ = render_email(kind, template_data)
        self.sent.append((NotificationKind(kind), recipient_email, template_data))
        logger.info("Email not sent (SMTP disabled): %s to %s", subject, recipient_email)


class SmtpNotifier(Notifier):
    def __init__(
        self,
        host: str,
        port: int,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: float = 10,
        sender: str = "",
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout
        self.sender = sender

    def notify(self, kind: NotificationKind, recipient_email: str, template_data: dict) -> None:
        subject, html = render_email(kind, template_data)

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.sender
        message["To"] = recipient_email
        message.set_content("This message requires an HTML capable email client.")
        message.add_alternative(html, subtype="html")

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(message)

        logger.info("Sent %s email to %s", NotificationKind(kind).value, recipient_email)


def get_notifier() -> Notifier:
    if not config.SMTP_HOST:
        return LoggingNotifier()
    return SmtpNotifier(
        host=config.SMTP_HOST,
        port=config.SMTP_PORT,
        username=config.SMTP_USER,
        password=config.SMTP_PASS,
        use_tls=config.SMTP_USE_TLS,
        timeout=config.SMTP_TIMEOUT_SECONDS,
        sender=config.EMAIL_FROM,
    )


def dispatch_notification(
    notifier: Notifier,
    kind: NotificationKind,
    recipient_email: str,
    template_data: dict,
) -> bool:
    try:
        notifier.notify(kind, recipient_email, template_data)
    except Exception:
        logger.exception("Failed to send %s email to %s", NotificationKind(kind).value, recipient_email)
        return False
    return True


def queue_notification(
    background_tasks,
    notifier: Notifier,
    kind: NotificationKind,
    recipient_email: str | None,
    template_data: dict,
) -> None:
    if not recipient_email:
        logger.warning("No recipient for %s email; skipping", NotificationKind(kind).value)
        return
    background_tasks.add_task(dispatch_notification, notifier, kind, recipient_email, template_data)
