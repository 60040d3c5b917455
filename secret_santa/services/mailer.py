from __future__ import annotations

import html
import smtplib
import ssl
from dataclasses import dataclass, field
from email.message import EmailMessage
from typing import List, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from secret_santa.core.config import Settings
from secret_santa.db import Group, Participant
from secret_santa.services.vault import AssignmentVault, Delivery


@dataclass(frozen=True)
class SmtpSettings:
    host: Optional[str]
    port: int = 587
    user: Optional[str] = None
    password: Optional[str] = None
    sender: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpSettings":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            sender=settings.smtp_from,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.user and self.password)


class SmtpTransport:
    def __init__(self, settings: SmtpSettings, timeout: float = 30.0) -> None:
        self.settings = settings
        self.timeout = timeout

    @property
    def sender(self) -> Optional[str]:
        return self.settings.sender or self.settings.user

    @property
    def is_configured(self) -> bool:
        return self.settings.is_configured

    def _connect(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if self.settings.port == 465:
            server = smtplib.SMTP_SSL(
                self.settings.host, self.settings.port, timeout=self.timeout, context=context
            )
        else:
            server = smtplib.SMTP(self.settings.host, self.settings.port, timeout=self.timeout)
            server.ehlo()
            if server.has_extn("starttls"):
                server.starttls(context=context)
                server.ehlo()
        if self.settings.user and self.settings.password:
            server.login(self.settings.user, self.settings.password)
        return server

    def send(self, message: EmailMessage) -> None:
        with self._connect() as server:
            server.send_message(message)

    def verify(self) -> None:
        with self._connect() as server:
            server.noop()


@dataclass
class SendError:
    email: str
    error: str


@dataclass
class SendReport:
    sent: int = 0
    failed: int = 0
    errors: List[SendError] = field(default_factory=list)
    message: str = ""
    configured: bool = True

    @property
    def ok(self) -> bool:
        return self.configured and self.failed == 0


def format_subject(group: Optional[Group]) -> str:
    if group is not None and group.name:
        return f"Secret Santa {group.name} - your draw!"
    return "Secret Santa - your draw!"


def _group_details(group: Optional[Group]) -> List[str]:
    if group is None:
        return []
    details = []
    if group.name:
        details.append(f"Group: {group.name}")
    if group.budget:
        details.append(f"Budget: {group.budget}")
    if group.event_date:
        details.append(f"Event date: {group.event_date.isoformat()}")
    return details


def render_text(giver: Participant, receiver: Participant, group: Optional[Group]) -> str:
    lines = ["Secret Santa", ""]
    details = _group_details(group)
    if details:
        lines.extend(details + [""])
    lines.extend(
        [
            f"Hello {giver.first_name}!",
            "",
            "The draw has been made and you will be giving a gift to:",
            "",
            receiver.full_name,
            "",
        ]
    )
    wishes = receiver.wishes
    if wishes:
        lines.append("Their gift ideas:")
        lines.extend(f"- {wish}" for wish in wishes)
    else:
        lines.append("This person did not share any particular wishes.")
    lines.extend(["", "Remember: it's a secret!", "", "Happy holidays!"])
    return "\n".join(lines)


def render_html(giver: Participant, receiver: Participant, group: Optional[Group]) -> str:
    details = "".join(
        f'<p style="color: #666; font-size: 0.9em;">{html.escape(item)}</p>'
        for item in _group_details(group)
    )
    wishes = receiver.wishes
    if wishes:
        items = "".join(f"<li>{html.escape(wish)}</li>" for wish in wishes)
        wishes_html = f"<h3>Their gift ideas:</h3><ul>{items}</ul>"
    else:
        wishes_html = "<p><em>This person did not share any particular wishes.</em></p>"
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\"></head>"
        "<body style=\"font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;\">"
        "<h1 style=\"color: #c41e3a; text-align: center;\">Secret Santa</h1>"
        f"{details}"
        f"<h2>Hello {html.escape(giver.first_name)}!</h2>"
        "<p>The draw has been made and you will be giving a gift to:</p>"
        f"<p style=\"font-size: 1.5em; font-weight: bold; text-align: center;\">"
        f"{html.escape(receiver.full_name)}</p>"
        f"{wishes_html}"
        "<p>Remember: it's a secret!</p>"
        "<p style=\"text-align: center; color: #666;\">Happy holidays!</p>"
        "</body></html>"
    )


def compose_message(delivery: Delivery, group: Optional[Group], sender: Optional[str]) -> EmailMessage:
    message = EmailMessage()
    message["Subject"] = format_subject(group)
    if sender:
        message["From"] = sender
    message["To"] = delivery.giver.email
    message.set_content(render_text(delivery.giver, delivery.receiver, group))
    message.add_alternative(render_html(delivery.giver, delivery.receiver, group), subtype="html")
    return message


def send_all_emails(
    session,
    group: Group,
    vault: AssignmentVault,
    transport: SmtpTransport,
) -> SendReport:
    """Send every pending assignment of ``group``, one message at a time.

    Each success is marked sent and committed right away, so calling this again
    only reaches recipients that are still pending. A failure for one recipient,
    including a failure to record a delivered message, is kept in the report
    and the batch carries on.
    """
    log = logger.bind(group_id=group.id)
    if not transport.is_configured:
        return SendReport(
            configured=False,
            message="SMTP is not configured. Check the SMTP_* environment variables.",
        )

    report = SendReport()
    for delivery in vault.pending_deliveries(session, group.id):
        email = delivery.giver.email if delivery.giver else f"assignment-{delivery.assignment.id}"
        if not delivery.ok:
            log.warning(
                "Skipping assignment {assignment_id}: {error}",
                assignment_id=delivery.assignment.id,
                error=delivery.error,
            )
            report.failed += 1
            report.errors.append(SendError(email=email, error=delivery.error or "Unknown error"))
            continue

        try:
            log.debug("Sending email to {email}", email=email)
            transport.send(compose_message(delivery, group, transport.sender))
        except (smtplib.SMTPException, OSError, ValueError) as exc:
            log.error("Failed to send email to {email}: {error}", email=email, error=str(exc))
            report.failed += 1
            report.errors.append(SendError(email=email, error=str(exc)))
            continue

        try:
            vault.mark_sent(session, delivery.assignment.id)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            log.error(
                "Email sent to {email} but assignment {assignment_id} not marked: {error}",
                email=email,
                assignment_id=delivery.assignment.id,
                error=type(exc).__name__,
            )
            report.failed += 1
            report.errors.append(SendError(email=email, error="Email sent but could not be marked as sent."))
            continue
        report.sent += 1
        log.info("Email sent to {email}", email=email)

    if report.sent == 0 and report.failed == 0:
        report.message = "All emails have already been sent."
    elif report.failed:
        report.message = f"{report.sent} emails sent, {report.failed} failed."
    else:
        report.message = f"{report.sent} emails sent successfully."
    return report
