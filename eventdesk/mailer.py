"""Outgoing e-mail for EventDesk.

Three backends are available through ``mail_backend``: ``console`` logs each
message, ``smtp`` delivers through ``smtplib`` and ``memory`` keeps messages in
``outbox`` for tests and local inspection.
"""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .config import Settings, settings
from .models import Event, User

logger = logging.getLogger("uvicorn.error")

ADMIN_SUBMISSION_SUBJECT = "A new event has been submitted."
ORGANIZER_SUBMISSION_SUBJECT = "You submitted a new event."

mail_templates = Environment(
    loader=FileSystemLoader(Path(__file__).parent / "templates" / "mail"),
    undefined=StrictUndefined,
    keep_trailing_newline=True,
)


@dataclass(frozen=True)
class OutgoingMail:
    recipient: str
    subject: str
    body: str


class Mailer:
    """Base mailer; subclasses implement ``deliver``."""

    def __init__(self, sender: str):
        self.sender = sender

    def send(self, recipient: str, subject: str, body: str) -> OutgoingMail:
        mail = OutgoingMail(recipient=recipient, subject=subject, body=body)
        self.deliver(mail)
        return mail

    def deliver(self, mail: OutgoingMail) -> None:
        raise NotImplementedError


class MemoryMailer(Mailer):
    def __init__(self, sender: str):
        super().__init__(sender)
        self.outbox: list[OutgoingMail] = []

    def deliver(self, mail: OutgoingMail) -> None:
        self.outbox.append(mail)

    def clear(self) -> None:
        self.outbox.clear()


class ConsoleMailer(Mailer):
    def deliver(self, mail: OutgoingMail) -> None:
        logger.info(
            "Mail to %s: %s\n%s", mail.recipient, mail.subject, mail.body.rstrip()
        )


class SmtpMailer(Mailer):
    def __init__(
        self,
        sender: str,
        *,
        host: str,
        port: int,
        username: str = "",
        password: str = "",
        use_tls: bool = False,
    ):
        super().__init__(sender)
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls

    def deliver(self, mail: OutgoingMail) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = mail.recipient
        message["Subject"] = mail.subject
        message.set_content(mail.body)
        with smtplib.SMTP(self.host, self.port, timeout=30) as client:
            if self.use_tls:
                client.starttls()
            if self.username:
                client.login(self.username, self.password)
            client.send_message(message)


def build_mailer(config: Settings) -> Mailer:
    if config.mail_backend == "memory":
        return MemoryMailer(config.mail_from)
    if config.mail_backend == "smtp":
        return SmtpMailer(
            config.mail_from,
            host=config.smtp_host,
            port=config.smtp_port,
            username=config.smtp_username,
            password=config.smtp_password,
            use_tls=config.smtp_use_tls,
        )
    return ConsoleMailer(config.mail_from)


mailer = build_mailer(settings)


def _render(template_name: str, **context) -> str:
    return mail_templates.get_template(template_name).render(**context)


def _safe_send(active: Mailer, recipient: str, subject: str, body: str) -> bool:
    try:
        active.send(recipient, subject, body)
    except (smtplib.SMTPException, OSError) as exc:
        logger.warning("Could not deliver '%s' to %s: %s", subject, recipient, exc)
        return False
    return True


def notify_event_submitted(
    event: Event,
    organizer: User,
    *,
    event_url: str,
    admin_url: str,
    active: Mailer | None = None,
    admin_email: str | None = None,
) -> int:
    """Tell the admins and the organizer about a new submission.

    Returns how many of the two messages were handed to the mailer.
    """
    active = active or mailer
    admin_email = admin_email or settings.admin_email
    delivered = 0
    admin_body = _render(
        "admin_event_submitted.txt",
        event=event,
        organizer=organizer,
        event_url=event_url,
        admin_url=admin_url,
    )
    if _safe_send(active, admin_email, ADMIN_SUBMISSION_SUBJECT, admin_body):
        delivered += 1
    organizer_body = _render(
        "organizer_event_submitted.txt",
        event=event,
        organizer=organizer,
        event_url=event_url,
    )
    if _safe_send(active, organizer.email, ORGANIZER_SUBMISSION_SUBJECT, organizer_body):
        delivered += 1
    return delivered
