"""
Transactional email: message value object, templates and SMTP delivery.

Delivery is fire-and-forget for callers: :func:`send_quietly` logs failures
and never raises, so a mail outage cannot change an API response.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from email.message import EmailMessage as MimeMessage
from email.utils import formataddr
from urllib.parse import quote

import aiosmtplib
import structlog

from ..config import Settings

logger = structlog.get_logger(__name__)


@dataclass
class EmailAddress:
    name: str
    address: str


@dataclass
class EmailMessage:
    """A single outgoing notification; never persisted."""

    to_addresses: list[EmailAddress] = field(default_factory=list)
    subject: str = ""
    body: str = ""
    is_html: bool = False

    @classmethod
    def to(cls, address: str, name: str = "") -> "EmailMessage":
        return cls(to_addresses=[EmailAddress(name or address, address)])


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------
def callback_url(settings: Settings, action: str, user_id: str, token: str) -> str:
    """Link back into the web client; the token rides in the query string."""

    base = settings.application_url.rstrip("/")
    return f"{base}/Account/{action}/{user_id}?token={quote(token, safe='')}"


def build_new_user_confirmation_email(
    message: EmailMessage, username: str, email: str, url: str, user_id: str, token: str
) -> EmailMessage:
    message.subject = f"Confirm your account, {username}"
    message.body = (
        f"Hello {username},\n\n"
        f"An account has been created for {email}.\n"
        f"Please confirm your email address by opening the link below:\n\n{url}\n\n"
        f"User id: {user_id}\nConfirmation code: {token}\n"
    )
    return message


def build_forgot_password_email(message: EmailMessage, name: str, url: str, token: str) -> EmailMessage:
    message.subject = "Reset your password"
    message.body = (
        f"Hello {name},\n\n"
        "We received a request to reset your password. "
        f"Open the link below to choose a new one:\n\n{url}\n\n"
        f"Reset code: {token}\n\n"
        "If you did not ask for this you can ignore this email.\n"
    )
    return message


def build_password_reset_email(message: EmailMessage, username: str) -> EmailMessage:
    message.subject = "Your password has been reset"
    message.body = (
        f"Hello {username},\n\n"
        "The password for your account was just changed. "
        "If this was not you, contact an administrator immediately.\n"
    )
    return message


def build_new_user_email(
    message: EmailMessage, full_name: str, username: str, email: str, password: str
) -> EmailMessage:
    """Welcome mail for admin-created accounts; the only place the initial password appears."""

    message.subject = f"Welcome {full_name or username}"
    message.body = (
        f"Hello {full_name or username},\n\n"
        "An administrator created an account for you.\n\n"
        f"User name: {username}\nEmail: {email}\nPassword: {password}\n\n"
        "Please change your password after your first sign-in.\n"
    )
    return message


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------
class EmailSender:
    """Sends :class:`EmailMessage` objects over SMTP."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @property
    def enabled(self) -> bool:
        return bool(self.settings.smtp_host)

    def to_mime(self, message: EmailMessage) -> MimeMessage:
        mime = MimeMessage()
        mime["From"] = formataddr((self.settings.smtp_from_name, self.settings.smtp_from_email))
        mime["To"] = ", ".join(formataddr((a.name, a.address)) for a in message.to_addresses)
        mime["Subject"] = message.subject
        mime.set_content(message.body, subtype="html" if message.is_html else "plain")
        return mime

    async def send(self, message: EmailMessage) -> None:
        if not self.enabled:
            logger.info(
                "Email delivery disabled, message dropped",
                subject=message.subject,
                recipients=len(message.to_addresses),
            )
            return

        await aiosmtplib.send(
            self.to_mime(message),
            hostname=self.settings.smtp_host,
            port=self.settings.smtp_port,
            username=self.settings.smtp_username or None,
            password=self.settings.smtp_password or None,
            start_tls=self.settings.smtp_start_tls,
        )
        logger.info("Email sent", subject=message.subject, recipients=len(message.to_addresses))


async def send_quietly(sender: EmailSender, message: EmailMessage) -> bool:
    """Send ``message``; log and swallow delivery errors. Returns whether it went out."""

    try:
        await sender.send(message)
    except (aiosmtplib.SMTPException, OSError) as exc:
        logger.warning("Email delivery failed", subject=message.subject, error=str(exc))
        return False
    return True
