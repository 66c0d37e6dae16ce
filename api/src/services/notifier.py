"""
Email notification collaborators.

The auth flows only need two messages: a welcome email after signup and a
password reset link. ``SmtpNotifier`` delivers them over SMTP (blocking
``smtplib`` calls run in a worker thread); ``LogNotifier`` only logs them and
is the default outside production.
"""

import asyncio
import smtplib
from email.message import EmailMessage
from typing import Any, Mapping, Optional, Protocol

import structlog

from api.src.config import Settings

logger = structlog.get_logger(__name__)


class Notifier(Protocol):
    async def send_welcome(self, user: Mapping[str, Any], url: str) -> None: ...

    async def send_password_reset(self, user: Mapping[str, Any], url: str) -> None: ...


def _first_name(user: Mapping[str, Any]) -> str:
    name = str(user.get("name") or "").strip()
    return name.split(" ")[0] if name else "there"


def welcome_message(user: Mapping[str, Any], url: str):
    subject = "Welcome to the Natours Family!"
    body = (
        f"Hi {_first_name(user)},\n\n"
        "Welcome to Natours, we're glad to have you!\n"
        f"Upload a profile photo and finish setting up your account: {url}\n"
    )
    return subject, body


def password_reset_message(user: Mapping[str, Any], url: str):
    subject = "Your password reset token (valid for only 10 minutes)"
    body = (
        f"Hi {_first_name(user)},\n\n"
        f"Forgot your password? Submit a PATCH request with your new password "
        f"and passwordConfirm to: {url}\n\n"
        "If you didn't forget your password, please ignore this email!\n"
    )
    return subject, body


class SmtpNotifier:
    """Delivers notifications through an SMTP relay."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        sender: str = "Natours <hello@natours.io>",
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 10.0,
    ):
        """
        Initialize SMTP notifier.

        Args:
            host: SMTP server hostname
            port: SMTP server port
            sender: From header
            username: SMTP authentication username
            password: SMTP authentication password
            use_tls: Upgrade the connection with STARTTLS
            timeout: Socket timeout in seconds
        """
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    async def send_welcome(self, user: Mapping[str, Any], url: str) -> None:
        subject, body = welcome_message(user, url)
        await self._send(user["email"], subject, body)

    async def send_password_reset(self, user: Mapping[str, Any], url: str) -> None:
        subject, body = password_reset_message(user, url)
        await self._send(user["email"], subject, body)

    async def _send(self, recipient: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.sender
        message["To"] = recipient
        message.set_content(body)

        await asyncio.to_thread(self._deliver, message)
        logger.info("email_sent", recipient=recipient, subject=subject)

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username and self.password:
                smtp.login(self.username, self.password)
            smtp.send_message(message)


class LogNotifier:
    """Writes notifications to the log instead of sending them."""

    async def send_welcome(self, user: Mapping[str, Any], url: str) -> None:
        subject, _ = welcome_message(user, url)
        logger.info("email_logged", recipient=user.get("email"), subject=subject, url=url)

    async def send_password_reset(self, user: Mapping[str, Any], url: str) -> None:
        subject, _ = password_reset_message(user, url)
        logger.info("email_logged", recipient=user.get("email"), subject=subject, url=url)


def create_notifier(settings: Settings) -> Notifier:
    if settings.email_backend == "smtp":
        return SmtpNotifier(
            host=settings.email_host,
            port=settings.email_port,
            sender=settings.email_from,
            username=settings.email_username,
            password=settings.email_password,
            use_tls=settings.email_use_tls,
        )
    return LogNotifier()
