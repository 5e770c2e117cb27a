"""
notify/sinks.py -- Out-of-band delivery of confirmation and reset codes.

Two implementations of the NotificationSink protocol:

  SmtpNotificationSink    -- sends multipart (text + HTML) mail over SMTP.
  LoggingNotificationSink -- writes the code to the log. Used when SMTP_HOST
                             is empty, i.e. local development.

build_sink() picks one from Settings. The sink is built once in the API
lifespan and handed to the NotificationDispatcher; nothing else holds it.

Sinks raise on delivery failure. Swallowing is the dispatcher's job, so the
sinks stay easy to test.

Layer rule: no imports from api/, auth/, or projects/.
"""

from __future__ import annotations

import html
import logging
import smtplib
from email.message import EmailMessage
from typing import Protocol

from core.config import Settings

logger = logging.getLogger("uptrack.notify")

_CODE_TTL_NOTE = "This code expires in 10 minutes."


class NotificationSink(Protocol):
    def send_confirmation(self, email: str, name: str, token: str) -> None: ...

    def send_password_reset(self, email: str, name: str, token: str) -> None: ...


# ---------------------------------------------------------------------------
# Message bodies
# ---------------------------------------------------------------------------


def _confirmation_body(name: str, token: str, frontend_url: str) -> tuple[str, str]:
    link = f"{frontend_url}/auth/confirm-account"
    text = (
        f"Hi {name}, you created an UpTrack account. One step left: confirm it.\n\n"
        f"Visit {link} and enter the code: {token}\n\n{_CODE_TTL_NOTE}\n"
    )
    body = (
        f"<p>Hi {html.escape(name)}, you created an UpTrack account. One step left: confirm it.</p>"
        f'<p>Visit the following link:</p><a href="{html.escape(link)}">Confirm account</a>'
        f"<p>And enter the code: <b>{html.escape(token)}</b></p>"
        f"<p>{_CODE_TTL_NOTE}</p>"
    )
    return text, body


def _reset_body(name: str, token: str, frontend_url: str) -> tuple[str, str]:
    link = f"{frontend_url}/auth/new-password"
    text = (
        f"Hi {name}, you asked to reset your UpTrack password.\n\n"
        f"Visit {link} and enter the code: {token}\n\n{_CODE_TTL_NOTE}\n"
    )
    body = (
        f"<p>Hi {html.escape(name)}, you asked to reset your UpTrack password.</p>"
        f'<p>Visit the following link:</p><a href="{html.escape(link)}">Reset password</a>'
        f"<p>And enter the code: <b>{html.escape(token)}</b></p>"
        f"<p>{_CODE_TTL_NOTE}</p>"
    )
    return text, body


# ---------------------------------------------------------------------------
# Sinks
# ---------------------------------------------------------------------------


class SmtpNotificationSink:
    """Deliver codes by email through an SMTP relay."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        sender: str = "UpTrack <admin@uptrack.local>",
        frontend_url: str = "http://localhost:3000",
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender
        self.frontend_url = frontend_url.rstrip("/")
        self.timeout = timeout

    def send_confirmation(self, email: str, name: str, token: str) -> None:
        text, body = _confirmation_body(name, token, self.frontend_url)
        self._send(email, "UpTrack - Confirm your account", text, body)

    def send_password_reset(self, email: str, name: str, token: str) -> None:
        text, body = _reset_body(name, token, self.frontend_url)
        self._send(email, "UpTrack - Reset your password", text, body)

    def build_message(self, to: str, subject: str, text: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(text)
        msg.add_alternative(body, subtype="html")
        return msg

    def _send(self, to: str, subject: str, text: str, body: str) -> None:
        msg = self.build_message(to, subject, text, body)
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username:
                server.login(self.username, self.password)
            server.send_message(msg)
        logger.info("Mail '%s' sent to %s", subject, to)


class LoggingNotificationSink:
    """Dev-mode sink: log the code instead of mailing it."""

    def send_confirmation(self, email: str, name: str, token: str) -> None:
        logger.warning("SMTP not configured -- confirmation code for %s: %s", email, token)

    def send_password_reset(self, email: str, name: str, token: str) -> None:
        logger.warning("SMTP not configured -- password reset code for %s: %s", email, token)


def build_sink(settings: Settings) -> NotificationSink:
    """Return the SMTP sink when SMTP_HOST is set, else the logging sink."""
    if not settings.smtp_host:
        return LoggingNotificationSink()
    return SmtpNotificationSink(
        host=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_user,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        sender=settings.mail_from,
        frontend_url=settings.frontend_url,
    )
