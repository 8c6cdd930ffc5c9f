"""Email senders.

Learn: SmtpEmailSender speaks plain SMTP (STARTTLS or implicit TLS).
smtplib is blocking, so the send runs in a worker thread. When no mail
host is configured, LoggingEmailSender logs the message instead, which
keeps local development free of SMTP setup.
"""

import asyncio
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Protocol

import structlog

from myauth.config import Settings

logger = structlog.get_logger()


def redact_email(email: str) -> str:
    """Redact an email address for logging to avoid PII leakage."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class EmailSender(Protocol):
    async def send(self, to_address: str, subject: str, html_body: str) -> bool: ...


class LoggingEmailSender:
    """Dev-mode sender: logs the email instead of sending it."""

    async def send(self, to_address: str, subject: str, html_body: str) -> bool:
        logger.info(
            "email.dev_mode",
            to=redact_email(to_address),
            subject=subject,
            body_preview=html_body[:200],
        )
        return True


class SmtpEmailSender:
    """Send HTML email over SMTP."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        *,
        user: Optional[str] = None,
        password: Optional[str] = None,
        from_address: Optional[str] = None,
        from_name: str = "MyAuth",
        use_tls: bool = True,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.from_address = from_address or user
        self.from_name = from_name
        self.use_tls = use_tls
        self.timeout = timeout

    def _build_message(self, to_address: str, subject: str, html_body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_address}>"
        msg["To"] = to_address
        msg.attach(MIMEText(html_body, "html"))
        return msg

    def _send_sync(self, to_address: str, subject: str, html_body: str) -> None:
        msg = self._build_message(to_address, subject, html_body)
        context = ssl.create_default_context()
        if self.use_tls:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.starttls(context=context)
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.sendmail(self.from_address, to_address, msg.as_string())
        else:
            with smtplib.SMTP_SSL(
                self.host, self.port, context=context, timeout=self.timeout
            ) as server:
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.sendmail(self.from_address, to_address, msg.as_string())

    async def send(self, to_address: str, subject: str, html_body: str) -> bool:
        """Returns True if sent, False on any SMTP/transport failure."""
        try:
            await asyncio.to_thread(self._send_sync, to_address, subject, html_body)
        except smtplib.SMTPAuthenticationError as e:
            logger.error(
                "email.auth_failed",
                to=redact_email(to_address),
                host=self.host,
                error_code=e.smtp_code,
            )
            return False
        except (smtplib.SMTPException, ssl.SSLError, OSError) as e:
            logger.error(
                "email.transport_error",
                to=redact_email(to_address),
                host=self.host,
                port=self.port,
                error_type=type(e).__name__,
                error=str(e),
            )
            return False

        logger.info("email.sent", to=redact_email(to_address), subject=subject)
        return True


def build_email_sender(config: Settings) -> EmailSender:
    if not config.mail_host:
        return LoggingEmailSender()
    return SmtpEmailSender(
        config.mail_host,
        config.mail_port,
        user=config.mail_user,
        password=config.mail_password,
        from_address=config.mail_from,
        from_name=config.mail_from_name,
        use_tls=config.mail_use_tls,
    )
