"""Outbound email — verification and password reset links.

Learn: Email is a side effect the auth flows never wait on. Senders
report success as a bool; EmailDispatcher runs deliveries in the
background and logs failures instead of raising them.
"""

from myauth.mail.dispatcher import EmailDispatcher
from myauth.mail.sender import (
    EmailSender,
    LoggingEmailSender,
    SmtpEmailSender,
    build_email_sender,
    redact_email,
)
from myauth.mail.templates import RenderedEmail, password_reset_email, verification_email

__all__ = [
    "EmailDispatcher",
    "EmailSender",
    "LoggingEmailSender",
    "RenderedEmail",
    "SmtpEmailSender",
    "build_email_sender",
    "password_reset_email",
    "redact_email",
    "verification_email",
]
