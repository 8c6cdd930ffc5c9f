"""HTML bodies for transactional emails."""

from dataclasses import dataclass
from html import escape
from urllib.parse import quote

_LAYOUT = """\
<div style="font-family: Arial, sans-serif; background: #f4f6f8; padding: 30px;">
  <div style="max-width: 500px; margin: auto; background: #fff; padding: 25px; border-radius: 10px;">
    <h2>{heading}</h2>
    <p>{intro}</p>
    <div style="text-align: center; margin: 30px 0;">
      <a href="{url}" style="background: #4f46e5; color: #fff; padding: 12px 25px; text-decoration: none; border-radius: 5px;">{button}</a>
    </div>
    <p style="font-size: 13px; color: #888;">{footer}</p>
    <p style="font-size: 12px; color: #888;">If the button doesn't work, copy and paste this URL: {url}</p>
  </div>
</div>
"""


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    url: str


def _link(client_url: str, page: str, token: str) -> str:
    return f"{client_url.rstrip('/')}/{page}?token={quote(token, safe='')}"


def verification_email(client_url: str, token: str, first_name: str | None = None) -> RenderedEmail:
    url = _link(client_url, "verify-email.html", token)
    heading = f"Welcome, {escape(first_name)}" if first_name else "Welcome to MyAuth"
    html = _LAYOUT.format(
        heading=heading,
        intro="Thank you for signing up. Please verify your email address by clicking the button below:",
        url=escape(url),
        button="Verify Email",
        footer="This link will expire in 24 hours. If you didn't create this account, ignore this email.",
    )
    return RenderedEmail(subject="Verify your MyAuth account", html=html, url=url)


def password_reset_email(client_url: str, token: str) -> RenderedEmail:
    url = _link(client_url, "reset-password.html", token)
    html = _LAYOUT.format(
        heading="Reset Your Password",
        intro="Click the button below to reset your password.",
        url=escape(url),
        button="Reset Password",
        footer="This link expires in 1 hour. If you didn't request this, you can safely ignore this email.",
    )
    return RenderedEmail(subject="Password Reset Request", html=html, url=url)
