"""MyAuth CLI — drive the auth API from a terminal.

Usage:
    myauth register a@x.com --first-name Ada      # Create an account (prompts for password)
    myauth verify <token>                          # Verify the email address
    myauth resend a@x.com                          # Resend the verification email
    myauth login a@x.com                           # Log in, save tokens locally
    myauth me                                      # Who am I (uses the saved access token)
    myauth refresh                                 # New access token from the saved refresh token
    myauth logout                                  # Revoke the refresh token, forget tokens
    myauth forgot-password a@x.com                 # Email a reset link
    myauth reset-password <token>                  # Choose a new password

Tokens from `login` are kept in ~/.myauth/session.json (or
$MYAUTH_SESSION_FILE) so later commands don't need them pasted in.
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Optional

import click
import httpx

from myauth import __version__

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("MYAUTH_API_URL", DEFAULT_API_URL).rstrip("/")


def _session_file() -> Path:
    default = Path.home() / ".myauth" / "session.json"
    return Path(os.environ.get("MYAUTH_SESSION_FILE", default))


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the MyAuth backend."""
    return httpx.AsyncClient(base_url=f"{_api_url()}/api/auth", timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    return asyncio.run(coro)


def _load_session() -> dict:
    path = _session_file()
    if not path.exists():
        return {}
    return json.loads(path.read_text())


def _save_session(data: dict) -> None:
    path = _session_file()
    path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
    # Owner-only from creation; tokens never sit in a world-readable file
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    os.fchmod(fd, 0o600)
    with os.fdopen(fd, "w") as f:
        json.dump(data, f, indent=2)


def _clear_session() -> None:
    _session_file().unlink(missing_ok=True)


def _fail(r: httpx.Response) -> None:
    """Print the API's error and exit non-zero."""
    try:
        body = r.json()
        detail = body.get("detail", r.text)
    except ValueError:
        detail = r.text
    click.secho(f"Error ({r.status_code}): {detail}", fg="red", err=True)
    sys.exit(1)


def _check(r: httpx.Response) -> dict:
    if r.is_error:
        _fail(r)
    return r.json()


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="myauth")
def main():
    """MyAuth — register, verify, log in, and manage sessions."""


# ---------------------------------------------------------------------------
# Registration + verification
# ---------------------------------------------------------------------------


@main.command()
@click.argument("email")
@click.option("--first-name", required=True)
@click.option("--last-name")
@click.option("--phone")
@click.option("--id-number")
@click.password_option()
def register(email: str, first_name: str, last_name: Optional[str],
             phone: Optional[str], id_number: Optional[str], password: str):
    """Create an account. A verification link is emailed to EMAIL."""
    body = {
        "email": email,
        "password": password,
        "first_name": first_name,
        "last_name": last_name,
        "phone": phone,
        "id_number": id_number,
    }
    data = _run(_post("/register", json={k: v for k, v in body.items() if v is not None}))
    click.secho(data["message"], fg="green")
    click.echo(f"User id: {data['user']['id']}")


@main.command()
@click.argument("token")
def verify(token: str):
    """Verify an email address with the TOKEN from the verification link."""
    data = _run(_get(f"/verify-email/{token}"))
    click.secho(data["message"], fg="green")


@main.command()
@click.argument("email")
def resend(email: str):
    """Resend the verification email."""
    data = _run(_post("/resend-verification", json={"email": email}))
    click.echo(data["message"])


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


@main.command()
@click.argument("email")
@click.password_option(confirmation_prompt=False)
def login(email: str, password: str):
    """Log in and save the token pair locally."""
    data = _run(_post("/login", json={"email": email, "password": password}))
    _save_session({
        "email": email,
        "access_token": data["access_token"],
        "refresh_token": data["refresh_token"],
    })
    click.secho(data["message"], fg="green")
    click.echo(f"Access token expires at {data['expires_at']}")


@main.command()
def me():
    """Show the identity behind the saved access token."""
    session = _load_session()
    if not session.get("access_token"):
        click.secho("Not logged in. Run `myauth login` first.", fg="yellow")
        sys.exit(1)
    data = _run(_get("/me", headers={"Authorization": f"Bearer {session['access_token']}"}))
    click.echo(json.dumps(data, indent=2))


@main.command()
def refresh():
    """Get a new access token using the saved refresh token."""
    session = _load_session()
    if not session.get("refresh_token"):
        click.secho("Not logged in. Run `myauth login` first.", fg="yellow")
        sys.exit(1)
    data = _run(_post("/refresh-token", json={"refresh_token": session["refresh_token"]}))
    session["access_token"] = data["access_token"]
    _save_session(session)
    click.secho(data["message"], fg="green")


@main.command()
def logout():
    """Revoke the saved refresh token and forget the session."""
    session = _load_session()
    data = _run(_post("/logout", json={"refresh_token": session.get("refresh_token")}))
    _clear_session()
    click.secho(data["message"], fg="green")


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@main.command("forgot-password")
@click.argument("email")
def forgot_password(email: str):
    """Email a password reset link."""
    data = _run(_post("/forgot-password", json={"email": email}))
    click.echo(data["message"])


@main.command("reset-password")
@click.argument("token")
@click.password_option()
def reset_password(token: str, password: str):
    """Set a new password using the TOKEN from the reset link."""
    data = _run(_post(f"/reset-password/{token}", json={"password": password}))
    click.secho(data["message"], fg="green")


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


async def _post(path: str, **kwargs) -> dict:
    async with _client() as c:
        return _check(await c.post(path, **kwargs))


async def _get(path: str, **kwargs) -> dict:
    async with _client() as c:
        return _check(await c.get(path, **kwargs))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
