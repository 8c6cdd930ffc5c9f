"""Test fixtures — in-memory collaborators and an app client wired to them.

Learn: Testing pattern for the auth core:

1. Services get in-memory collaborators (user store, ledger, email
   sender) and a frozen clock, so expiry is tested by moving time,
   not by sleeping.
2. The HTTP client runs the real app through ASGITransport with
   app.dependency_overrides pointing at those same objects, so a test
   can call the API and then inspect the store or ledger directly.
3. bcrypt runs at 4 rounds to keep tests fast.
"""

import os

# Must be set before myauth.config builds its settings singleton
os.environ.setdefault("MYAUTH_USER_STORE_BACKEND", "memory")
os.environ.setdefault("MYAUTH_LEDGER_BACKEND", "memory")
os.environ.setdefault("MYAUTH_BCRYPT_ROUNDS", "4")

import re
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from myauth.auth.dependencies import (
    get_ledger,
    get_mailer,
    get_token_codec,
    get_user_store,
)
from myauth.auth.ledger import InMemoryRevocationLedger
from myauth.auth.password import PasswordHasher, get_password_hasher
from myauth.auth.tokens import TokenClass, TokenCodec
from myauth.db.engine import build_engine, build_session_factory
from myauth.db.models import Base
from myauth.mail.dispatcher import EmailDispatcher
from myauth.main import app
from myauth.services.session_service import SessionService
from myauth.services.verification_service import VerificationService
from myauth.users.store import InMemoryUserStore, SqlUserStore

CLIENT_URL = "http://frontend.test"

TEST_SECRETS = {
    TokenClass.ACCESS: "test-access-secret",
    TokenClass.REFRESH: "test-refresh-secret",
    TokenClass.VERIFICATION: "test-verification-secret",
    TokenClass.PASSWORD_RESET: "test-reset-secret",
}

TEST_TTLS = {
    TokenClass.ACCESS: timedelta(minutes=15),
    TokenClass.REFRESH: timedelta(days=7),
    TokenClass.VERIFICATION: timedelta(days=1),
    TokenClass.PASSWORD_RESET: timedelta(hours=1),
}

_TOKEN_RE = re.compile(r"token=([A-Za-z0-9_\-.]+)")


class FrozenClock:
    """A clock that only moves when told to."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingEmailSender:
    """Keeps every email instead of sending it. Set fail=True to simulate an outage."""

    def __init__(self):
        self.sent: list[dict] = []
        self.fail = False

    async def send(self, to_address: str, subject: str, html_body: str) -> bool:
        if self.fail:
            raise ConnectionError("mail server unreachable")
        self.sent.append({"to": to_address, "subject": subject, "html": html_body})
        return True

    def last_token(self, to_address: str | None = None) -> str:
        """Pull the token out of the newest email (optionally for one recipient)."""
        for message in reversed(self.sent):
            if to_address is None or message["to"] == to_address:
                match = _TOKEN_RE.search(message["html"])
                assert match, "no token link in email"
                return match.group(1)
        raise AssertionError(f"no email sent to {to_address}")


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def codec(clock):
    return TokenCodec(TEST_SECRETS, TEST_TTLS, leeway=timedelta(0), clock=clock)


@pytest.fixture
def hasher():
    return PasswordHasher(rounds=4)


@pytest.fixture
def users():
    return InMemoryUserStore()


@pytest_asyncio.fixture()
async def sql_session(tmp_path):
    """A session on a fresh SQLite database with the real schema."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'users.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with build_session_factory(engine)() as session:
        yield session
    await engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def store(request, sql_session):
    """Each user store implementation in turn."""
    if request.param == "memory":
        return InMemoryUserStore()
    return SqlUserStore(sql_session)


@pytest.fixture
def ledger(clock):
    return InMemoryRevocationLedger(clock=clock)


@pytest.fixture
def sender():
    return RecordingEmailSender()


@pytest.fixture
def mailer(sender):
    return EmailDispatcher(sender, background=False)


@pytest.fixture
def sessions(users, codec, ledger, hasher):
    return SessionService(users, codec, ledger, hasher)


@pytest.fixture
def verification(users, codec, hasher, mailer):
    return VerificationService(users, codec, hasher, mailer, client_url=CLIENT_URL)


@pytest.fixture
def register_payload():
    return {
        "email": "a@x.com",
        "password": "pw12345678",
        "first_name": "Ada",
        "last_name": "Lovelace",
        "gender": "Female",
        "dob": "1990-12-10",
        "address": "12 St James's Square",
        "id_number": "ID-0001",
        "phone": "+15550001",
    }


@pytest_asyncio.fixture()
async def verified_user(verification, sender):
    """A registered user who has clicked their verification link."""
    user = await verification.register(
        {"email": "grace@x.com", "first_name": "Grace"}, "correct-horse-1"
    )
    await verification.verify_email(sender.last_token(user.email))
    return user


@pytest_asyncio.fixture()
async def client(users, ledger, codec, hasher, mailer):
    """HTTP client with the app's collaborators overridden for testing."""
    app.dependency_overrides[get_user_store] = lambda: users
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_token_codec] = lambda: codec
    app.dependency_overrides[get_password_hasher] = lambda: hasher
    app.dependency_overrides[get_mailer] = lambda: mailer

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
