"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers. Process-wide
collaborators (token codec, revocation ledger, email dispatcher) are
module singletons wired up in the app lifespan; the user store is built
per request around that request's DB session. Tests swap any of them
through app.dependency_overrides.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Cookie, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from myauth.auth.ledger import InMemoryRevocationLedger, RevocationLedger
from myauth.auth.password import PasswordHasher, get_password_hasher
from myauth.auth.tokens import TokenCodec, build_token_codec
from myauth.config import settings
from myauth.db.engine import get_db
from myauth.errors import TokenInvalid
from myauth.mail.dispatcher import EmailDispatcher
from myauth.mail.sender import build_email_sender
from myauth.services.session_service import SessionService
from myauth.services.verification_service import VerificationService
from myauth.users.store import InMemoryUserStore, SqlUserStore, UserStore

# Replaced in lifespan once we know whether Redis is reachable
_ledger: RevocationLedger = InMemoryRevocationLedger()
_mailer: Optional[EmailDispatcher] = None
_memory_users: Optional[InMemoryUserStore] = None


def set_ledger(ledger: RevocationLedger) -> None:
    global _ledger
    _ledger = ledger


def get_ledger() -> RevocationLedger:
    return _ledger


def get_mailer() -> EmailDispatcher:
    global _mailer
    if _mailer is None:
        _mailer = EmailDispatcher(build_email_sender(settings))
    return _mailer


@lru_cache
def get_token_codec() -> TokenCodec:
    return build_token_codec(settings)


async def get_user_store(db: AsyncSession = Depends(get_db)) -> UserStore:
    global _memory_users
    if settings.user_store_backend == "memory":
        if _memory_users is None:
            _memory_users = InMemoryUserStore()
        return _memory_users
    return SqlUserStore(db)


def get_session_service(
    users: UserStore = Depends(get_user_store),
    codec: TokenCodec = Depends(get_token_codec),
    ledger: RevocationLedger = Depends(get_ledger),
    hasher: PasswordHasher = Depends(get_password_hasher),
) -> SessionService:
    return SessionService(users, codec, ledger, hasher)


def get_verification_service(
    users: UserStore = Depends(get_user_store),
    codec: TokenCodec = Depends(get_token_codec),
    hasher: PasswordHasher = Depends(get_password_hasher),
    mailer: EmailDispatcher = Depends(get_mailer),
) -> VerificationService:
    return VerificationService(
        users, codec, hasher, mailer, client_url=settings.client_url
    )


class CurrentIdentity:
    """The user behind a valid access token."""

    def __init__(self, user_id: str, email: Optional[str] = None):
        self.user_id = user_id
        self.email = email


async def get_current_user(
    authorization: Optional[str] = Header(None),
    access_token: Optional[str] = Cookie(None, alias="accessToken"),
    sessions: SessionService = Depends(get_session_service),
) -> CurrentIdentity:
    """Resolve the caller from a Bearer header or the accessToken cookie.

    Learn: Access tokens are stateless: only signature and expiry are
    checked, no DB or ledger lookup. That's what makes them cheap, and
    why they can't be revoked before they expire.
    """
    token = access_token
    if authorization and authorization.startswith("Bearer "):
        token = authorization[7:]
    if not token:
        raise TokenInvalid("Authentication required", status_code=401)

    claims = sessions.authenticate(token)
    return CurrentIdentity(user_id=claims.subject, email=claims.claims.get("email"))
