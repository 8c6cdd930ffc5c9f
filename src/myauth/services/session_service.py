"""Session service — login, refresh, and logout.

Learn: This is the session state machine for a (user, refresh token) pair:

  NoSession --login--> Active (ledger holds the token) --logout--> Revoked

- login mints an access + refresh pair and activates the refresh token
- refresh mints a new access token; the refresh token is NOT rotated
- logout removes the refresh token from the ledger (idempotent)

Access tokens are stateless and can't be revoked before they expire.
The short TTL (15 min) bounds that exposure.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import structlog

from myauth.auth.ledger import RevocationLedger
from myauth.auth.password import PasswordHasher
from myauth.auth.tokens import TokenClaims, TokenClass, TokenCodec
from myauth.errors import (
    BadCredentials,
    InternalFailure,
    TokenInvalid,
    TokenRevoked,
    UnverifiedAccount,
)
from myauth.users.models import UserIdentity
from myauth.users.store import UserStore

logger = structlog.get_logger()


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime


@dataclass(frozen=True)
class SessionTokens:
    access: IssuedToken
    refresh: IssuedToken
    user: UserIdentity


class SessionService:
    """Orchestrates the token lifecycle for logged-in users."""

    def __init__(
        self,
        users: UserStore,
        codec: TokenCodec,
        ledger: RevocationLedger,
        hasher: PasswordHasher,
    ):
        self.users = users
        self.codec = codec
        self.ledger = ledger
        self.hasher = hasher

    def _issue(self, claims: dict, token_class: TokenClass) -> IssuedToken:
        token = self.codec.issue(claims, token_class)
        # The codec's own view of expiry keeps the ledger TTL in sync
        decoded = self.codec.decode(token, token_class)
        return IssuedToken(token=token, expires_at=decoded.expires_at)

    def _access_token_for(self, user: UserIdentity) -> IssuedToken:
        return self._issue({"sub": user.id, "email": user.email}, TokenClass.ACCESS)

    async def _find_user(self, *, email: Optional[str] = None, user_id: Optional[str] = None):
        try:
            if email is not None:
                return await self.users.find_by_email(email)
            return await self.users.find_by_id(user_id)
        except Exception as e:
            logger.exception("session.user_lookup_failed")
            raise InternalFailure(str(e)) from e

    async def login(self, email: str, password: str) -> SessionTokens:
        """Verify credentials and open a session.

        Order matters: an unverified account is rejected before the password
        is checked, so it can never log in regardless of credentials.
        """
        user = await self._find_user(email=email)
        if user is None:
            raise BadCredentials()
        if not user.is_verified:
            raise UnverifiedAccount()
        if not self.hasher.verify(password, user.password_hash):
            logger.info("session.login_failed", user_id=user.id)
            raise BadCredentials()

        access = self._access_token_for(user)
        refresh = self._issue({"sub": user.id}, TokenClass.REFRESH)

        # Activation is the last step: on failure no session exists
        try:
            await self.ledger.activate(refresh.token, refresh.expires_at)
        except Exception as e:
            logger.exception("session.ledger_activate_failed", user_id=user.id)
            raise InternalFailure(str(e)) from e

        logger.info("session.login", user_id=user.id)
        return SessionTokens(access=access, refresh=refresh, user=user)

    async def refresh(self, refresh_token: Optional[str]) -> IssuedToken:
        """Mint a new access token from an active refresh token."""
        if not refresh_token or not await self._is_active(refresh_token):
            raise TokenRevoked()

        claims = self.codec.decode(refresh_token, TokenClass.REFRESH)
        if claims is None:
            raise TokenInvalid("Invalid or expired refresh token", status_code=403)

        user = await self._find_user(user_id=claims.subject)
        if user is None:
            # Subject is gone; the token can never be honored again
            await self._deactivate(refresh_token)
            raise TokenInvalid("Invalid or expired refresh token", status_code=403)

        logger.info("session.refresh", user_id=user.id)
        return self._access_token_for(user)

    async def logout(self, refresh_token: Optional[str]) -> None:
        """Revoke a refresh token. Unknown or missing tokens are a no-op."""
        if not refresh_token:
            return
        await self._deactivate(refresh_token)
        logger.info("session.logout")

    def authenticate(self, access_token: Optional[str]) -> TokenClaims:
        """Validate an access token for a protected request."""
        claims = self.codec.decode(access_token, TokenClass.ACCESS)
        if claims is None:
            raise TokenInvalid("Invalid or expired access token", status_code=401)
        return claims

    async def _is_active(self, token: str) -> bool:
        try:
            return await self.ledger.is_active(token)
        except Exception as e:
            logger.exception("session.ledger_lookup_failed")
            raise InternalFailure(str(e)) from e

    async def _deactivate(self, token: str) -> None:
        try:
            await self.ledger.deactivate(token)
        except Exception as e:
            logger.exception("session.ledger_deactivate_failed")
            raise InternalFailure(str(e)) from e
