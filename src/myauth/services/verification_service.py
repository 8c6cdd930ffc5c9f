"""Verification service — registration, email verification, password reset.

Learn: Every flow here is a signed, single-purpose token plus a state
change on the user record:

- register → create user (is_verified=False) → email a verification token
- verify_email → flip is_verified (already verified = idempotent success)
- resend_verification → email a fresh verification token
- forgot_password → email a reset token, remember its digest on the user
- reset_password → token must match the remembered digest → new password

Validity of each token is signature + expiry only. What makes them
single-use is the user state they guard: a verified user stays verified,
and reset_password clears the digest it just matched.

resend_verification and forgot_password answer the same way whether or
not the address belongs to anyone, so they can't be used to discover
registered emails.
"""

import hashlib
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import structlog

from myauth.auth.password import PasswordHasher
from myauth.auth.tokens import TokenClass, TokenCodec
from myauth.errors import Conflict, InternalFailure, TokenInvalid, UserNotFound
from myauth.mail.dispatcher import EmailDispatcher
from myauth.mail.sender import redact_email
from myauth.mail.templates import password_reset_email, verification_email
from myauth.users.models import (
    FIELD_LABELS,
    UNIQUE_FIELDS,
    UserIdentity,
    clean_profile,
    normalize_email,
)
from myauth.users.store import DuplicateUserError, UserStore

logger = structlog.get_logger()


def token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class VerificationResult:
    user: UserIdentity
    already_verified: bool = False


class VerificationService:
    def __init__(
        self,
        users: UserStore,
        codec: TokenCodec,
        hasher: PasswordHasher,
        mailer: EmailDispatcher,
        *,
        client_url: str,
    ):
        self.users = users
        self.codec = codec
        self.hasher = hasher
        self.mailer = mailer
        self.client_url = client_url

    # ─── Store access ───────────────────────────────────

    async def _call_store(self, op: str, *args):
        """Run a store operation, wrapping unexpected failures."""
        try:
            return await getattr(self.users, op)(*args)
        except DuplicateUserError:
            raise
        except Exception as e:
            logger.exception("verification.store_failed", op=op)
            raise InternalFailure(str(e)) from e

    async def _user_from_token(self, token: str, token_class: TokenClass) -> UserIdentity:
        claims = self.codec.decode(token, token_class)
        if claims is None:
            raise TokenInvalid()
        user = await self._call_store("find_by_id", claims.subject)
        if user is None:
            raise UserNotFound()
        return user

    # ─── Registration ───────────────────────────────────

    async def _find_conflict(self, fields: Mapping[str, Any]) -> Optional[str]:
        """First of email, phone, ID number that already belongs to someone."""
        for name in UNIQUE_FIELDS:
            if not fields.get(name):
                continue
            if await self._call_store("find_by_unique_fields", {name: fields[name]}):
                return name
        return None

    async def register(self, fields: Mapping[str, Any], password: str) -> UserIdentity:
        """Create an unverified user and email a verification link.

        Raises Conflict naming the first unique field (email, phone,
        ID number) that already belongs to someone.
        """
        data = clean_profile(fields)
        collided = await self._find_conflict(data)
        if collided:
            raise Conflict(collided, FIELD_LABELS[collided])

        data["email"] = normalize_email(data["email"])
        data["password_hash"] = self.hasher.hash(password)
        data["is_verified"] = False

        try:
            user = await self._call_store("create", data)
        except DuplicateUserError:
            # Lost a race with a concurrent registration
            collided = await self._find_conflict(data)
            if collided is None:
                logger.error("verification.unexplained_duplicate", to=redact_email(data["email"]))
                raise InternalFailure("Duplicate user with no colliding field")
            raise Conflict(collided, FIELD_LABELS[collided])

        logger.info("verification.registered", user_id=user.id)
        await self._send_verification(user)
        return user

    async def _send_verification(self, user: UserIdentity) -> None:
        token = self.codec.issue({"sub": user.id}, TokenClass.VERIFICATION)
        email = verification_email(self.client_url, token, user.first_name)
        await self.mailer.dispatch(user.email, email.subject, email.html)

    async def verify_email(self, token: str) -> VerificationResult:
        user = await self._user_from_token(token, TokenClass.VERIFICATION)
        if user.is_verified:
            return VerificationResult(user=user, already_verified=True)

        user.is_verified = True
        await self._call_store("save", user)
        logger.info("verification.verified", user_id=user.id)
        return VerificationResult(user=user)

    async def resend_verification(self, email: str) -> None:
        user = await self._call_store("find_by_email", email)
        if user is None or user.is_verified:
            logger.info("verification.resend_skipped", to=redact_email(email))
            return
        await self._send_verification(user)
        logger.info("verification.resent", user_id=user.id)

    # ─── Password reset ─────────────────────────────────

    async def forgot_password(self, email: str) -> None:
        user = await self._call_store("find_by_email", email)
        if user is None:
            logger.info("password_reset.unknown_email", to=redact_email(email))
            return

        token = self.codec.issue({"sub": user.id}, TokenClass.PASSWORD_RESET)
        claims = self.codec.decode(token, TokenClass.PASSWORD_RESET)
        # Only the newest reset token is honored
        user.password_reset_token = token_digest(token)
        user.password_reset_expires = claims.expires_at
        await self._call_store("save", user)

        email_msg = password_reset_email(self.client_url, token)
        await self.mailer.dispatch(user.email, email_msg.subject, email_msg.html)
        logger.info("password_reset.requested", user_id=user.id)

    async def reset_password(self, token: str, new_password: str) -> UserIdentity:
        user = await self._user_from_token(token, TokenClass.PASSWORD_RESET)

        if user.password_reset_token != token_digest(token):
            # Already used, or superseded by a newer request
            raise TokenInvalid()
        expires = user.password_reset_expires
        if expires and expires + self.codec.leeway <= self.codec.clock():
            raise TokenInvalid()

        password_hash = self.hasher.hash(new_password)
        # Compare-and-clear: a concurrent reset with the same token loses here
        claimed = await self._call_store(
            "claim_password_reset", user.id, token_digest(token), password_hash
        )
        if not claimed:
            raise TokenInvalid()
        user.password_hash = password_hash
        user.clear_password_reset()
        logger.info("password_reset.completed", user_id=user.id)
        return user
