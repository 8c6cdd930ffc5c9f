"""JWT token creation and verification.

Learn: JWT (JSON Web Token) provides stateless authentication.
- Access token: short-lived (15min), used for API calls
- Refresh token: long-lived (7 days), used to get new access tokens
- Verification token: 1 day, proves control of an email address
- Password reset token: 1 hour, authorizes one password change

Every token carries a "type" claim and is signed with its class's own
secret, so an access token can never be replayed as a refresh token.

Decoding fails closed: expired, malformed, badly signed, or wrong-class
tokens all come back as None. Callers map None to an auth failure.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Mapping, Optional

import jwt

from myauth.config import Settings, settings as default_settings

# Claims the codec owns; callers can't set these
RESERVED_CLAIMS = frozenset({"type", "iat", "exp", "jti"})


class TokenClass(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"
    VERIFICATION = "verification"
    PASSWORD_RESET = "password_reset"


@dataclass(frozen=True)
class TokenClaims:
    """A successfully decoded token."""

    claims: dict[str, Any]
    token_class: TokenClass
    token_id: str
    issued_at: datetime
    expires_at: datetime
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def subject(self) -> str:
        return self.claims["sub"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenCodec:
    """Issue and decode signed, expiring tokens."""

    def __init__(
        self,
        secrets: Mapping[TokenClass, str],
        ttls: Mapping[TokenClass, timedelta],
        *,
        algorithm: str = "HS256",
        leeway: timedelta = timedelta(seconds=30),
        clock: Callable[[], datetime] = utcnow,
    ):
        missing = [c.value for c in TokenClass if not secrets.get(c)]
        if missing:
            raise ValueError(f"Missing signing secret for: {', '.join(missing)}")
        if secrets[TokenClass.ACCESS] == secrets[TokenClass.REFRESH]:
            raise ValueError("Access and refresh tokens must use distinct secrets")
        self._secrets = dict(secrets)
        self.ttls = dict(ttls)
        self.algorithm = algorithm
        self.leeway = leeway
        self.clock = clock

    def issue(
        self,
        claims: Mapping[str, Any],
        token_class: TokenClass,
        ttl: Optional[timedelta] = None,
    ) -> str:
        """Sign `claims` as a token of `token_class` that expires after `ttl`."""
        if not claims.get("sub"):
            raise ValueError("Token claims require a 'sub'")
        reserved = RESERVED_CLAIMS.intersection(claims)
        if reserved:
            raise ValueError(f"Reserved claims can't be set: {sorted(reserved)}")

        ttl = ttl if ttl is not None else self.ttls[token_class]
        now = self.clock()
        payload = {
            **claims,
            "sub": str(claims["sub"]),
            "type": token_class.value,
            "iat": now,
            "exp": now + ttl,
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self._secrets[token_class], algorithm=self.algorithm)

    def decode(self, token: Optional[str], expected_class: TokenClass) -> Optional[TokenClaims]:
        """Verify and decode a token of the expected class.

        Returns None on any failure; never raises.
        """
        if not token or not isinstance(token, str):
            return None
        try:
            # Expiry is checked below against our own clock
            payload = jwt.decode(
                token,
                self._secrets[expected_class],
                algorithms=[self.algorithm],
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "require": ["sub", "type", "iat", "exp", "jti"],
                },
            )
        except jwt.InvalidTokenError:
            return None

        if payload.get("type") != expected_class.value:
            return None

        try:
            issued_at = datetime.fromtimestamp(payload["iat"], tz=timezone.utc)
            expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
        except (TypeError, ValueError, OverflowError):
            return None

        now = self.clock()
        if now >= expires_at + self.leeway:
            return None
        if issued_at > now + self.leeway:
            return None

        claims = {k: v for k, v in payload.items() if k not in RESERVED_CLAIMS}
        return TokenClaims(
            claims=claims,
            token_class=expected_class,
            token_id=str(payload["jti"]),
            issued_at=issued_at,
            expires_at=expires_at,
            raw=payload,
        )


def build_token_codec(config: Settings = default_settings, **kwargs) -> TokenCodec:
    """Build the codec from settings. Extra kwargs (e.g. clock) pass through."""
    secrets = {
        TokenClass.ACCESS: config.access_token_secret,
        TokenClass.REFRESH: config.refresh_token_secret,
        TokenClass.VERIFICATION: (
            config.verification_token_secret or config.access_token_secret
        ),
        TokenClass.PASSWORD_RESET: (
            config.password_reset_token_secret or config.access_token_secret
        ),
    }
    ttls = {
        TokenClass.ACCESS: timedelta(minutes=config.access_token_expire_minutes),
        TokenClass.REFRESH: timedelta(days=config.refresh_token_expire_days),
        TokenClass.VERIFICATION: timedelta(hours=config.verification_token_expire_hours),
        TokenClass.PASSWORD_RESET: timedelta(
            minutes=config.password_reset_token_expire_minutes
        ),
    }
    kwargs.setdefault("algorithm", config.jwt_algorithm)
    kwargs.setdefault("leeway", timedelta(seconds=config.token_leeway_seconds))
    return TokenCodec(secrets, ttls, **kwargs)
