"""Error taxonomy for the auth core.

Learn: Business-rule failures are typed exceptions with a stable `kind`
and an HTTP status. The API layer renders them through one exception
handler, so services never build HTTP responses themselves.
"""

from typing import Optional


class AuthError(Exception):
    """Base class for caller-visible auth failures."""

    kind = "auth_error"
    status_code = 400
    default_message = "Authentication error"

    def __init__(self, message: Optional[str] = None, *, status_code: Optional[int] = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class UserNotFound(AuthError):
    kind = "not_found"
    status_code = 404
    default_message = "User not found"


class Conflict(AuthError):
    """A unique identity field is already registered to another user."""

    kind = "conflict"
    status_code = 409

    def __init__(self, field: str, label: Optional[str] = None):
        self.field = field
        super().__init__(f"{label or field} already registered")


class BadCredentials(AuthError):
    kind = "bad_credentials"
    status_code = 401
    default_message = "Invalid credentials"


class UnverifiedAccount(AuthError):
    kind = "unverified_account"
    status_code = 403
    default_message = "Please verify your email before logging in."


class TokenRevoked(AuthError):
    kind = "token_revoked"
    status_code = 401
    default_message = "Unauthorized"


class TokenInvalid(AuthError):
    kind = "token_invalid"
    status_code = 400
    default_message = "Invalid or expired token"


class InternalFailure(AuthError):
    """Wraps store/transport errors. Detail is hidden from clients outside debug."""

    kind = "internal_failure"
    status_code = 500
    default_message = "Internal server error"
