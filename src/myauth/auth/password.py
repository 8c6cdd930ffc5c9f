"""Password hashing utilities.

Learn: Uses bcrypt for secure password hashing. bcrypt automatically
handles salting and is resistant to rainbow table attacks.
The work factor (rounds=12) takes ~100ms per hash on modern hardware.
Tests drop the rounds to 4 to stay fast.
"""

import bcrypt

from myauth.config import settings

# bcrypt only looks at the first 72 bytes
_MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """Credential verifier: salted, cost-factored hashing and checking."""

    def __init__(self, rounds: int = 12):
        self.rounds = rounds

    def hash(self, password: str) -> str:
        """Hash a password with bcrypt.

        bcrypt includes a random salt automatically and produces
        hashes starting with "$2b$".
        """
        pw_bytes = password.encode("utf-8")[:_MAX_PASSWORD_BYTES]
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(pw_bytes, salt).decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        """Verify a password against its hash.

        bcrypt.checkpw compares digests in constant time. Malformed
        hashes never match.
        """
        if not password_hash:
            return False
        try:
            pw_bytes = password.encode("utf-8")[:_MAX_PASSWORD_BYTES]
            return bcrypt.checkpw(pw_bytes, password_hash.encode("utf-8"))
        except (ValueError, TypeError):
            return False


def get_password_hasher() -> PasswordHasher:
    return PasswordHasher(rounds=settings.bcrypt_rounds)
