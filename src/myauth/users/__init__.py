"""User records — the identity data the auth core reads and updates.

Learn: The auth services only talk to the UserStore protocol. Two
implementations ship: SqlUserStore (per-request AsyncSession) and
InMemoryUserStore (tests and local development).
"""

from myauth.users.models import UNIQUE_FIELDS, UserIdentity
from myauth.users.store import (
    DuplicateUserError,
    InMemoryUserStore,
    SqlUserStore,
    UserStore,
)

__all__ = [
    "UNIQUE_FIELDS",
    "DuplicateUserError",
    "InMemoryUserStore",
    "SqlUserStore",
    "UserIdentity",
    "UserStore",
]
