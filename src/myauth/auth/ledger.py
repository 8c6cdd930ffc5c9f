"""Revocation ledger — the set of refresh tokens currently honored.

Learn: A refresh token is only usable while it is BOTH correctly signed
and unexpired AND present in the ledger. Logout removes it, which revokes
it immediately even though the signature is still valid.

Keys are the SHA-256 digest of the token string (same trick as API key
storage): fixed-size keys, and a dump of the ledger leaks no usable tokens.

Two implementations with the same async contract:
1. InMemoryRevocationLedger → single process, lock-guarded dict
2. RedisRevocationLedger → shared across server instances; Redis
   expires entries itself via key TTLs
"""

import hashlib
import threading
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

import redis.asyncio as aioredis
import structlog

logger = structlog.get_logger()


def ledger_key(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RevocationLedger(Protocol):
    async def activate(self, token: str, expires_at: datetime) -> None: ...

    async def deactivate(self, token: str) -> None: ...

    async def is_active(self, token: str) -> bool: ...

    async def purge_expired(self) -> int: ...


class InMemoryRevocationLedger:
    """Mutex-guarded in-process ledger.

    The lock only ever wraps dict operations (never I/O), so holding it
    from async code doesn't stall the event loop.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._entries: dict[str, datetime] = {}
        self._lock = threading.Lock()
        self.clock = clock

    async def activate(self, token: str, expires_at: datetime) -> None:
        with self._lock:
            self._entries[ledger_key(token)] = expires_at

    async def deactivate(self, token: str) -> None:
        with self._lock:
            self._entries.pop(ledger_key(token), None)

    async def is_active(self, token: str) -> bool:
        key = ledger_key(token)
        with self._lock:
            expires_at = self._entries.get(key)
            if expires_at is None:
                return False
            if expires_at <= self.clock():
                # Lazy purge
                del self._entries[key]
                return False
            return True

    async def purge_expired(self) -> int:
        now = self.clock()
        with self._lock:
            expired = [k for k, exp in self._entries.items() if exp <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisRevocationLedger:
    """Redis-backed ledger shared by every server instance.

    SET/DEL/EXISTS are each atomic, so concurrent logins and logouts
    can't lose updates. Entries carry the token's remaining lifetime as
    a TTL, so Redis does the housekeeping.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        *,
        prefix: str = "myauth:refresh",
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.redis = redis
        self.prefix = prefix
        self.clock = clock

    def _key(self, token: str) -> str:
        return f"{self.prefix}:{ledger_key(token)}"

    async def activate(self, token: str, expires_at: datetime) -> None:
        ttl = int((expires_at - self.clock()).total_seconds())
        if ttl <= 0:
            # Already expired, nothing to honor
            return
        await self.redis.set(self._key(token), "1", ex=ttl)

    async def deactivate(self, token: str) -> None:
        await self.redis.delete(self._key(token))

    async def is_active(self, token: str) -> bool:
        return bool(await self.redis.exists(self._key(token)))

    async def purge_expired(self) -> int:
        # Key TTLs expire entries server-side
        return 0


def build_ledger(backend: str, redis: Optional[aioredis.Redis] = None) -> RevocationLedger:
    """Pick a ledger implementation. Falls back to memory when Redis is missing."""
    if backend == "redis":
        if redis is not None:
            return RedisRevocationLedger(redis)
        logger.warning("ledger.redis_unavailable", fallback="memory")
    elif backend != "memory":
        raise ValueError(f"Unknown ledger backend: {backend!r}")
    return InMemoryRevocationLedger()
