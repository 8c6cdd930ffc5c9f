"""User stores — persistence behind the UserStore protocol.

Learn: Services never touch SQLAlchemy directly. They ask the store for
a UserIdentity, change the fields they own, and hand it back to save().
That keeps the auth logic testable without a database.
"""

import dataclasses
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Protocol

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from myauth.db.models import UserRecord
from myauth.users.models import UNIQUE_FIELDS, UserIdentity, clean_profile, normalize_email

# Fields save() is allowed to write back
_MUTABLE_FIELDS = (
    "email",
    "password_hash",
    "is_verified",
    "first_name",
    "last_name",
    "gender",
    "dob",
    "address",
    "id_number",
    "phone",
    "password_reset_token",
    "password_reset_expires",
)


class DuplicateUserError(Exception):
    """A unique field collided while creating a user."""


class UserStore(Protocol):
    async def find_by_email(self, email: str) -> Optional[UserIdentity]: ...

    async def find_by_id(self, user_id: str) -> Optional[UserIdentity]: ...

    async def find_by_unique_fields(
        self, fields: Mapping[str, Any]
    ) -> Optional[UserIdentity]: ...

    async def create(self, fields: Mapping[str, Any]) -> UserIdentity: ...

    async def save(self, user: UserIdentity) -> None: ...

    async def claim_password_reset(
        self, user_id: str, token_digest: str, password_hash: str
    ) -> bool: ...


def _unique_lookups(fields: Mapping[str, Any]) -> dict[str, Any]:
    lookups = {name: fields.get(name) for name in UNIQUE_FIELDS if fields.get(name)}
    if "email" in lookups:
        lookups["email"] = normalize_email(lookups["email"])
    return lookups


# ─── In-memory ───────────────────────────────────────────


class InMemoryUserStore:
    """Dict-backed store. Hands out copies so callers must save() changes."""

    def __init__(self):
        self._users: dict[str, UserIdentity] = {}
        self._lock = threading.Lock()

    async def find_by_email(self, email: str) -> Optional[UserIdentity]:
        wanted = normalize_email(email)
        with self._lock:
            for user in self._users.values():
                if user.email == wanted:
                    return dataclasses.replace(user)
        return None

    async def find_by_id(self, user_id: str) -> Optional[UserIdentity]:
        with self._lock:
            user = self._users.get(str(user_id))
            return dataclasses.replace(user) if user else None

    async def find_by_unique_fields(
        self, fields: Mapping[str, Any]
    ) -> Optional[UserIdentity]:
        lookups = _unique_lookups(fields)
        if not lookups:
            return None
        with self._lock:
            for user in self._users.values():
                if any(getattr(user, k) == v for k, v in lookups.items()):
                    return dataclasses.replace(user)
        return None

    async def create(self, fields: Mapping[str, Any]) -> UserIdentity:
        data = clean_profile(fields)
        data["email"] = normalize_email(data["email"])
        now = datetime.now(timezone.utc)
        user = UserIdentity(
            id=str(uuid.uuid4()), created_at=now, updated_at=now, **data
        )
        lookups = _unique_lookups(data)
        with self._lock:
            for existing in self._users.values():
                if any(getattr(existing, k) == v for k, v in lookups.items()):
                    raise DuplicateUserError(existing.id)
            self._users[user.id] = user
        return dataclasses.replace(user)

    async def save(self, user: UserIdentity) -> None:
        with self._lock:
            if user.id not in self._users:
                raise LookupError(f"User {user.id} does not exist")
            stored = dataclasses.replace(user, updated_at=datetime.now(timezone.utc))
            self._users[user.id] = stored

    async def claim_password_reset(
        self, user_id: str, token_digest: str, password_hash: str
    ) -> bool:
        with self._lock:
            user = self._users.get(str(user_id))
            if user is None or user.password_reset_token != token_digest:
                return False
            self._users[user.id] = dataclasses.replace(
                user,
                password_hash=password_hash,
                password_reset_token=None,
                password_reset_expires=None,
                updated_at=datetime.now(timezone.utc),
            )
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)


# ─── SQLAlchemy ──────────────────────────────────────────


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_identity(record: UserRecord) -> UserIdentity:
    return UserIdentity(
        id=str(record.id),
        email=record.email,
        password_hash=record.password_hash,
        is_verified=record.is_verified,
        first_name=record.first_name,
        last_name=record.last_name,
        gender=record.gender,
        dob=record.dob,
        address=record.address,
        id_number=record.id_number,
        phone=record.phone,
        password_reset_token=record.password_reset_token,
        password_reset_expires=_aware(record.password_reset_expires),
        created_at=_aware(record.created_at),
        updated_at=_aware(record.updated_at),
    )


def _parse_uuid(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class SqlUserStore:
    """UserStore over an AsyncSession (one per request)."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_email(self, email: str) -> Optional[UserIdentity]:
        result = await self.db.execute(
            select(UserRecord).where(UserRecord.email == normalize_email(email))
        )
        record = result.scalars().first()
        return _to_identity(record) if record else None

    async def find_by_id(self, user_id: str) -> Optional[UserIdentity]:
        pk = _parse_uuid(user_id)
        if pk is None:
            return None
        record = await self.db.get(UserRecord, pk)
        return _to_identity(record) if record else None

    async def find_by_unique_fields(
        self, fields: Mapping[str, Any]
    ) -> Optional[UserIdentity]:
        lookups = _unique_lookups(fields)
        if not lookups:
            return None
        conditions = [getattr(UserRecord, k) == v for k, v in lookups.items()]
        result = await self.db.execute(select(UserRecord).where(or_(*conditions)))
        record = result.scalars().first()
        return _to_identity(record) if record else None

    async def create(self, fields: Mapping[str, Any]) -> UserIdentity:
        data = clean_profile(fields)
        data["email"] = normalize_email(data["email"])
        record = UserRecord(**data)
        self.db.add(record)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise DuplicateUserError(str(e.orig)) from e
        await self.db.refresh(record)
        return _to_identity(record)

    async def save(self, user: UserIdentity) -> None:
        record = await self.db.get(UserRecord, uuid.UUID(user.id))
        if record is None:
            raise LookupError(f"User {user.id} does not exist")
        for name in _MUTABLE_FIELDS:
            setattr(record, name, getattr(user, name))
        await self.db.commit()

    async def claim_password_reset(
        self, user_id: str, token_digest: str, password_hash: str
    ) -> bool:
        """Set the new password only if `token_digest` is still on file.

        Learn: Check and clear happen in one UPDATE ... WHERE, so two
        requests racing with the same reset token can't both win.
        """
        pk = _parse_uuid(user_id)
        if pk is None:
            return False
        result = await self.db.execute(
            update(UserRecord)
            .where(
                UserRecord.id == pk,
                UserRecord.password_reset_token == token_digest,
            )
            .values(
                password_hash=password_hash,
                password_reset_token=None,
                password_reset_expires=None,
            )
        )
        await self.db.commit()
        return result.rowcount == 1
