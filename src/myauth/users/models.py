"""Domain view of a user, independent of the storage backend."""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Mapping, Optional

# Registration checks these in order and reports the first collision
UNIQUE_FIELDS = ("email", "phone", "id_number")

# Human-readable names for conflict messages
FIELD_LABELS = {
    "email": "Email",
    "phone": "Phone",
    "id_number": "ID Number",
}


def normalize_email(email: str) -> str:
    return email.strip().lower()


# Free-text profile fields where "" means "not given"
OPTIONAL_TEXT_FIELDS = ("last_name", "gender", "address", "id_number", "phone")


def clean_profile(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Copy `fields` with blank optional strings turned into None.

    HTML forms submit "" for untouched inputs. Stored as-is, two blank
    phones would collide on the unique index.
    """
    data = dict(fields)
    for name in OPTIONAL_TEXT_FIELDS:
        value = data.get(name)
        if isinstance(value, str):
            data[name] = value.strip() or None
    return data


@dataclass
class UserIdentity:
    id: str
    email: str
    password_hash: str
    is_verified: bool = False
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    gender: Optional[str] = None
    dob: Optional[date] = None
    address: Optional[str] = None
    id_number: Optional[str] = None
    phone: Optional[str] = None
    password_reset_token: Optional[str] = None
    password_reset_expires: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def clear_password_reset(self) -> None:
        self.password_reset_token = None
        self.password_reset_expires = None
