"""Pydantic schemas for the auth API.

Learn: Request bodies validate input shape (password length, email
format, gender enum) before any service code runs — FastAPI turns
validation failures into 422 responses automatically.
"""

import uuid
from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


# ─── Requests ─────────────────────────────────────────────


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    gender: Optional[Literal["Male", "Female", "Other"]] = None
    dob: Optional[date] = None
    address: Optional[str] = Field(None, max_length=255)
    id_number: Optional[str] = Field(None, max_length=50)
    phone: Optional[str] = Field(None, max_length=30)

    @field_validator(
        "last_name", "gender", "dob", "address", "id_number", "phone", mode="before"
    )
    @classmethod
    def blank_is_missing(cls, v):
        # Forms send "" for untouched optional inputs
        if isinstance(v, str) and not v.strip():
            return None
        return v


class EmailRequest(BaseModel):
    email: EmailStr


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    password: str = Field(min_length=8)


# ─── Responses ────────────────────────────────────────────


class MessageResponse(BaseModel):
    message: str


class UserRead(BaseModel):
    id: uuid.UUID
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_verified: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RegisterResponse(BaseModel):
    message: str
    user: UserRead


class VerifyEmailResponse(BaseModel):
    success: bool = True
    message: str
    already_verified: bool = False


class LoginResponse(BaseModel):
    message: str
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserRead


class RefreshResponse(BaseModel):
    message: str
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime


class MeResponse(BaseModel):
    id: str
    email: Optional[str] = None
