from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from app.utils.validation import is_valid_email, is_valid_name, normalize_phone, password_problem


class RegisterRequest(BaseModel):
    email: str = Field(max_length=255)
    password: str
    full_name: str

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        v = v.strip().lower()
        if not is_valid_email(v):
            raise ValueError("Please enter a valid email address")
        return v

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        problem = password_problem(v)
        if problem:
            raise ValueError(problem)
        return v

    @field_validator("full_name")
    @classmethod
    def check_name(cls, v: str) -> str:
        v = v.strip()
        if not is_valid_name(v):
            raise ValueError("Name must be 2-100 characters and contain only letters, spaces, hyphens and apostrophes")
        return v


class LoginRequest(BaseModel):
    email: str
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: dict


class ProfileUpdate(BaseModel):
    full_name: str | None = None
    phone_number: str | None = None
    county: str | None = Field(default=None, max_length=100)
    address: str | None = Field(default=None, max_length=255)
    id_number: str | None = Field(default=None, pattern=r"^\d{6,10}$")
    date_of_birth: date | None = None

    @field_validator("full_name")
    @classmethod
    def check_name(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not is_valid_name(v):
            raise ValueError("Name must be 2-100 characters and contain only letters, spaces, hyphens and apostrophes")
        return v

    @field_validator("phone_number")
    @classmethod
    def check_phone(cls, v: str | None) -> str | None:
        if v is None:
            return v
        phone = normalize_phone(v)
        if phone is None:
            raise ValueError("Please enter a valid Kenyan phone number (e.g., 0712345678)")
        return phone


class RoleUpdate(BaseModel):
    role: Literal["admin", "moderator", "user"]


class UserListOut(BaseModel):
    """Admin user list item."""
    id: str
    email: str
    full_name: str | None = None
    phone_number: str | None = None
    county: str | None = None
    is_registration_complete: bool = False
    is_banned: bool = False
    role: str
    created_at: datetime
    last_login_at: datetime | None = None
