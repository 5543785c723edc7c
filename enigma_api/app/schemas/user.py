"""
Pydantic models for user data.

Defines schemas for registering users, logging in and reading user
information, plus the response envelope returned by the auth routes.
Passwords are accepted on input only and never returned.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class UserRole(str, Enum):
    user = "user"
    admin = "admin"
    moderator = "moderator"


class UserBase(BaseModel):
    email: str = Field(..., min_length=3, pattern=r"^[^@\s]+@[^@\s]+$", example="member@example.com")
    name: str = Field(..., min_length=1, max_length=100, example="Ada Lovelace")


class UserCreate(UserBase):
    """Schema for self-registration.  New accounts always get the ``user`` role."""

    password: str = Field(..., min_length=6, example="strongpassword")


class UserLogin(BaseModel):
    email: str = Field(..., example="member@example.com")
    password: str = Field(..., min_length=1, example="strongpassword")


class UserRead(UserBase):
    """Schema for reading a user from the API."""

    id: int
    role: UserRole = UserRole.user

    model_config = {
        "from_attributes": True,
    }


class AuthData(BaseModel):
    token: str
    user: UserRead


class AuthResponse(BaseModel):
    """Envelope returned by login and registration: ``{data: {token}}``."""

    success: bool = True
    message: Optional[str] = None
    data: AuthData
