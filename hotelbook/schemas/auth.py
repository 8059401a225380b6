"""Pydantic v2 request/response schemas for authentication endpoints."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Schema for staff registration (hotel owners and customers).

    Administrators are provisioned out of band and cannot self-register.
    """

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: str = Field(..., min_length=3, max_length=20)
    password: str = Field(..., min_length=8, max_length=128)
    email: EmailStr | None = None
    role: str = Field("hotel_owner", pattern="^(hotel_owner|customer)$")


class LoginRequest(BaseModel):
    """Schema for phone/password login."""

    phone: str
    password: str


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    """JWT access token returned on successful authentication."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class UserResponse(BaseModel):
    """Public user profile information."""

    id: uuid.UUID
    first_name: str
    last_name: str
    email: str
    phone: str
    role: str
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuthResponse(BaseModel):
    """Combined user + token returned on register/login."""

    user: UserResponse
    tokens: TokenResponse
