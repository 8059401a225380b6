"""Auth API router — register, login and me for staff accounts.

Guests never authenticate; these endpoints exist for hotel owners and the
administrators who may override payments.
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from hotelbook.auth.dependencies import get_current_user
from hotelbook.auth.jwt import issue_token
from hotelbook.auth.passwords import hash_password, verify_password
from hotelbook.config import settings
from hotelbook.database import get_db
from hotelbook.errors import BadRequestError, UnauthorizedError
from hotelbook.models.user import User
from hotelbook.schemas.auth import (
    AuthResponse,
    LoginRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from hotelbook.services.orchestrator import PHONE_PATTERN, normalize_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


# ---------------------------------------------------------------------------
# POST /register
# ---------------------------------------------------------------------------


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)) -> AuthResponse:
    """Register a staff account with phone and password."""
    phone = normalize_phone(body.phone)
    if not PHONE_PATTERN.match(phone):
        raise BadRequestError("phone must be a valid international phone number")
    email = body.email or f"{phone}@{settings.guest_email_domain}"

    result = await db.execute(select(User).where(or_(User.phone == phone, User.email == email)))
    existing = result.scalars().first()
    if existing is not None and (existing.hashed_password is not None or existing.phone != phone):
        raise BadRequestError("User with this phone or email already exists")

    if existing is not None:
        # A guest who booked by phone claims the account.
        user = existing
        user.first_name = body.first_name
        user.last_name = body.last_name
        user.hashed_password = hash_password(body.password)
        user.role = body.role
    else:
        user = User(
            first_name=body.first_name,
            last_name=body.last_name,
            phone=phone,
            email=email,
            hashed_password=hash_password(body.password),
            role=body.role,
        )
        db.add(user)
    await db.flush()
    await db.refresh(user)
    logger.info("Registered %s user %s", user.role, user.id)

    return AuthResponse(
        user=UserResponse.model_validate(user),
        tokens=TokenResponse(**issue_token(str(user.id), user.role)),
    )


# ---------------------------------------------------------------------------
# POST /login
# ---------------------------------------------------------------------------


@router.post("/login", response_model=AuthResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)) -> AuthResponse:
    """Authenticate with phone and password."""
    result = await db.execute(select(User).where(User.phone == normalize_phone(body.phone)))
    user = result.scalar_one_or_none()

    # Reject: not found, guest account (no password), or wrong password
    if user is None or user.hashed_password is None or not verify_password(body.password, user.hashed_password):
        raise UnauthorizedError("Invalid phone or password")

    if not user.is_active:
        raise UnauthorizedError("User account is inactive")

    return AuthResponse(
        user=UserResponse.model_validate(user),
        tokens=TokenResponse(**issue_token(str(user.id), user.role)),
    )


# ---------------------------------------------------------------------------
# GET /me
# ---------------------------------------------------------------------------


@router.get("/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return the currently authenticated user's profile."""
    return UserResponse.model_validate(current_user)
