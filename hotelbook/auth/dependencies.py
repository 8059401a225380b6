"""FastAPI authentication dependencies for route protection."""

import uuid

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hotelbook.auth.jwt import decode_token
from hotelbook.database import get_db
from hotelbook.errors import ForbiddenError, UnauthorizedError
from hotelbook.models.enums import UserRole
from hotelbook.models.user import User

# Missing credentials are reported through UnauthorizedError, not FastAPI's default.
_bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Extract and validate the Bearer token, then return the authenticated user.

    Raises:
        UnauthorizedError: If the token is missing, invalid, expired, of the
            wrong type, or the user no longer exists or is inactive.
    """
    if credentials is None:
        raise UnauthorizedError("Authentication required")

    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        raise UnauthorizedError() from None

    if payload.get("type") != "access":
        raise UnauthorizedError("Invalid token type")

    sub: str | None = payload.get("sub")
    if sub is None:
        raise UnauthorizedError()

    try:
        user_id = uuid.UUID(sub)
    except ValueError:
        raise UnauthorizedError() from None

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise UnauthorizedError()
    if not user.is_active:
        raise UnauthorizedError("User account is inactive")

    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Allow only administrators through.

    Raises:
        ForbiddenError: If the authenticated user is not an admin.
    """
    if user.role != UserRole.ADMIN:
        raise ForbiddenError(f"Access denied. Required role(s): {UserRole.ADMIN}")
    return user
