"""
FastAPI dependencies for configuration, authentication and authorization.

Dependencies are reusable functions that FastAPI injects into route handlers.
They form a chain that enforces both authentication and role-based access
control:

  get_settings (app.state -> Settings)
  get_current_user (JWT -> User)
      └── require_roles(*roles) (User -> User)   [capability check]

Roles:
  - USER: Issues and views their own cards, views their own card analytics
    and transactions.
  - MERCHANT: Charges cards, views their own sales analytics and transactions.
  - ADMIN: Read-only oversight of any card, transaction or analytics report.

Every protected endpoint declares one of these as a parameter. FastAPI
calls the dependency, and if it fails (invalid token or wrong role), the
request is rejected before the route handler runs.
"""

import uuid

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ghostcard.config import Settings
from ghostcard.database import get_db
from ghostcard.exceptions import InvalidTokenError, PermissionDeniedError
from ghostcard.models.user import User, UserRole
from ghostcard.security import ACCESS_TOKEN_TYPE, decode_token


# OAuth2PasswordBearer tells FastAPI where to look for the token:
# the "Authorization: Bearer <token>" header. The tokenUrl points to
# the login endpoint (used by Swagger UI's "Authorize" button).
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def get_settings(request: Request) -> Settings:
    """The Settings object the application was built with."""
    return request.app.state.settings


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> User:
    """
    Extract and validate the access token, then return the corresponding User.

    Refresh tokens are rejected here — they are only good for
    POST /auth/refresh-token.

    Raises:
        InvalidTokenError (401): If the token is invalid, is not an access
            token, or the user doesn't exist / is deactivated.
    """
    try:
        payload = decode_token(token, settings)
        user_id_str: str | None = payload.get("sub")
        if user_id_str is None or payload.get("type") != ACCESS_TOKEN_TYPE:
            raise InvalidTokenError()
        user_id = uuid.UUID(user_id_str)
    except (JWTError, ValueError):
        raise InvalidTokenError()

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        raise InvalidTokenError()

    return user


def require_roles(*roles: UserRole):
    """
    Build a dependency that admits only callers holding one of `roles`.

    Usage:
        user: User = Depends(require_roles(UserRole.USER, UserRole.ADMIN))

    Raises:
        PermissionDeniedError (403): If the caller's role is not allowed.
    """
    allowed = frozenset(roles)

    async def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise PermissionDeniedError(
                "Access denied",
                details={"required_roles": sorted(role.value for role in allowed)},
            )
        return user

    return dependency
