"""
Authentication service — registration, login and token refresh.

This module contains the core auth logic, separated from HTTP concerns.
The router calls these functions and translates the results into HTTP
responses.

Register flow:
  1. Refuse self-service admin registration unless explicitly allowed
  2. Check if email is already registered
  3. Hash the password with Argon2id and create the User
  4. Return access + refresh tokens so the user is immediately logged in

Login flow:
  1. Look up user by email
  2. Verify password against stored hash; a mismatch increments the
     persisted failed_login_attempts counter (informational, no lockout)
  3. Record last_login_at and return access + refresh tokens

Refresh flow:
  1. Verify the refresh token (signature, expiry, type)
  2. Re-issue an access token for the still-active user

Security notes:
  - Login returns the same error for "wrong password", "email not found"
    and "deactivated user" to prevent user enumeration attacks
  - Passwords and tokens are never logged
"""

import uuid
from datetime import datetime, timezone

import structlog
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ghostcard.config import Settings
from ghostcard.exceptions import (
    DuplicateEmailError,
    InvalidCredentialsError,
    InvalidTokenError,
    PermissionDeniedError,
)
from ghostcard.models.user import User, UserRole
from ghostcard.security import (
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)

logger = structlog.get_logger(__name__)


def _token_claims(user: User) -> dict:
    # "sub" (subject) is the standard claim for user identity
    return {"sub": str(user.id), "email": user.email, "role": user.role.value}


def issue_tokens(user: User, settings: Settings) -> tuple[str, str]:
    """Return (access_token, refresh_token) for user."""
    claims = _token_claims(user)
    return (
        create_access_token(claims, settings),
        create_refresh_token(claims, settings),
    )


async def register(
    db: AsyncSession,
    settings: Settings,
    role: UserRole,
    name: str,
    email: str,
    password: str,
) -> tuple[User, str, str]:
    """
    Register a new user with the given role.

    Returns:
        Tuple of (User instance, access token, refresh token).

    Raises:
        PermissionDeniedError: If role is ADMIN and admin self-registration
            is disabled.
        DuplicateEmailError: If the email is already registered.
    """
    if role == UserRole.ADMIN and not settings.ALLOW_ADMIN_REGISTRATION:
        raise PermissionDeniedError("Admin accounts cannot be self-registered")

    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none() is not None:
        raise DuplicateEmailError(email)

    user = User(
        name=name,
        email=email,
        hashed_password=hash_password(password),
        role=role,
    )
    db.add(user)
    # Flush to get the defaults (id, timestamps) assigned
    await db.flush()

    logger.info("user_registered", user_id=str(user.id), role=role.value)

    access_token, refresh_token = issue_tokens(user, settings)
    return user, access_token, refresh_token


async def login(
    db: AsyncSession,
    settings: Settings,
    email: str,
    password: str,
) -> tuple[User, str, str]:
    """
    Authenticate a user and return fresh tokens.

    The failed-attempt increment is flushed before raising; get_db commits
    the session on domain errors, so the counter survives the 401.

    Raises:
        InvalidCredentialsError: If email doesn't exist, password is wrong,
            or the user is deactivated.
    """
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    # Same error for every case — prevents user enumeration
    if user is None:
        logger.info("login_failed", reason="unknown_email")
        raise InvalidCredentialsError()

    if not verify_password(password, user.hashed_password):
        user.failed_login_attempts += 1
        await db.flush()
        logger.info(
            "login_failed",
            reason="bad_password",
            user_id=str(user.id),
            failed_attempts=user.failed_login_attempts,
        )
        raise InvalidCredentialsError()

    if not user.is_active:
        logger.info("login_failed", reason="inactive", user_id=str(user.id))
        raise InvalidCredentialsError()

    user.failed_login_attempts = 0
    user.last_login_at = datetime.now(timezone.utc)
    await db.flush()

    logger.info("login_succeeded", user_id=str(user.id), role=user.role.value)

    access_token, refresh_token = issue_tokens(user, settings)
    return user, access_token, refresh_token


async def refresh_access_token(
    db: AsyncSession,
    settings: Settings,
    refresh_token: str,
) -> str:
    """
    Exchange a valid refresh token for a new access token.

    Credentials are not re-checked, but the user must still exist and be
    active.

    Raises:
        InvalidTokenError: If the token is invalid, expired, not a refresh
            token, or its user is gone / deactivated.
    """
    try:
        payload = decode_token(refresh_token, settings)
        if payload.get("type") != REFRESH_TOKEN_TYPE or payload.get("sub") is None:
            raise InvalidTokenError("Invalid refresh token")
        user_id = uuid.UUID(payload["sub"])
    except (JWTError, ValueError):
        raise InvalidTokenError("Invalid refresh token")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise InvalidTokenError("Invalid refresh token")

    return create_access_token(_token_claims(user), settings)
