"""
Authentication router — registration, login and token refresh.

These are the only public (unauthenticated) endpoints in the API.
Everything else requires a valid access token.

Endpoints:
  POST /auth/register/{role}  — Register as user or merchant and get tokens
  POST /auth/login            — Authenticate and get tokens
  POST /auth/refresh-token    — Exchange a refresh token for an access token

All three share the "auth" rate limiter (10 requests per hour per client
by default).

Security audit notes:
  - Plaintext passwords exist only in memory during request processing;
    they are hashed before any database operation and never logged.
  - Tokens appear only in response bodies. The request logging middleware
    logs method, path and status code only.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ghostcard.config import Settings
from ghostcard.database import get_db
from ghostcard.dependencies import get_settings
from ghostcard.models.user import UserRole
from ghostcard.rate_limit import rate_limit
from ghostcard.schemas.auth import (
    AuthResponse,
    LoginRequest,
    RefreshTokenRequest,
    RegisterRequest,
    TokenResponse,
)
from ghostcard.schemas.user import UserResponse
from ghostcard.services import auth_service

router = APIRouter(dependencies=[Depends(rate_limit("auth"))])


@router.post(
    "/register/{role}",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new account",
)
async def register(
    role: UserRole,
    request: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Register a new cardholder or merchant.

    Returns access and refresh tokens so the caller is immediately logged in.

    - **role**: `user` or `merchant` (`admin` is refused unless enabled)
    - **email**: Must be a valid email format and not already registered
    - **password**: Minimum 8 characters
    - **name**: Required, 1-100 characters
    """
    user, token, refresh_token = await auth_service.register(
        db=db,
        settings=settings,
        role=role,
        name=request.name,
        email=request.email,
        password=request.password,
    )

    return AuthResponse(
        message="User registered successfully",
        user=UserResponse.model_validate(user),
        token=token,
        refresh_token=refresh_token,
    )


@router.post(
    "/login",
    response_model=AuthResponse,
    summary="Authenticate and get tokens",
)
async def login(
    request: LoginRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Authenticate with email and password.

    The access token must be included in the Authorization header for all
    subsequent requests:

        Authorization: Bearer <token>

    It expires after ACCESS_TOKEN_EXPIRE_MINUTES (default: 60); use the
    refresh token with POST /auth/refresh-token to get a new one.
    """
    user, token, refresh_token = await auth_service.login(
        db=db,
        settings=settings,
        email=request.email,
        password=request.password,
    )

    return AuthResponse(
        message="Login successful",
        user=UserResponse.model_validate(user),
        token=token,
        refresh_token=refresh_token,
    )


@router.post(
    "/refresh-token",
    response_model=TokenResponse,
    summary="Get a new access token",
)
async def refresh_token(
    request: RefreshTokenRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    token = await auth_service.refresh_access_token(
        db=db,
        settings=settings,
        refresh_token=request.refresh_token,
    )
    return TokenResponse(message="Token refreshed successfully", token=token)
