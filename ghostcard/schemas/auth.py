"""
Pydantic schemas for authentication endpoints (register, login, refresh).

Pydantic validates incoming data automatically — if a required field is
missing or the wrong type, the request is rejected with a 400 before our
code even runs.
"""

from pydantic import BaseModel, EmailStr, Field

from ghostcard.schemas.user import UserResponse


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register/{role}."""
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr                                # Validates email format
    password: str = Field(min_length=8)            # Minimum 8 characters


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""
    email: EmailStr
    password: str


class RefreshTokenRequest(BaseModel):
    """Request body for POST /auth/refresh-token."""
    refresh_token: str


class AuthResponse(BaseModel):
    """Response body for register and login — user info + both tokens."""
    message: str
    user: UserResponse
    token: str
    refresh_token: str
    token_type: str = "bearer"


class TokenResponse(BaseModel):
    """Response body for a refreshed access token."""
    message: str
    token: str
    token_type: str = "bearer"
