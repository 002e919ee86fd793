"""
Security utilities: password hashing, JWT tokens, and card-data protection.

This module centralizes all cryptographic operations so they're easy to
audit and update. Every helper that needs a key takes the Settings object
explicitly; nothing here reads configuration at import time.

1. PASSWORD HASHING (Argon2)
   - Passwords are never stored in plaintext
   - passlib's CryptContext provides safe, high-level Argon2id operations

2. JWT TOKENS
   - Access tokens are short-lived (ACCESS_TOKEN_EXPIRE_MINUTES) and carry
     {sub, email, role, type="access"}
   - Refresh tokens live REFRESH_TOKEN_EXPIRE_DAYS and carry type="refresh";
     they can only be exchanged for a new access token
   - Signed with SECRET_KEY using HS256

3. CARD DATA (Fernet + HMAC)
   - Card numbers and CVVs are Fernet-encrypted at rest
   - Card numbers are also stored as a keyed HMAC-SHA256 fingerprint, which
     is deterministic and therefore usable for the unique index and for the
     merchant-side lookup by card number
"""

import hashlib
import hmac
from datetime import datetime, timedelta, timezone

from cryptography.fernet import Fernet
from jose import jwt
from passlib.context import CryptContext

from ghostcard.config import Settings


ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


# ---------------------------------------------------------------------------
# 1. Password Hashing (Argon2)
# ---------------------------------------------------------------------------

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(plain_password: str) -> str:
    """Hash a plaintext password using Argon2id."""
    return pwd_context.hash(plain_password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plaintext password against a stored Argon2 hash.

    This is a constant-time comparison to prevent timing attacks.
    """
    return pwd_context.verify(plain_password, hashed_password)


# ---------------------------------------------------------------------------
# 2. JWT Tokens
# ---------------------------------------------------------------------------


def _encode_token(data: dict, settings: Settings, token_type: str, expires_delta: timedelta) -> str:
    to_encode = data.copy()
    to_encode.update({
        "type": token_type,
        "exp": datetime.now(timezone.utc) + expires_delta,
    })
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_access_token(
    data: dict,
    settings: Settings,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a signed JWT access token.

    Args:
        data: Claims to encode — {"sub", "email", "role"}.
        settings: Application settings (secret, algorithm, lifetime).
        expires_delta: Optional custom expiration time. Defaults to
                       ACCESS_TOKEN_EXPIRE_MINUTES.

    Returns:
        An encoded JWT string.
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return _encode_token(data, settings, ACCESS_TOKEN_TYPE, expires_delta)


def create_refresh_token(
    data: dict,
    settings: Settings,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed JWT refresh token (REFRESH_TOKEN_EXPIRE_DAYS by default)."""
    if expires_delta is None:
        expires_delta = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    return _encode_token(data, settings, REFRESH_TOKEN_TYPE, expires_delta)


def decode_token(token: str, settings: Settings) -> dict:
    """
    Decode and verify a JWT.

    Raises:
        JWTError: If the token is expired, tampered with, or invalid.

    Returns:
        The decoded payload dictionary (contains "sub", "type", "exp", etc.).
    """
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


# ---------------------------------------------------------------------------
# 3. Card data
# ---------------------------------------------------------------------------


def _fernet(settings: Settings) -> Fernet:
    # Fernet keys are URL-safe base64-encoded 32-byte keys.
    return Fernet(settings.CARD_ENCRYPTION_KEY.encode())


def encrypt_value(plaintext: str, settings: Settings) -> bytes:
    """
    Encrypt a string value using Fernet (AES-128-CBC + HMAC-SHA256).

    Used for encrypting card numbers and CVVs before storing in the database.
    """
    return _fernet(settings).encrypt(plaintext.encode())


def decrypt_value(ciphertext: bytes, settings: Settings) -> str:
    """
    Decrypt a Fernet-encrypted value back to plaintext.

    Raises:
        cryptography.fernet.InvalidToken: If the data is corrupted or
            the encryption key doesn't match.
    """
    return _fernet(settings).decrypt(ciphertext).decode()


def fingerprint_card_number(card_number: str, settings: Settings) -> str:
    """
    Deterministic keyed fingerprint of a card number.

    Fernet ciphertexts are randomized, so they cannot back a unique index or
    an equality lookup. The HMAC can, without exposing the number.
    """
    return hmac.new(
        settings.CARD_ENCRYPTION_KEY.encode(),
        card_number.encode(),
        hashlib.sha256,
    ).hexdigest()


def secrets_match(presented: str, expected: str) -> bool:
    """Constant-time string comparison for CVVs."""
    return hmac.compare_digest(presented.encode(), expected.encode())
