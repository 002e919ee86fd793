"""
Unit tests for security helpers and the card expiry rule.
"""

from datetime import datetime, timezone

import pytest
from jose import JWTError

from conftest import make_settings
from ghostcard.models.card import Card
from ghostcard.security import (
    ACCESS_TOKEN_TYPE,
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_token,
    decrypt_value,
    encrypt_value,
    fingerprint_card_number,
    hash_password,
    secrets_match,
    verify_password,
)


class TestTokens:

    def test_token_types(self, settings):
        claims = {"sub": "abc", "role": "user"}
        assert decode_token(create_access_token(claims, settings), settings)["type"] == ACCESS_TOKEN_TYPE
        assert decode_token(create_refresh_token(claims, settings), settings)["type"] == REFRESH_TOKEN_TYPE

    def test_token_signed_with_other_key_rejected(self, settings):
        token = create_access_token({"sub": "abc"}, make_settings(SECRET_KEY="another-key"))
        with pytest.raises(JWTError):
            decode_token(token, settings)


class TestCardSecrets:

    def test_encryption_is_randomized_but_reversible(self, settings):
        first = encrypt_value("123456789012", settings)
        second = encrypt_value("123456789012", settings)
        assert first != second
        assert decrypt_value(first, settings) == decrypt_value(second, settings) == "123456789012"

    def test_fingerprint_is_deterministic_and_keyed(self, settings):
        assert fingerprint_card_number("123456789012", settings) == fingerprint_card_number(
            "123456789012", settings
        )
        assert fingerprint_card_number("123456789012", settings) != fingerprint_card_number(
            "123456789012", make_settings()
        )

    def test_secrets_match(self):
        assert secrets_match("123", "123")
        assert not secrets_match("123", "124")

    def test_password_hash(self):
        hashed = hash_password("SecurePass123!")
        assert hashed != "SecurePass123!"
        assert verify_password("SecurePass123!", hashed)
        assert not verify_password("wrong", hashed)


class TestCardExpiry:

    @pytest.mark.parametrize(
        ("month", "year", "expired"),
        [
            (6, 2026, True),    # current month
            (5, 2026, True),
            (7, 2026, False),
            (1, 2027, False),
            (12, 2025, True),
        ],
    )
    def test_valid_only_before_expiry_month(self, month, year, expired):
        card = Card(expiration_month=month, expiration_year=year)
        now = datetime(2026, 6, 15, tzinfo=timezone.utc)
        assert card.is_expired(now) is expired
        assert card.expiry_date == f"{month:02d}/{year}"
