"""
Tests for card endpoints (issuance and retrieval).

These tests verify:
  - Issuance returns the full number and CVV once, with a one-year expiry
  - At most 5 active, unused cards per user; used cards don't count
  - Card numbers never collide; a run of collisions is bounded (503)
  - Card data is encrypted at rest in the database
  - Visibility: owner sees number (+ CVV until used), admin sees masked,
    other users get 404, merchants get 403
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import func, select

from conftest import charge_body
from ghostcard.models.card import Card
from ghostcard.security import decrypt_value, fingerprint_card_number
from ghostcard.services import card_service


class TestCardIssuance:
    """Tests for POST /cards."""

    async def test_issue_card_success(self, user_client):
        response = await user_client.post("/cards")
        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Virtual card issued successfully"

        card = body["card"]
        assert len(card["card_number"]) == 12
        assert card["card_number"].isdigit()
        assert len(card["cvv"]) == 3
        assert card["cvv"].isdigit()
        assert card["card_holder_name"] == "Alice Cardholder"
        assert card["card_type"] == "virtual"
        assert card["max_limit_cents"] == 1_000_000
        assert card["is_active"] is True

        now = datetime.now(timezone.utc)
        assert card["expiry_date"] == f"{now.month:02d}/{now.year + 1}"

    async def test_sixth_active_card_rejected(self, user_client):
        for _ in range(5):
            response = await user_client.post("/cards")
            assert response.status_code == 201

        response = await user_client.post("/cards")
        assert response.status_code == 400
        data = response.json()
        assert data["message"] == "Maximum active cards limit reached"
        assert data["error_type"] == "card_limit_reached"

    async def test_used_card_frees_a_slot(self, user_client, merchant_client):
        cards = []
        for _ in range(5):
            cards.append((await user_client.post("/cards")).json()["card"])

        charged = await merchant_client.post("/charges", json=charge_body(cards[0]))
        assert charged.status_code == 200

        response = await user_client.post("/cards")
        assert response.status_code == 201

    async def test_limit_is_per_user(self, user_client, second_user_client):
        for _ in range(5):
            await user_client.post("/cards")

        response = await second_user_client.post("/cards")
        assert response.status_code == 201

    async def test_merchant_cannot_issue(self, merchant_client):
        response = await merchant_client.post("/cards")
        assert response.status_code == 403

    async def test_admin_cannot_issue(self, admin_client):
        response = await admin_client.post("/cards")
        assert response.status_code == 403


class TestCardNumberAllocation:
    """Generated numbers are unique; collisions retry a bounded number of times."""

    async def test_collision_draws_again(self, user_client, monkeypatch):
        numbers = iter(["111111111111", "111111111111", "222222222222"])
        monkeypatch.setattr(card_service, "_generate_card_number", lambda: next(numbers))

        first = await user_client.post("/cards")
        second = await user_client.post("/cards")

        assert first.json()["card"]["card_number"] == "111111111111"
        assert second.status_code == 201
        assert second.json()["card"]["card_number"] == "222222222222"

    async def test_exhausted_attempts_returns_503(self, user_client, monkeypatch, settings):
        monkeypatch.setattr(card_service, "_generate_card_number", lambda: "333333333333")

        assert (await user_client.post("/cards")).status_code == 201

        response = await user_client.post("/cards")
        assert response.status_code == 503
        data = response.json()
        assert data["error_type"] == "card_number_unavailable"
        assert data["details"]["attempts"] == settings.CARD_NUMBER_MAX_ATTEMPTS

    async def test_many_cards_have_distinct_numbers(
        self, user_client, second_user_client, db_session
    ):
        for ac in (user_client, second_user_client):
            for _ in range(5):
                assert (await ac.post("/cards")).status_code == 201

        total = await db_session.scalar(select(func.count()).select_from(Card))
        distinct = await db_session.scalar(
            select(func.count(func.distinct(Card.card_number_fingerprint)))
        )
        assert total == distinct == 10


class TestCardEncryption:
    """Card data is encrypted at rest in the database."""

    async def test_card_number_and_cvv_encrypted_in_db(
        self, user_client, issued_card, db_session, settings
    ):
        result = await db_session.execute(
            select(Card).where(Card.id == uuid.UUID(issued_card["id"]))
        )
        card = result.scalar_one()

        assert isinstance(card.card_number_encrypted, bytes)
        assert issued_card["card_number"].encode() not in card.card_number_encrypted
        assert decrypt_value(card.card_number_encrypted, settings) == issued_card["card_number"]
        assert decrypt_value(card.cvv_encrypted, settings) == issued_card["cvv"]

        assert card.card_number_last_four == issued_card["card_number"][-4:]
        assert card.card_number_fingerprint == fingerprint_card_number(
            issued_card["card_number"], settings
        )
        assert issued_card["card_number"] not in card.card_number_fingerprint


class TestCardRetrieval:
    """Tests for GET /cards/{card_id}."""

    async def test_owner_sees_number_and_cvv(self, user_client, issued_card):
        response = await user_client.get(f"/cards/{issued_card['id']}")
        assert response.status_code == 200
        card = response.json()["card"]
        assert card["card_number"] == issued_card["card_number"]
        assert card["cvv"] == issued_card["cvv"]
        assert card["is_used"] is False
        assert card["current_balance_cents"] == 0
        assert card["transactions"] == []

    async def test_cvv_hidden_once_used(self, user_client, merchant_client, issued_card):
        charged = await merchant_client.post("/charges", json=charge_body(issued_card))
        assert charged.status_code == 200

        response = await user_client.get(f"/cards/{issued_card['id']}")
        card = response.json()["card"]
        assert card["cvv"] is None
        assert card["card_number"] == issued_card["card_number"]
        assert card["is_used"] is True
        assert card["is_active"] is False
        assert card["current_balance_cents"] == 2500
        assert len(card["transactions"]) == 1
        assert card["transactions"][0]["transaction_id"] == charged.json()["transaction"]["id"]

    async def test_admin_sees_masked_card(self, admin_client, issued_card):
        response = await admin_client.get(f"/cards/{issued_card['id']}")
        assert response.status_code == 200
        card = response.json()["card"]
        assert card["card_number"] is None
        assert card["cvv"] is None
        assert card["card_number_last_four"] == issued_card["card_number"][-4:]

    async def test_other_user_gets_404(self, second_user_client, issued_card):
        response = await second_user_client.get(f"/cards/{issued_card['id']}")
        assert response.status_code == 404
        assert response.json()["message"] == "Card not found"

    async def test_merchant_forbidden(self, merchant_client, issued_card):
        response = await merchant_client.get(f"/cards/{issued_card['id']}")
        assert response.status_code == 403
        assert response.json()["details"]["required_roles"] == ["admin", "user"]

    async def test_unknown_card_404(self, user_client):
        response = await user_client.get(f"/cards/{uuid.uuid4()}")
        assert response.status_code == 404
