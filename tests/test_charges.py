"""
Tests for POST /charges — validation order and settlement.

These tests verify:
  - Happy path: transaction completed, card used, outstanding balance grows
  - The same flow end to end with tokens obtained from /auth/login
  - Each validation failure returns its own status and message
  - A rejected charge writes nothing: no transaction, balances unchanged
  - A single-use card cannot be charged twice
  - Only merchants can charge
  - A failure during settlement rolls back the earlier steps (500)
"""

import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select, update

from conftest import DEFAULT_PASSWORD, charge_body, register
from ghostcard.models.card import Card
from ghostcard.models.transaction import Transaction
from ghostcard.models.user import User
from ghostcard.services import charge_service


async def transaction_count(session_factory) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(Transaction))


async def load_card(session_factory, card_id: str) -> Card:
    async with session_factory() as session:
        return await session.get(Card, uuid.UUID(card_id))


async def load_user(session_factory, user_id: str) -> User:
    async with session_factory() as session:
        return await session.get(User, uuid.UUID(user_id))


async def assert_nothing_written(session_factory, card: dict, user_id: str):
    assert await transaction_count(session_factory) == 0
    stored = await load_card(session_factory, card["id"])
    assert stored.current_balance_cents == 0
    assert stored.is_used is False
    assert stored.is_active is True
    assert stored.transaction_summaries == []
    assert (await load_user(session_factory, user_id)).outstanding_balance_cents == 0


class TestChargeSuccess:

    async def test_charge_happy_path(
        self, user_client, merchant_client, issued_card, session_factory
    ):
        response = await merchant_client.post("/charges", json=charge_body(issued_card))
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Charge processed successfully"

        receipt = body["transaction"]
        assert receipt["id"].startswith("TXN")
        assert receipt["amount_cents"] == 2500
        assert receipt["status"] == "completed"
        assert receipt["card_number_last_four"] == issued_card["card_number"][-4:]
        assert receipt["card_holder_name"] == "Alice Cardholder"
        assert receipt["merchant_name"] == "Corner Shop"
        assert receipt["customer_name"] == "Alice Cardholder"
        assert "card_number" not in receipt

        customer = await load_user(session_factory, user_client.user["id"])
        assert customer.outstanding_balance_cents == 2500

        async with session_factory() as session:
            txn = (await session.execute(select(Transaction))).scalar_one()
        assert txn.transaction_id == receipt["id"]
        assert txn.status.value == "completed"
        assert txn.merchant_id == uuid.UUID(merchant_client.user["id"])
        assert txn.customer_id == uuid.UUID(user_client.user["id"])
        assert txn.location == "Berlin"
        assert txn.ip_address == "127.0.0.1"

    async def test_outstanding_balance_accumulates(self, user_client, merchant_client, session_factory):
        first = (await user_client.post("/cards")).json()["card"]
        second = (await user_client.post("/cards")).json()["card"]

        await merchant_client.post("/charges", json=charge_body(first, amount_cents=1000))
        await merchant_client.post("/charges", json=charge_body(second, amount_cents=4550))

        customer = await load_user(session_factory, user_client.user["id"])
        assert customer.outstanding_balance_cents == 5550

    async def test_charge_at_exact_limit(self, merchant_client, issued_card):
        response = await merchant_client.post(
            "/charges",
            json=charge_body(issued_card, amount_cents=issued_card["max_limit_cents"]),
        )
        assert response.status_code == 200


class TestChargeFlowWithLogin:
    """Cardholder and merchant both sign in through /auth/login before charging."""

    async def login(self, client, email: str) -> dict:
        response = await client.post(
            "/auth/login", json={"email": email, "password": DEFAULT_PASSWORD}
        )
        assert response.status_code == 200, response.text
        return response.json()

    async def test_register_login_issue_and_charge(self, client):
        await register(client, "user", "dana@example.com", "Dana Holder")
        user_login = await self.login(client, "dana@example.com")
        assert user_login["user"]["outstanding_balance_cents"] == 0
        user_headers = {"Authorization": f"Bearer {user_login['token']}"}

        response = await client.post("/cards", headers=user_headers)
        assert response.status_code == 201, response.text
        card = response.json()["card"]

        await register(client, "merchant", "market@example.com", "Night Market")
        merchant_login = await self.login(client, "market@example.com")
        merchant_headers = {"Authorization": f"Bearer {merchant_login['token']}"}

        response = await client.post(
            "/charges",
            json=charge_body(card, amount_cents=1999),
            headers=merchant_headers,
        )
        assert response.status_code == 200, response.text
        receipt = response.json()["transaction"]
        assert receipt["status"] == "completed"
        assert receipt["amount_cents"] == 1999
        assert receipt["merchant_name"] == "Night Market"
        assert receipt["customer_name"] == "Dana Holder"

        user_login = await self.login(client, "dana@example.com")
        assert user_login["user"]["outstanding_balance_cents"] == 1999

        response = await client.get(f"/transactions/{receipt['id']}", headers=user_headers)
        assert response.status_code == 200
        assert response.json()["transaction"]["status"] == "completed"


class TestChargeValidation:

    @pytest.mark.parametrize("field", ["card_number", "cvv", "expiry_date", "amount_cents", "description"])
    async def test_missing_field(
        self, user_client, merchant_client, issued_card, session_factory, field
    ):
        body = charge_body(issued_card)
        del body[field]

        response = await merchant_client.post("/charges", json=body)
        assert response.status_code == 400
        data = response.json()
        assert data["message"] == "Missing required fields"
        assert data["details"]["missing"] == [field]
        assert "description" in data["details"]["required"]
        await assert_nothing_written(session_factory, issued_card, user_client.user["id"])

    @pytest.mark.parametrize("expiry", ["13/2030", "1/2030", "01-2030", "01/30", "00/2030"])
    async def test_bad_expiry_format(self, merchant_client, issued_card, expiry):
        response = await merchant_client.post(
            "/charges", json=charge_body(issued_card, expiry_date=expiry)
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid expiry date format"

    async def test_unknown_card_number(self, merchant_client, issued_card):
        wrong = "9" * 12 if issued_card["card_number"] != "9" * 12 else "8" * 12
        response = await merchant_client.post(
            "/charges", json=charge_body(issued_card, card_number=wrong)
        )
        assert response.status_code == 404
        assert response.json()["message"] == "Card not found or invalid"

    async def test_wrong_cvv(self, user_client, merchant_client, issued_card, session_factory):
        wrong_cvv = "999" if issued_card["cvv"] != "999" else "998"
        response = await merchant_client.post(
            "/charges", json=charge_body(issued_card, cvv=wrong_cvv)
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid CVV"
        await assert_nothing_written(session_factory, issued_card, user_client.user["id"])

    async def test_wrong_expiry(self, user_client, merchant_client, issued_card, session_factory):
        month, year = issued_card["expiry_date"].split("/")
        response = await merchant_client.post(
            "/charges",
            json=charge_body(issued_card, expiry_date=f"{month}/{int(year) + 1}"),
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid expiry date"
        await assert_nothing_written(session_factory, issued_card, user_client.user["id"])

    async def test_expired_card(self, user_client, merchant_client, issued_card, session_factory):
        now = datetime.now(timezone.utc)
        async with session_factory() as session:
            await session.execute(
                update(Card)
                .where(Card.id == uuid.UUID(issued_card["id"]))
                .values(expiration_month=now.month, expiration_year=now.year)
            )
            await session.commit()

        response = await merchant_client.post(
            "/charges",
            json=charge_body(issued_card, expiry_date=f"{now.month:02d}/{now.year}"),
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Card has expired"
        await assert_nothing_written(session_factory, issued_card, user_client.user["id"])

    async def test_over_limit(self, user_client, merchant_client, issued_card, session_factory):
        response = await merchant_client.post(
            "/charges",
            json=charge_body(issued_card, amount_cents=issued_card["max_limit_cents"] + 1),
        )
        assert response.status_code == 400
        data = response.json()
        assert data["message"] == "Charge amount exceeds card limit"
        assert data["details"]["max_limit_cents"] == issued_card["max_limit_cents"]
        await assert_nothing_written(session_factory, issued_card, user_client.user["id"])

    async def test_non_positive_amount(self, merchant_client, issued_card):
        response = await merchant_client.post(
            "/charges", json=charge_body(issued_card, amount_cents=0)
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "validation_error"

    async def test_cvv_checked_before_expiry(self, merchant_client, issued_card):
        month, year = issued_card["expiry_date"].split("/")
        wrong_cvv = "999" if issued_card["cvv"] != "999" else "998"
        response = await merchant_client.post(
            "/charges",
            json=charge_body(issued_card, cvv=wrong_cvv, expiry_date=f"{month}/{int(year) + 1}"),
        )
        assert response.json()["message"] == "Invalid CVV"


class TestSingleUse:

    async def test_second_charge_fails(self, user_client, merchant_client, issued_card, session_factory):
        first = await merchant_client.post("/charges", json=charge_body(issued_card))
        assert first.status_code == 200

        second = await merchant_client.post("/charges", json=charge_body(issued_card))
        assert second.status_code == 404
        assert second.json()["message"] == "Card not found or invalid"

        assert await transaction_count(session_factory) == 1
        customer = await load_user(session_factory, user_client.user["id"])
        assert customer.outstanding_balance_cents == 2500


class TestChargeAuthorization:

    async def test_user_cannot_charge(self, user_client, issued_card):
        response = await user_client.post("/charges", json=charge_body(issued_card))
        assert response.status_code == 403

    async def test_admin_cannot_charge(self, admin_client, issued_card):
        response = await admin_client.post("/charges", json=charge_body(issued_card))
        assert response.status_code == 403

    async def test_anonymous_cannot_charge(self, client, issued_card):
        response = await client.post("/charges", json=charge_body(issued_card))
        assert response.status_code == 401


class TestSettlementFailure:
    """A step failing after validation undoes the steps before it."""

    async def test_card_update_failure_removes_transaction(
        self, user_client, merchant_client, issued_card, session_factory, monkeypatch
    ):
        async def broken_settle_card(ctx):
            raise RuntimeError("disk full")

        monkeypatch.setattr(charge_service, "_settle_card", broken_settle_card)

        response = await merchant_client.post("/charges", json=charge_body(issued_card))
        assert response.status_code == 500
        data = response.json()
        assert data["message"] == "Error updating card"
        assert data["details"]["step"] == "settle_card"
        assert data["details"]["state"] == "compensated"

        await assert_nothing_written(session_factory, issued_card, user_client.user["id"])

    async def test_balance_update_failure_restores_card(
        self, user_client, merchant_client, issued_card, session_factory, monkeypatch
    ):
        async def broken_charge_customer(ctx):
            raise RuntimeError("constraint violated")

        monkeypatch.setattr(charge_service, "_charge_customer", broken_charge_customer)

        response = await merchant_client.post("/charges", json=charge_body(issued_card))
        assert response.status_code == 500
        assert response.json()["message"] == "Error updating user balance"

        await assert_nothing_written(session_factory, issued_card, user_client.user["id"])

        # The card is chargeable again once the fault is gone
        monkeypatch.undo()
        retry = await merchant_client.post("/charges", json=charge_body(issued_card))
        assert retry.status_code == 200

    async def test_failed_compensation_is_reported(
        self, merchant_client, issued_card, monkeypatch
    ):
        async def broken_charge_customer(ctx):
            raise RuntimeError("constraint violated")

        async def broken_restore_card(ctx, previous):
            raise RuntimeError("still broken")

        monkeypatch.setattr(charge_service, "_charge_customer", broken_charge_customer)
        monkeypatch.setattr(charge_service, "_restore_card", broken_restore_card)

        response = await merchant_client.post("/charges", json=charge_body(issued_card))
        assert response.status_code == 500
        assert response.json()["details"]["state"] == "compensation_failed"
