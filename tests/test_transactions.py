"""
Tests for GET /transactions/{transaction_id} — role-scoped views.

These tests verify:
  - Admins see the full record, including the card reference
  - The charging merchant sees customer details but no card reference
  - The cardholder sees merchant details but no card reference
  - Anyone else gets 403; an unknown reference gets 404
"""

import pytest_asyncio

from conftest import charge_body


@pytest_asyncio.fixture
async def charged(user_client, merchant_client, issued_card) -> dict:
    """Receipt of one completed charge of user_client's card by merchant_client."""
    response = await merchant_client.post(
        "/charges",
        json=charge_body(issued_card, description="Groceries"),
        headers={"User-Agent": "pos-terminal/1.0"},
    )
    assert response.status_code == 200, response.text
    return response.json()["transaction"]


class TestTransactionViews:

    async def test_admin_sees_everything(self, admin_client, user_client, merchant_client, issued_card, charged):
        response = await admin_client.get(f"/transactions/{charged['id']}")
        assert response.status_code == 200
        txn = response.json()["transaction"]

        assert txn["id"] == charged["id"]
        assert txn["amount_cents"] == 2500
        assert txn["status"] == "completed"
        assert txn["description"] == "Groceries"
        assert txn["card_id"] == issued_card["id"]
        assert txn["card_number_last_four"] == issued_card["card_number"][-4:]
        assert txn["merchant"]["email"] == "shop@example.com"
        assert txn["customer"]["email"] == "alice@example.com"
        assert txn["device_info"] == "pos-terminal/1.0"
        assert txn["ip_address"] == "127.0.0.1"

    async def test_merchant_sees_customer_not_card(self, merchant_client, charged):
        response = await merchant_client.get(f"/transactions/{charged['id']}")
        assert response.status_code == 200
        txn = response.json()["transaction"]

        assert txn["customer"]["name"] == "Alice Cardholder"
        assert txn["merchant"] is None
        assert txn["card_id"] is None
        assert txn["card_number_last_four"] is None

    async def test_cardholder_sees_merchant_not_card(self, user_client, charged):
        response = await user_client.get(f"/transactions/{charged['id']}")
        assert response.status_code == 200
        txn = response.json()["transaction"]

        assert txn["merchant"]["name"] == "Corner Shop"
        assert txn["customer"] is None
        assert txn["card_id"] is None
        assert txn["card_number_last_four"] is None
        assert txn["device_info"] is None


class TestTransactionAccess:

    async def test_other_user_forbidden(self, second_user_client, charged):
        response = await second_user_client.get(f"/transactions/{charged['id']}")
        assert response.status_code == 403

    async def test_other_merchant_forbidden(self, second_merchant_client, charged):
        response = await second_merchant_client.get(f"/transactions/{charged['id']}")
        assert response.status_code == 403

    async def test_unknown_reference_404(self, user_client):
        response = await user_client.get("/transactions/TXN0000000000000000")
        assert response.status_code == 404
        assert response.json()["message"] == "Transaction not found"

    async def test_anonymous_401(self, client, charged):
        response = await client.get(f"/transactions/{charged['id']}")
        assert response.status_code == 401
