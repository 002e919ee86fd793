#!/usr/bin/env python3
"""
Demo seed script — populates a running server with sample data for demos.

!! NOT FOR PRODUCTION !!
This script creates users with known passwords, issues cards and charges
some of them. It is intended ONLY for local demos and frontend development.
Start the server with RATE_LIMIT_ENABLED=false, or the auth limiter will
stop the seed partway through.

Usage:
    # With the API server running on localhost:8000:
    python demo/seed.py

    # Custom server URL:
    python demo/seed.py --base-url http://localhost:9000

    # Also create an admin (needs DATABASE_URL pointing at the server's DB):
    python demo/seed.py --admin

Login credentials after seeding:
    ┌──────────────────────────────┬───────────────────┬──────────┐
    │ Email                        │ Password          │ Role     │
    ├──────────────────────────────┼───────────────────┼──────────┤
    │ admin@ghostcard.dev          │ AdminDemo123!     │ ADMIN    │
    │ alice.chen@example.com       │ AliceDemo123!     │ USER     │
    │ bob.martinez@example.com     │ BobDemo123!       │ USER     │
    │ carol.nguyen@example.com     │ CarolDemo123!     │ USER     │
    │ bookshop@example.com         │ ShopDemo123!      │ MERCHANT │
    │ coffee@example.com           │ CoffeeDemo123!    │ MERCHANT │
    └──────────────────────────────┴───────────────────┴──────────┘
"""

import argparse
import asyncio
import random
import sys

import httpx

ADMIN = {"name": "Admin", "email": "admin@ghostcard.dev", "password": "AdminDemo123!"}

USERS = [
    {"name": "Alice Chen", "email": "alice.chen@example.com", "password": "AliceDemo123!", "cards": 4},
    {"name": "Bob Martinez", "email": "bob.martinez@example.com", "password": "BobDemo123!", "cards": 3},
    {"name": "Carol Nguyen", "email": "carol.nguyen@example.com", "password": "CarolDemo123!", "cards": 2},
]

MERCHANTS = [
    {"name": "Corner Bookshop", "email": "bookshop@example.com", "password": "ShopDemo123!"},
    {"name": "Bean There Coffee", "email": "coffee@example.com", "password": "CoffeeDemo123!"},
]

DESCRIPTIONS = [
    "Paperback novels",
    "Flat white and croissant",
    "Gift card",
    "Monthly subscription",
    "Bag of espresso beans",
]


def log(msg: str) -> None:
    print(f"  {msg}")


def cents_to_dollars(cents: int) -> str:
    return f"${cents / 100:,.2f}"


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def register(client: httpx.AsyncClient, role: str, account: dict) -> str:
    resp = await client.post(
        f"/auth/register/{role}",
        json={k: account[k] for k in ("name", "email", "password")},
    )
    if resp.status_code == 400 and resp.json().get("error_type") == "duplicate_email":
        resp = await client.post(
            "/auth/login",
            json={"email": account["email"], "password": account["password"]},
        )
    resp.raise_for_status()
    return resp.json()["token"]


async def issue_card(client: httpx.AsyncClient, token: str) -> dict | None:
    resp = await client.post("/cards", headers=auth_header(token))
    if resp.status_code == 400:
        return None
    resp.raise_for_status()
    return resp.json()["card"]


async def charge(client: httpx.AsyncClient, token: str, card: dict, amount_cents: int) -> dict:
    resp = await client.post(
        "/charges",
        json={
            "card_number": card["card_number"],
            "cvv": card["cvv"],
            "expiry_date": card["expiry_date"],
            "amount_cents": amount_cents,
            "description": random.choice(DESCRIPTIONS),
            "location": "Demo City",
        },
        headers={**auth_header(token), "User-Agent": "ghostcard-demo-seed"},
    )
    resp.raise_for_status()
    return resp.json()["transaction"]


async def seed(base_url: str, with_admin: bool) -> None:
    print("\n========================================")
    print("  DEMO SEED — NOT FOR PRODUCTION")
    print("========================================\n")

    async with httpx.AsyncClient(base_url=base_url, timeout=30.0) as client:
        try:
            health = await client.get("/health")
            health.raise_for_status()
        except (httpx.ConnectError, httpx.HTTPStatusError):
            print(f"  ERROR: Cannot connect to {base_url}")
            print("  Start the server first: uvicorn ghostcard.main:create_app --factory --reload\n")
            sys.exit(1)

        if with_admin:
            # Imported here so the seed works without DB access otherwise
            from promote_admin import promote

            print("Creating admin user...")
            await register(client, "user", ADMIN)
            await promote(ADMIN["email"])
            log(f"Admin: {ADMIN['email']} / {ADMIN['password']}")

        print("\nCreating merchants...")
        merchant_tokens = []
        for merchant in MERCHANTS:
            merchant_tokens.append(await register(client, "merchant", merchant))
            log(f"{merchant['name']}: {merchant['email']} / {merchant['password']}")

        for user in USERS:
            print(f"\nCreating {user['name']}...")
            token = await register(client, "user", user)
            log(f"Login: {user['email']} / {user['password']}")

            cards = []
            for _ in range(user["cards"]):
                card = await issue_card(client, token)
                if card is None:
                    log("Card limit reached")
                    break
                cards.append(card)
            log(f"{len(cards)} cards issued")

            # Charge all but one card, leaving something to play with
            for card in cards[:-1]:
                receipt = await charge(
                    client,
                    random.choice(merchant_tokens),
                    card,
                    random.randint(5_00, 250_00),
                )
                log(
                    f"  {receipt['merchant_name']} charged "
                    f"{cents_to_dollars(receipt['amount_cents'])} ({receipt['id']})"
                )

    print("\nDone.\n")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed a running GhostCard API with demo data")
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--admin", action="store_true", help="Also create and promote an admin")
    args = parser.parse_args()
    asyncio.run(seed(args.base_url, args.admin))
