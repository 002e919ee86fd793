"""
Charge service — card validation and charge settlement.

THIS IS THE MOST CRITICAL FILE IN THE PROJECT. A merchant presents a card
number, CVV, expiry date and amount; this module decides whether the charge
is allowed and, if so, settles it.

Validation (first failure wins, nothing is written on failure):
  1. All required fields present                  -> 400 Missing required fields
  2. Expiry matches MM/YYYY                       -> 400 Invalid expiry date format
  3. Number belongs to an active, unused card     -> 404 Card not found or invalid
  4. CVV matches                                  -> 400 Invalid CVV
  5. Expiry matches the card's                    -> 400 Invalid expiry date
  6. Card not expired                             -> 400 Card has expired
  7. Amount within the card's max limit           -> 400 Charge amount exceeds card limit
  8. Merchant and card owner exist                -> 404 User not found

Settlement runs as a saga (services/saga.py) with one commit per step:
  1. record_transaction  — insert the completed Transaction
                           (undo: delete it)
  2. settle_card         — append the summary, set the balance to the amount,
                           mark the card used and inactive
                           (undo: drop the summary, restore balance and flags)
  3. charge_customer     — add the amount to the owner's outstanding balance

If a step fails, the completed steps are undone in reverse order and the
caller gets a ChargeSettlementError (500) naming the step.

Locking:
  The card is loaded with SELECT ... FOR UPDATE. This is a no-op on SQLite
  but serializes concurrent charges of the same card on PostgreSQL until the
  first step commits.
"""

import re
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ghostcard.config import Settings
from ghostcard.exceptions import (
    CardExpiredError,
    CardVerificationError,
    ChargeLimitExceededError,
    ChargeSettlementError,
    InvalidExpiryFormatError,
    MissingFieldsError,
    NotFoundError,
)
from ghostcard.models.card import Card
from ghostcard.models.transaction import Transaction, TransactionStatus
from ghostcard.models.user import User
from ghostcard.schemas.transaction import ChargeReceipt, ChargeRequest
from ghostcard.security import decrypt_value, fingerprint_card_number, secrets_match
from ghostcard.services.saga import Saga, SagaFailedError

logger = structlog.get_logger(__name__)

REQUIRED_FIELDS = ["card_number", "cvv", "expiry_date", "amount_cents", "description"]

EXPIRY_DATE_PATTERN = re.compile(r"^(0[1-9]|1[0-2])/\d{4}$")

# Message returned to the merchant, by the saga step that failed
SETTLEMENT_ERROR_MESSAGES = {
    "record_transaction": "Error processing transaction",
    "settle_card": "Error updating card",
    "charge_customer": "Error updating user balance",
}


def _missing_fields(charge: ChargeRequest) -> list[str]:
    return [
        field
        for field in REQUIRED_FIELDS
        if getattr(charge, field) is None or getattr(charge, field) == ""
    ]


def _rejected(reason: str, merchant: User, **context) -> None:
    logger.info("charge_rejected", reason=reason, merchant_id=str(merchant.id), **context)


async def _commit(db: AsyncSession) -> None:
    """Commit, leaving the session usable for compensation if it fails."""
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise


# ---------------------------------------------------------------------------
# Saga steps
#
# Each forward action takes the shared context; each compensating action
# takes the context and the forward action's result. Rows are re-read by id
# because a failed commit expires everything in the session.
# ---------------------------------------------------------------------------

async def _record_transaction(ctx: dict[str, Any]) -> dict[str, Any]:
    db: AsyncSession = ctx["db"]
    card: Card = ctx["card"]
    merchant: User = ctx["merchant"]
    customer: User = ctx["customer"]

    txn = Transaction(
        amount_cents=ctx["amount_cents"],
        card_id=card.id,
        card_number_last_four=card.card_number_last_four,
        card_holder_name=card.card_holder_name,
        merchant_id=merchant.id,
        merchant_name=merchant.name,
        customer_id=customer.id,
        customer_name=customer.name,
        status=TransactionStatus.COMPLETED,
        description=ctx["description"],
        ip_address=ctx["ip_address"],
        location=ctx["location"],
        device_info=ctx["device_info"],
        created_at=ctx["timestamp"],
    )
    db.add(txn)
    await db.flush()
    recorded = {"id": txn.id, "transaction_id": txn.transaction_id}
    await _commit(db)
    return recorded


async def _delete_transaction(ctx: dict[str, Any], recorded: dict[str, Any]) -> None:
    db: AsyncSession = ctx["db"]
    await db.execute(delete(Transaction).where(Transaction.id == recorded["id"]))
    await _commit(db)


async def _settle_card(ctx: dict[str, Any]) -> dict[str, Any]:
    db: AsyncSession = ctx["db"]
    card = await db.get(Card, ctx["card_id"], populate_existing=True)
    reference = ctx["record_transaction_result"]["transaction_id"]

    previous = {
        "current_balance_cents": card.current_balance_cents,
        "is_used": card.is_used,
        "is_active": card.is_active,
        "transaction_id": reference,
    }

    summary = {
        "transaction_id": reference,
        "amount_cents": ctx["amount_cents"],
        "merchant_id": str(ctx["merchant_id"]),
        "timestamp": ctx["timestamp"].isoformat(),
        "status": TransactionStatus.COMPLETED.value,
        "description": ctx["description"],
    }
    # Reassign rather than append so the JSON column is flagged dirty
    card.transaction_summaries = [*card.transaction_summaries, summary]
    card.current_balance_cents = ctx["amount_cents"]
    card.is_used = True
    card.is_active = False

    await _commit(db)
    return previous


async def _restore_card(ctx: dict[str, Any], previous: dict[str, Any]) -> None:
    db: AsyncSession = ctx["db"]
    card = await db.get(Card, ctx["card_id"], populate_existing=True)
    card.transaction_summaries = [
        summary
        for summary in card.transaction_summaries
        if summary["transaction_id"] != previous["transaction_id"]
    ]
    card.current_balance_cents = previous["current_balance_cents"]
    card.is_used = previous["is_used"]
    card.is_active = previous["is_active"]
    await _commit(db)


async def _charge_customer(ctx: dict[str, Any]) -> int:
    db: AsyncSession = ctx["db"]
    customer = await db.get(User, ctx["customer_id"], populate_existing=True)
    customer.outstanding_balance_cents += ctx["amount_cents"]
    await _commit(db)
    return customer.outstanding_balance_cents


def build_charge_saga(context: dict[str, Any]) -> Saga:
    """The three settlement steps, in order."""
    return (
        Saga("charge_settlement", context=context)
        .add_step("record_transaction", _record_transaction, _delete_transaction)
        .add_step("settle_card", _settle_card, _restore_card)
        .add_step("charge_customer", _charge_customer)
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

async def process_charge(
    db: AsyncSession,
    settings: Settings,
    merchant: User,
    charge: ChargeRequest,
    ip_address: str | None = None,
    device_info: str | None = None,
    now: datetime | None = None,
) -> ChargeReceipt:
    """
    Validate and settle a charge made by merchant.

    Args:
        db: Database session.
        settings: Application settings (card key material).
        merchant: The authenticated merchant.
        charge: The presented card details and amount.
        ip_address: Caller address, stored on the transaction.
        device_info: Caller user agent, stored on the transaction.
        now: Clock override for the expiry check and the charge timestamp.

    Returns:
        The receipt for the completed charge.

    Raises:
        MissingFieldsError, InvalidExpiryFormatError, CardVerificationError,
        CardExpiredError, ChargeLimitExceededError (400),
        NotFoundError (404), ChargeSettlementError (500).
    """
    now = now or datetime.now(timezone.utc)

    missing = _missing_fields(charge)
    if missing:
        _rejected("missing_fields", merchant, missing=missing)
        raise MissingFieldsError(REQUIRED_FIELDS, missing)

    if not EXPIRY_DATE_PATTERN.fullmatch(charge.expiry_date):
        _rejected("invalid_expiry_format", merchant)
        raise InvalidExpiryFormatError()

    result = await db.execute(
        select(Card)
        .where(
            Card.card_number_fingerprint == fingerprint_card_number(charge.card_number, settings),
            Card.is_active.is_(True),
            Card.is_used.is_(False),
        )
        .with_for_update()
    )
    card = result.scalar_one_or_none()

    if card is None:
        _rejected("card_not_found", merchant)
        raise NotFoundError(
            "Card not found or invalid",
            details="The card may be expired, used, or inactive",
        )

    if not secrets_match(charge.cvv, decrypt_value(card.cvv_encrypted, settings)):
        _rejected("invalid_cvv", merchant, card_id=str(card.id))
        raise CardVerificationError("Invalid CVV")

    if charge.expiry_date != card.expiry_date:
        _rejected("invalid_expiry_date", merchant, card_id=str(card.id))
        raise CardVerificationError("Invalid expiry date")

    if card.is_expired(now):
        _rejected("card_expired", merchant, card_id=str(card.id))
        raise CardExpiredError()

    if charge.amount_cents > card.max_limit_cents:
        _rejected(
            "limit_exceeded",
            merchant,
            card_id=str(card.id),
            amount_cents=charge.amount_cents,
        )
        raise ChargeLimitExceededError(charge.amount_cents, card.max_limit_cents)

    merchant_row = await db.get(User, merchant.id)
    customer = await db.get(User, card.user_id)
    if merchant_row is None or customer is None:
        _rejected("user_not_found", merchant, card_id=str(card.id))
        raise NotFoundError("User not found")

    context: dict[str, Any] = {
        "db": db,
        "card": card,
        "card_id": card.id,
        "merchant": merchant_row,
        "merchant_id": merchant_row.id,
        "customer": customer,
        "customer_id": customer.id,
        "amount_cents": charge.amount_cents,
        "description": charge.description,
        "location": charge.location,
        "ip_address": ip_address,
        "device_info": device_info,
        "timestamp": now,
    }
    # Plain values for the receipt; ORM attributes may be expired by a commit
    receipt_fields = {
        "card_number_last_four": card.card_number_last_four,
        "card_holder_name": card.card_holder_name,
        "merchant_name": merchant_row.name,
        "customer_name": customer.name,
    }

    saga = build_charge_saga(context)
    try:
        await saga.execute()
    except SagaFailedError as e:
        raise ChargeSettlementError(
            SETTLEMENT_ERROR_MESSAGES.get(e.failed_step, "Error processing charge"),
            failed_step=e.failed_step,
            saga_state=e.state.value,
            cause=str(e.cause),
        ) from e

    reference = context["record_transaction_result"]["transaction_id"]
    logger.info(
        "charge_processed",
        transaction_id=reference,
        card_id=str(context["card_id"]),
        merchant_id=str(context["merchant_id"]),
        amount_cents=charge.amount_cents,
        saga_id=saga.saga_id,
    )

    return ChargeReceipt(
        id=reference,
        amount_cents=charge.amount_cents,
        status=TransactionStatus.COMPLETED.value,
        timestamp=now,
        description=charge.description,
        **receipt_fields,
    )
