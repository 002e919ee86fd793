"""
Card service — virtual card issuance and retrieval with encryption at rest.

A user can hold at most MAX_ACTIVE_CARDS_PER_USER active, unused cards.
When a card is issued:
  1. A 12-digit card number is drawn at random until one is found that no
     existing card uses (bounded by CARD_NUMBER_MAX_ATTEMPTS)
  2. A 3-digit CVV is randomly generated
  3. Expiration is set CARD_VALIDITY_YEARS from now, in the current month
  4. The card number and CVV are encrypted with Fernet before storage,
     and the number is fingerprinted for lookups
  5. The maximum limit is fixed from CARD_MAX_LIMIT_CENTS, balance starts at 0

The plaintext number and CVV are returned to the caller exactly once, in
the issuance response.
"""

import random
import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ghostcard.config import Settings
from ghostcard.exceptions import (
    CardLimitReachedError,
    CardNumberUnavailableError,
    NotFoundError,
    PermissionDeniedError,
)
from ghostcard.models.card import Card
from ghostcard.models.user import User, UserRole
from ghostcard.schemas.card import CardDetail, CardTransactionSummary, IssuedCard
from ghostcard.security import decrypt_value, encrypt_value, fingerprint_card_number

logger = structlog.get_logger(__name__)

CARD_NUMBER_MIN = 100_000_000_000
CARD_NUMBER_MAX = 999_999_999_999


def _generate_card_number() -> str:
    """Random 12-digit card number (no leading zero)."""
    return str(random.randint(CARD_NUMBER_MIN, CARD_NUMBER_MAX))


def _generate_cvv() -> str:
    """Random 3-digit CVV (100–999)."""
    return str(random.randint(100, 999))


async def count_active_cards(db: AsyncSession, user_id: uuid.UUID) -> int:
    """Cards that are still chargeable: active and not yet used."""
    result = await db.execute(
        select(func.count())
        .select_from(Card)
        .where(
            Card.user_id == user_id,
            Card.is_active.is_(True),
            Card.is_used.is_(False),
        )
    )
    return result.scalar_one()


async def _allocate_card_number(db: AsyncSession, settings: Settings) -> tuple[str, str]:
    """
    Draw card numbers until one is unused.

    Returns:
        Tuple of (card number, fingerprint).

    Raises:
        CardNumberUnavailableError: If every attempt collided.
    """
    for attempt in range(1, settings.CARD_NUMBER_MAX_ATTEMPTS + 1):
        card_number = _generate_card_number()
        fingerprint = fingerprint_card_number(card_number, settings)
        existing = await db.execute(
            select(Card.id).where(Card.card_number_fingerprint == fingerprint)
        )
        if existing.scalar_one_or_none() is None:
            return card_number, fingerprint
        logger.warning("card_number_collision", attempt=attempt)

    raise CardNumberUnavailableError(settings.CARD_NUMBER_MAX_ATTEMPTS)


async def issue_card(
    db: AsyncSession,
    settings: Settings,
    user: User,
    now: datetime | None = None,
) -> IssuedCard:
    """
    Issue a new virtual card for user.

    Returns:
        The issued card, including the plaintext number and CVV.

    Raises:
        CardLimitReachedError: If the user already has the maximum number of
            active, unused cards.
        CardNumberUnavailableError: If no unused card number could be drawn.
    """
    if await count_active_cards(db, user.id) >= settings.MAX_ACTIVE_CARDS_PER_USER:
        raise CardLimitReachedError(settings.MAX_ACTIVE_CARDS_PER_USER)

    card_number, fingerprint = await _allocate_card_number(db, settings)
    cvv = _generate_cvv()
    now = now or datetime.now(timezone.utc)

    card = Card(
        user_id=user.id,
        card_number_encrypted=encrypt_value(card_number, settings),
        card_number_fingerprint=fingerprint,
        card_number_last_four=card_number[-4:],
        card_holder_name=user.name,
        card_type="virtual",
        expiration_month=now.month,
        expiration_year=now.year + settings.CARD_VALIDITY_YEARS,
        cvv_encrypted=encrypt_value(cvv, settings),
        max_limit_cents=settings.CARD_MAX_LIMIT_CENTS,
        current_balance_cents=0,
        transaction_summaries=[],
    )
    db.add(card)
    await db.flush()

    logger.info(
        "card_issued",
        card_id=str(card.id),
        user_id=str(user.id),
        last_four=card.card_number_last_four,
    )

    return IssuedCard(
        id=card.id,
        card_number=card_number,
        card_holder_name=card.card_holder_name,
        card_type=card.card_type,
        expiry_date=card.expiry_date,
        cvv=cvv,
        max_limit_cents=card.max_limit_cents,
        is_active=card.is_active,
    )


def _card_detail(card: Card, settings: Settings, reveal_number: bool, reveal_cvv: bool) -> CardDetail:
    return CardDetail(
        id=card.id,
        card_number=decrypt_value(card.card_number_encrypted, settings) if reveal_number else None,
        card_number_last_four=card.card_number_last_four,
        card_holder_name=card.card_holder_name,
        card_type=card.card_type,
        expiry_date=card.expiry_date,
        cvv=decrypt_value(card.cvv_encrypted, settings) if reveal_cvv else None,
        max_limit_cents=card.max_limit_cents,
        current_balance_cents=card.current_balance_cents,
        is_active=card.is_active,
        is_used=card.is_used,
        transactions=[
            CardTransactionSummary.model_validate(summary)
            for summary in card.transaction_summaries
        ],
        created_at=card.created_at,
    )


async def get_card(
    db: AsyncSession,
    settings: Settings,
    card_id: uuid.UUID,
    viewer: User,
) -> CardDetail:
    """
    Get a card as seen by viewer.

    - The owner sees the full number, and the CVV while the card is unused.
    - Admins see any card, masked, never with the CVV.
    - A user asking for someone else's card gets the same 404 as for a
      card that doesn't exist.

    Raises:
        NotFoundError: If the card doesn't exist or isn't visible to viewer.
        PermissionDeniedError: If viewer is a merchant.
    """
    query = select(Card).where(Card.id == card_id)

    match viewer.role:
        case UserRole.ADMIN:
            reveal_number = False
        case UserRole.USER:
            query = query.where(Card.user_id == viewer.id)
            reveal_number = True
        case UserRole.MERCHANT:
            raise PermissionDeniedError("Merchants cannot view cards")

    result = await db.execute(query)
    card = result.scalar_one_or_none()

    if card is None:
        raise NotFoundError("Card not found")

    return _card_detail(
        card,
        settings,
        reveal_number=reveal_number,
        reveal_cvv=reveal_number and not card.is_used,
    )
