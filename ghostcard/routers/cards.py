"""
Cards router — virtual card issuance, retrieval and spending analytics.

Endpoints:
  POST /cards                     — Issue a new virtual card (user)
  GET  /cards/{card_id}           — Get a card (owner or admin)
  GET  /cards/analytics/overview  — Spending across the caller's cards (user)

The full card number and CVV are returned once at issuance. Afterwards the
owner still sees the number, and the CVV only until the card has been
charged; admins only ever see the last four digits.
"""

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ghostcard.config import Settings
from ghostcard.database import get_db
from ghostcard.dependencies import get_settings, require_roles
from ghostcard.models.user import User, UserRole
from ghostcard.rate_limit import rate_limit
from ghostcard.schemas.analytics import CardOverviewResponse
from ghostcard.schemas.card import CardDetailResponse, CardIssueResponse
from ghostcard.services import analytics_service, card_service

router = APIRouter()


@router.post(
    "",
    response_model=CardIssueResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Issue a virtual card",
)
async def issue_card(
    user: User = Depends(require_roles(UserRole.USER)),
    _: None = Depends(rate_limit("cards")),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Issue a new single-use virtual card to the caller.

    - At most 5 active, unused cards per user
    - Expires one year from now, in the current month
    - The card number and CVV are encrypted at rest; this response is the
      only place the CVV is shown outside the card's unused lifetime
    """
    card = await card_service.issue_card(db=db, settings=settings, user=user)
    return CardIssueResponse(message="Virtual card issued successfully", card=card)


@router.get(
    "/analytics/overview",
    response_model=CardOverviewResponse,
    summary="Spending across your cards",
)
async def card_overview(
    user: User = Depends(require_roles(UserRole.USER)),
    _: None = Depends(rate_limit("analytics")),
    db: AsyncSession = Depends(get_db),
):
    return await analytics_service.card_overview(db=db, user=user)


@router.get(
    "/{card_id}",
    response_model=CardDetailResponse,
    summary="Get card details",
)
async def get_card(
    card_id: uuid.UUID,
    user: User = Depends(require_roles(UserRole.USER, UserRole.ADMIN)),
    _: None = Depends(rate_limit("cards")),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Get a card with its transaction summaries.

    Users can only see their own cards; asking for anyone else's returns 404.
    """
    card = await card_service.get_card(
        db=db,
        settings=settings,
        card_id=card_id,
        viewer=user,
    )
    return CardDetailResponse(message="Card retrieved successfully", card=card)
