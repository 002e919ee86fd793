"""
Charges router — merchants charging virtual cards.

Endpoints:
  POST /charges — Charge a card (merchant)

The request body carries the card details exactly as the customer gave
them. Validation and settlement live in services/charge_service.py; this
router only adds the caller's address and user agent as metadata.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ghostcard.config import Settings
from ghostcard.database import get_db
from ghostcard.dependencies import get_settings, require_roles
from ghostcard.models.user import User, UserRole
from ghostcard.rate_limit import rate_limit
from ghostcard.schemas.transaction import ChargeRequest, ChargeResponse
from ghostcard.services import charge_service

router = APIRouter()


@router.post(
    "",
    response_model=ChargeResponse,
    summary="Charge a virtual card",
)
async def create_charge(
    charge: ChargeRequest,
    request: Request,
    merchant: User = Depends(require_roles(UserRole.MERCHANT)),
    _: None = Depends(rate_limit("charges")),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Charge a card once.

    - **card_number** / **cvv** / **expiry_date** (MM/YYYY): as printed
    - **amount_cents**: Positive, at most the card's limit
    - **description**: Required
    - **location**: Optional

    On success the card becomes used and inactive, and the amount is added
    to the cardholder's outstanding balance.
    """
    receipt = await charge_service.process_charge(
        db=db,
        settings=settings,
        merchant=merchant,
        charge=charge,
        ip_address=request.client.host if request.client else None,
        device_info=request.headers.get("user-agent"),
    )
    return ChargeResponse(message="Charge processed successfully", transaction=receipt)
