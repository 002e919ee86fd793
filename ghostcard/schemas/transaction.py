"""
Pydantic schemas for charge and transaction endpoints.

All monetary amounts are in integer cents (e.g., $10.50 = 1050).

ChargeRequest fields are declared optional on purpose: the charge processor
checks field presence and expiry format itself, in a fixed order, so the
merchant gets "Missing required fields" / "Invalid expiry date format"
rather than a generic schema error.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from ghostcard.schemas.user import PartyResponse


class ChargeRequest(BaseModel):
    """Request body for POST /charges."""
    card_number: str | None = None
    cvv: str | None = None
    expiry_date: str | None = Field(None, description="MM/YYYY")
    amount_cents: int | None = Field(None, gt=0, description="Amount in cents (must be positive)")
    description: str | None = Field(None, max_length=255)
    location: str | None = Field(None, max_length=255)


class ChargeReceipt(BaseModel):
    """What the merchant gets back for a processed charge."""
    id: str
    amount_cents: int
    status: str
    timestamp: datetime
    description: str
    card_number_last_four: str
    card_holder_name: str
    merchant_name: str
    customer_name: str


class ChargeResponse(BaseModel):
    message: str
    transaction: ChargeReceipt


class TransactionDetail(BaseModel):
    """
    Role-dependent view of a transaction.

    card_id / card_number_last_four are only filled in for admins; merchant
    and customer are filled in depending on who is asking.
    """
    id: str
    amount_cents: int
    status: str
    description: str
    timestamp: datetime
    card_holder_name: str
    merchant_name: str
    customer_name: str
    card_id: uuid.UUID | None = None
    card_number_last_four: str | None = None
    merchant: PartyResponse | None = None
    customer: PartyResponse | None = None
    ip_address: str | None = None
    location: str | None = None
    device_info: str | None = None


class TransactionDetailResponse(BaseModel):
    message: str
    transaction: TransactionDetail
