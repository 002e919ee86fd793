"""
Pydantic schemas for Card endpoints.

The full card number and CVV appear in exactly two places: the issuance
response, and the owner's view of a card that has not been used yet (the
number stays visible to the owner afterwards, the CVV does not). Admins only
ever see the last four digits.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel


class CardTransactionSummary(BaseModel):
    """One entry of a card's embedded transaction list."""
    transaction_id: str
    amount_cents: int
    merchant_id: uuid.UUID
    timestamp: datetime
    status: str
    description: str


class IssuedCard(BaseModel):
    """Card details returned once, at issuance."""
    id: uuid.UUID
    card_number: str
    card_holder_name: str
    card_type: str
    expiry_date: str
    cvv: str
    max_limit_cents: int
    is_active: bool


class CardIssueResponse(BaseModel):
    message: str
    card: IssuedCard


class CardDetail(BaseModel):
    """A card as seen by its owner or an admin."""
    id: uuid.UUID
    card_number: str | None = None
    card_number_last_four: str
    card_holder_name: str
    card_type: str
    expiry_date: str
    cvv: str | None = None
    max_limit_cents: int
    current_balance_cents: int
    is_active: bool
    is_used: bool
    transactions: list[CardTransactionSummary]
    created_at: datetime


class CardDetailResponse(BaseModel):
    message: str
    card: CardDetail
