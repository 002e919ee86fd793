"""
Pydantic schemas for the analytics endpoints.

Three reports exist, one per audience:
  - CardOverviewResponse     — a user's own cards and spending
  - MerchantAnalyticsResponse — one merchant's sales
  - AdminAnalyticsResponse    — the whole platform

Everything is recomputed from the Card and Transaction tables on every
request; amounts are integer cents, rates are percentages (0–100).
"""

import uuid
from datetime import datetime

from pydantic import BaseModel

from ghostcard.schemas.card import CardTransactionSummary


class PeriodAmount(BaseModel):
    """Total charged within one period: "2025-03-14", "2025-03" or "2025"."""
    period: str
    amount_cents: int


class TimeAnalysis(BaseModel):
    daily: list[PeriodAmount]
    monthly: list[PeriodAmount]
    yearly: list[PeriodAmount]


class StatusBreakdown(BaseModel):
    completed: int = 0
    failed: int = 0
    pending: int = 0


class RecentTransaction(BaseModel):
    id: str
    amount_cents: int
    timestamp: datetime
    status: str
    description: str
    merchant_name: str
    customer_name: str


# ---------------------------------------------------------------------------
# User card overview
# ---------------------------------------------------------------------------

class MerchantSpend(BaseModel):
    merchant_id: uuid.UUID
    merchant_name: str
    count: int
    total_cents: int


class CardAnalytics(BaseModel):
    card_id: uuid.UUID
    card_number_last_four: str
    card_holder_name: str
    current_balance_cents: int
    max_limit_cents: int
    is_active: bool
    is_used: bool
    total_transactions: int
    total_spent_cents: int
    last_transaction_date: datetime | None
    top_merchants: list[MerchantSpend]
    transactions: list[CardTransactionSummary]


class CardOverview(BaseModel):
    total_cards: int
    active_cards: int
    used_cards: int
    total_spent_cents: int
    total_outstanding_cents: int


class Spending(BaseModel):
    monthly: list[PeriodAmount]
    by_merchant: list[MerchantSpend]


class CardOverviewResponse(BaseModel):
    message: str
    overview: CardOverview
    spending: Spending
    cards: list[CardAnalytics]


# ---------------------------------------------------------------------------
# Merchant analytics
# ---------------------------------------------------------------------------

class MerchantInfo(BaseModel):
    id: uuid.UUID
    name: str
    email: str


class MerchantOverview(BaseModel):
    total_transactions: int
    total_amount_cents: int
    average_amount_cents: float
    success_rate: float
    total_customers: int


class CustomerTransaction(BaseModel):
    id: str
    amount_cents: int
    timestamp: datetime
    status: str
    description: str


class CustomerActivity(BaseModel):
    customer_id: uuid.UUID
    customer_name: str
    total_transactions: int
    total_amount_cents: int
    last_transaction: datetime
    transactions: list[CustomerTransaction]


class MerchantAnalyticsResponse(BaseModel):
    message: str
    merchant: MerchantInfo
    overview: MerchantOverview
    time_analysis: TimeAnalysis
    customer_analysis: list[CustomerActivity]
    status_breakdown: StatusBreakdown
    recent_transactions: list[RecentTransaction]


# ---------------------------------------------------------------------------
# Admin analytics
# ---------------------------------------------------------------------------

class PlatformOverview(BaseModel):
    total_users: int
    total_merchants: int
    total_transactions: int
    total_amount_cents: int
    average_amount_cents: float
    success_rate: float
    total_outstanding_cents: int


class UserAnalysis(BaseModel):
    total_active_users: int
    total_inactive_users: int
    users_with_cards: int
    users_with_transactions: int
    user_outstanding_cents: int
    average_outstanding_per_user_cents: float


class TopMerchant(BaseModel):
    merchant_id: uuid.UUID
    merchant_name: str
    total_transactions: int
    total_amount_cents: int
    success_rate: float
    unique_customers: int


class MerchantAnalysis(BaseModel):
    total_active_merchants: int
    total_inactive_merchants: int
    merchants_with_transactions: int
    top_merchants: list[TopMerchant]
    average_transactions_per_merchant: float
    average_amount_per_merchant_cents: float


class TransactionAnalysis(BaseModel):
    status_breakdown: StatusBreakdown
    time_analysis: TimeAnalysis
    recent_transactions: list[RecentTransaction]


class CardAnalysis(BaseModel):
    total_cards: int
    active_cards: int
    used_cards: int
    average_cards_per_user: float


class AdminAnalyticsResponse(BaseModel):
    message: str
    overview: PlatformOverview
    user_analysis: UserAnalysis
    merchant_analysis: MerchantAnalysis
    transaction_analysis: TransactionAnalysis
    card_analysis: CardAnalysis
