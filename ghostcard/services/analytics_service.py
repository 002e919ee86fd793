"""
Analytics service — read-only reports over cards and transactions.

Three reports, one per audience:
  - card_overview(user): the user's cards, what was spent on them and where
  - merchant_analytics(merchant): one merchant's sales, by period and customer
  - admin_analytics(): platform-wide users, merchants, transactions and cards

Nothing is cached or precomputed. Each report loads the relevant rows and
aggregates them in memory with the pure helpers at the top of this module,
which is fine at the scale a single SQLite file serves.

Conventions:
  - Amounts are integer cents; averages are floats.
  - Rates are percentages (0–100). Divisions by an empty population use a
    denominator of 1, so empty reports show 0 rather than failing.
  - Time buckets are keyed "YYYY-MM-DD", "YYYY-MM" and "YYYY", sorted
    ascending; "recent" lists hold the 10 newest transactions.
"""

import uuid
from collections import defaultdict
from datetime import datetime
from typing import Iterable

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ghostcard.exceptions import InvalidRequestError, NotFoundError
from ghostcard.models.card import Card
from ghostcard.models.transaction import Transaction, TransactionStatus
from ghostcard.models.user import User, UserRole
from ghostcard.schemas.analytics import (
    AdminAnalyticsResponse,
    CardAnalysis,
    CardAnalytics,
    CardOverview,
    CardOverviewResponse,
    CustomerActivity,
    CustomerTransaction,
    MerchantAnalysis,
    MerchantAnalyticsResponse,
    MerchantInfo,
    MerchantOverview,
    MerchantSpend,
    PeriodAmount,
    PlatformOverview,
    RecentTransaction,
    Spending,
    StatusBreakdown,
    TimeAnalysis,
    TopMerchant,
    TransactionAnalysis,
    UserAnalysis,
)
from ghostcard.schemas.card import CardTransactionSummary

logger = structlog.get_logger(__name__)

RECENT_TRANSACTIONS_LIMIT = 10
TOP_MERCHANTS_PER_CARD = 5
UNKNOWN_MERCHANT = "Unknown Merchant"


# ---------------------------------------------------------------------------
# Pure aggregation helpers
# ---------------------------------------------------------------------------

def percentage(part: int, whole: int) -> float:
    return part / (whole or 1) * 100


def average(total: int | float, count: int) -> float:
    return total / (count or 1)


def _sorted_periods(totals: dict[str, int]) -> list[PeriodAmount]:
    return [
        PeriodAmount(period=period, amount_cents=amount)
        for period, amount in sorted(totals.items())
    ]


def time_buckets(entries: Iterable[tuple[datetime, int]]) -> TimeAnalysis:
    """Sum (timestamp, amount) pairs per day, month and year."""
    daily: dict[str, int] = defaultdict(int)
    monthly: dict[str, int] = defaultdict(int)
    yearly: dict[str, int] = defaultdict(int)

    for timestamp, amount in entries:
        daily[timestamp.strftime("%Y-%m-%d")] += amount
        monthly[timestamp.strftime("%Y-%m")] += amount
        yearly[timestamp.strftime("%Y")] += amount

    return TimeAnalysis(
        daily=_sorted_periods(daily),
        monthly=_sorted_periods(monthly),
        yearly=_sorted_periods(yearly),
    )


def status_breakdown(transactions: Iterable[Transaction]) -> StatusBreakdown:
    counts = {status.value: 0 for status in TransactionStatus}
    for txn in transactions:
        counts[txn.status.value] += 1
    return StatusBreakdown(**counts)


def recent_transactions(transactions: Iterable[Transaction]) -> list[RecentTransaction]:
    newest = sorted(transactions, key=lambda txn: txn.created_at, reverse=True)
    return [
        RecentTransaction(
            id=txn.transaction_id,
            amount_cents=txn.amount_cents,
            timestamp=txn.created_at,
            status=txn.status.value,
            description=txn.description,
            merchant_name=txn.merchant_name,
            customer_name=txn.customer_name,
        )
        for txn in newest[:RECENT_TRANSACTIONS_LIMIT]
    ]


def merchant_spend(
    summaries: Iterable[CardTransactionSummary],
    merchant_names: dict[uuid.UUID, str],
) -> list[MerchantSpend]:
    """Completed spend per merchant, largest total first."""
    counts: dict[uuid.UUID, int] = defaultdict(int)
    totals: dict[uuid.UUID, int] = defaultdict(int)

    for summary in summaries:
        if summary.status != TransactionStatus.COMPLETED.value:
            continue
        counts[summary.merchant_id] += 1
        totals[summary.merchant_id] += summary.amount_cents

    spend = [
        MerchantSpend(
            merchant_id=merchant_id,
            merchant_name=merchant_names.get(merchant_id, UNKNOWN_MERCHANT),
            count=counts[merchant_id],
            total_cents=totals[merchant_id],
        )
        for merchant_id in totals
    ]
    return sorted(spend, key=lambda entry: entry.total_cents, reverse=True)


def _card_summaries(card: Card) -> list[CardTransactionSummary]:
    return [CardTransactionSummary.model_validate(s) for s in card.transaction_summaries]


# ---------------------------------------------------------------------------
# User card overview
# ---------------------------------------------------------------------------

async def _merchant_names(db: AsyncSession, merchant_ids: set[uuid.UUID]) -> dict[uuid.UUID, str]:
    if not merchant_ids:
        return {}
    result = await db.execute(select(User.id, User.name).where(User.id.in_(merchant_ids)))
    return {row.id: row.name for row in result}


async def card_overview(db: AsyncSession, user: User) -> CardOverviewResponse:
    """
    Summarize a user's cards.

    Only completed summaries count toward spending; every summary is still
    listed on its card.
    """
    result = await db.execute(
        select(Card).where(Card.user_id == user.id).order_by(Card.created_at)
    )
    cards = list(result.scalars().all())

    summaries_by_card = {card.id: _card_summaries(card) for card in cards}
    all_summaries = [s for summaries in summaries_by_card.values() for s in summaries]
    completed = [s for s in all_summaries if s.status == TransactionStatus.COMPLETED.value]

    names = await _merchant_names(db, {s.merchant_id for s in all_summaries})

    card_reports = []
    for card in cards:
        summaries = summaries_by_card[card.id]
        card_completed = [s for s in summaries if s.status == TransactionStatus.COMPLETED.value]
        card_reports.append(
            CardAnalytics(
                card_id=card.id,
                card_number_last_four=card.card_number_last_four,
                card_holder_name=card.card_holder_name,
                current_balance_cents=card.current_balance_cents,
                max_limit_cents=card.max_limit_cents,
                is_active=card.is_active,
                is_used=card.is_used,
                total_transactions=len(summaries),
                total_spent_cents=sum(s.amount_cents for s in card_completed),
                last_transaction_date=max(
                    (s.timestamp for s in card_completed), default=None
                ),
                top_merchants=merchant_spend(summaries, names)[:TOP_MERCHANTS_PER_CARD],
                transactions=summaries,
            )
        )

    monthly: dict[str, int] = defaultdict(int)
    for summary in completed:
        monthly[summary.timestamp.strftime("%Y-%m")] += summary.amount_cents

    overview = CardOverview(
        total_cards=len(cards),
        active_cards=sum(1 for c in cards if c.is_active and not c.is_used),
        used_cards=sum(1 for c in cards if c.is_used),
        total_spent_cents=sum(s.amount_cents for s in completed),
        total_outstanding_cents=user.outstanding_balance_cents,
    )

    return CardOverviewResponse(
        message="Card analytics retrieved successfully",
        overview=overview,
        spending=Spending(
            monthly=_sorted_periods(monthly),
            by_merchant=merchant_spend(all_summaries, names),
        ),
        cards=card_reports,
    )


# ---------------------------------------------------------------------------
# Merchant analytics
# ---------------------------------------------------------------------------

async def resolve_merchant(
    db: AsyncSession,
    viewer: User,
    merchant_id: uuid.UUID | None,
) -> User:
    """
    Work out whose sales are being reported.

    Merchants always get their own; admins must name a merchant.

    Raises:
        InvalidRequestError: If an admin didn't pass merchant_id.
        NotFoundError: If merchant_id isn't a merchant.
    """
    if viewer.role != UserRole.ADMIN:
        return viewer

    if merchant_id is None:
        raise InvalidRequestError("Valid merchant ID required for admin")

    merchant = await db.get(User, merchant_id)
    if merchant is None or merchant.role != UserRole.MERCHANT:
        raise NotFoundError("Merchant not found")
    return merchant


async def merchant_analytics(
    db: AsyncSession,
    viewer: User,
    merchant_id: uuid.UUID | None = None,
) -> MerchantAnalyticsResponse:
    merchant = await resolve_merchant(db, viewer, merchant_id)

    result = await db.execute(
        select(Transaction).where(Transaction.merchant_id == merchant.id)
    )
    transactions = list(result.scalars().all())

    customers: dict[uuid.UUID, dict] = {}
    for txn in sorted(transactions, key=lambda txn: txn.created_at, reverse=True):
        entry = customers.setdefault(
            txn.customer_id,
            {
                "customer_id": txn.customer_id,
                "customer_name": txn.customer_name,
                "total_transactions": 0,
                "total_amount_cents": 0,
                "last_transaction": txn.created_at,
                "transactions": [],
            },
        )
        entry["total_transactions"] += 1
        entry["total_amount_cents"] += txn.amount_cents
        entry["last_transaction"] = max(entry["last_transaction"], txn.created_at)
        # Newest first, as iterated
        entry["transactions"].append(
            CustomerTransaction(
                id=txn.transaction_id,
                amount_cents=txn.amount_cents,
                timestamp=txn.created_at,
                status=txn.status.value,
                description=txn.description,
            )
        )

    breakdown = status_breakdown(transactions)
    total_amount = sum(txn.amount_cents for txn in transactions)

    logger.debug(
        "merchant_analytics_computed",
        merchant_id=str(merchant.id),
        transactions=len(transactions),
    )

    return MerchantAnalyticsResponse(
        message="Merchant analytics retrieved successfully",
        merchant=MerchantInfo(id=merchant.id, name=merchant.name, email=merchant.email),
        overview=MerchantOverview(
            total_transactions=len(transactions),
            total_amount_cents=total_amount,
            average_amount_cents=average(total_amount, len(transactions)),
            success_rate=percentage(breakdown.completed, len(transactions)),
            total_customers=len(customers),
        ),
        time_analysis=time_buckets((txn.created_at, txn.amount_cents) for txn in transactions),
        customer_analysis=sorted(
            (CustomerActivity(**entry) for entry in customers.values()),
            key=lambda activity: activity.total_amount_cents,
            reverse=True,
        ),
        status_breakdown=breakdown,
        recent_transactions=recent_transactions(transactions),
    )


# ---------------------------------------------------------------------------
# Admin analytics
# ---------------------------------------------------------------------------

def _top_merchants(transactions: list[Transaction], merchants: list[User]) -> list[TopMerchant]:
    by_merchant: dict[uuid.UUID, list[Transaction]] = defaultdict(list)
    for txn in transactions:
        by_merchant[txn.merchant_id].append(txn)

    top = []
    for merchant in merchants:
        sales = by_merchant.get(merchant.id)
        if not sales:
            continue
        completed = sum(1 for txn in sales if txn.status == TransactionStatus.COMPLETED)
        top.append(
            TopMerchant(
                merchant_id=merchant.id,
                merchant_name=merchant.name,
                total_transactions=len(sales),
                total_amount_cents=sum(txn.amount_cents for txn in sales),
                success_rate=percentage(completed, len(sales)),
                unique_customers=len({txn.customer_id for txn in sales}),
            )
        )
    return sorted(top, key=lambda entry: entry.total_amount_cents, reverse=True)


async def admin_analytics(db: AsyncSession) -> AdminAnalyticsResponse:
    users = list(
        (await db.execute(select(User).where(User.role == UserRole.USER))).scalars().all()
    )
    merchants = list(
        (await db.execute(select(User).where(User.role == UserRole.MERCHANT))).scalars().all()
    )
    transactions = list((await db.execute(select(Transaction))).scalars().all())
    cards = list((await db.execute(select(Card))).scalars().all())

    user_ids = {user.id for user in users}
    total_amount = sum(txn.amount_cents for txn in transactions)
    outstanding = sum(user.outstanding_balance_cents for user in users)
    breakdown = status_breakdown(transactions)
    card_owner_ids = {card.user_id for card in cards}

    return AdminAnalyticsResponse(
        message="Admin analytics retrieved successfully",
        overview=PlatformOverview(
            total_users=len(users),
            total_merchants=len(merchants),
            total_transactions=len(transactions),
            total_amount_cents=total_amount,
            average_amount_cents=average(total_amount, len(transactions)),
            success_rate=percentage(breakdown.completed, len(transactions)),
            total_outstanding_cents=outstanding,
        ),
        user_analysis=UserAnalysis(
            total_active_users=sum(1 for user in users if user.is_active),
            total_inactive_users=sum(1 for user in users if not user.is_active),
            users_with_cards=len(user_ids & card_owner_ids),
            users_with_transactions=len(user_ids & {txn.customer_id for txn in transactions}),
            user_outstanding_cents=outstanding,
            average_outstanding_per_user_cents=average(outstanding, len(users)),
        ),
        merchant_analysis=MerchantAnalysis(
            total_active_merchants=sum(1 for m in merchants if m.is_active),
            total_inactive_merchants=sum(1 for m in merchants if not m.is_active),
            merchants_with_transactions=len({txn.merchant_id for txn in transactions}),
            top_merchants=_top_merchants(transactions, merchants),
            average_transactions_per_merchant=average(len(transactions), len(merchants)),
            average_amount_per_merchant_cents=average(total_amount, len(merchants)),
        ),
        transaction_analysis=TransactionAnalysis(
            status_breakdown=breakdown,
            time_analysis=time_buckets((txn.created_at, txn.amount_cents) for txn in transactions),
            recent_transactions=recent_transactions(transactions),
        ),
        card_analysis=CardAnalysis(
            total_cards=len(cards),
            active_cards=sum(1 for c in cards if c.is_active and not c.is_used),
            used_cards=sum(1 for c in cards if c.is_used),
            average_cards_per_user=average(len(cards), len(users)),
        ),
    )
