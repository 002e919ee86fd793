"""
Transactions router — transaction lookup and sales analytics.

Endpoints:
  GET /transactions/analytics/merchant — Sales report (merchant, or admin
                                         with ?merchant_id=)
  GET /transactions/analytics/admin    — Platform report (admin)
  GET /transactions/{transaction_id}   — One transaction, role-scoped view

The analytics routes are declared first so "analytics" is never captured
as a transaction reference. Every route counts against the general limiter;
the analytics routes also count against the analytics limiter.
"""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ghostcard.database import get_db
from ghostcard.dependencies import get_current_user, require_roles
from ghostcard.models.user import User, UserRole
from ghostcard.rate_limit import rate_limit
from ghostcard.schemas.analytics import AdminAnalyticsResponse, MerchantAnalyticsResponse
from ghostcard.schemas.transaction import TransactionDetailResponse
from ghostcard.services import analytics_service, transaction_service

router = APIRouter()


@router.get(
    "/analytics/merchant",
    response_model=MerchantAnalyticsResponse,
    summary="Merchant sales analytics",
)
async def merchant_analytics(
    merchant_id: uuid.UUID | None = Query(None, description="Required for admins"),
    user: User = Depends(require_roles(UserRole.MERCHANT, UserRole.ADMIN)),
    _general: None = Depends(rate_limit("general")),
    _: None = Depends(rate_limit("analytics")),
    db: AsyncSession = Depends(get_db),
):
    """
    Totals, time buckets, customers and recent sales for one merchant.

    Merchants always get their own report and `merchant_id` is ignored.
    Admins must pass `merchant_id`.
    """
    return await analytics_service.merchant_analytics(
        db=db,
        viewer=user,
        merchant_id=merchant_id,
    )


@router.get(
    "/analytics/admin",
    response_model=AdminAnalyticsResponse,
    summary="Platform-wide analytics",
)
async def admin_analytics(
    user: User = Depends(require_roles(UserRole.ADMIN)),
    _general: None = Depends(rate_limit("general")),
    _: None = Depends(rate_limit("analytics")),
    db: AsyncSession = Depends(get_db),
):
    return await analytics_service.admin_analytics(db=db)


@router.get(
    "/{transaction_id}",
    response_model=TransactionDetailResponse,
    summary="Get a transaction",
)
async def get_transaction(
    transaction_id: str,
    user: User = Depends(get_current_user),
    _: None = Depends(rate_limit("general")),
    db: AsyncSession = Depends(get_db),
):
    """
    Look up a transaction by its reference (e.g. TXN1718000000000042).

    Admins see everything; merchants and cardholders see their own
    transactions, without the card reference.
    """
    transaction = await transaction_service.get_transaction(
        db=db,
        transaction_id=transaction_id,
        viewer=user,
    )
    return TransactionDetailResponse(
        message="Transaction retrieved successfully",
        transaction=transaction,
    )
