"""
Transaction service — role-scoped lookup of a single transaction.

Transactions are written only by the charge saga (charge_service.py); this
module reads them. What a caller sees depends on their role:

  - ADMIN: everything, including the card reference and request metadata
  - MERCHANT: their own sales, with the customer's contact details
  - USER: their own purchases, with the merchant's contact details

Merchants and users never see the card id or card digits here. A merchant
or user asking for someone else's transaction gets 403; an unknown
reference gets 404 regardless of role.
"""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ghostcard.exceptions import NotFoundError, PermissionDeniedError
from ghostcard.models.transaction import Transaction
from ghostcard.models.user import User, UserRole
from ghostcard.schemas.transaction import TransactionDetail
from ghostcard.schemas.user import PartyResponse

logger = structlog.get_logger(__name__)


async def _party(db: AsyncSession, user_id) -> PartyResponse | None:
    user = await db.get(User, user_id)
    return PartyResponse.model_validate(user) if user is not None else None


def _base_view(txn: Transaction) -> dict:
    return {
        "id": txn.transaction_id,
        "amount_cents": txn.amount_cents,
        "status": txn.status.value,
        "description": txn.description,
        "timestamp": txn.created_at,
        "card_holder_name": txn.card_holder_name,
        "merchant_name": txn.merchant_name,
        "customer_name": txn.customer_name,
    }


async def get_transaction(
    db: AsyncSession,
    transaction_id: str,
    viewer: User,
) -> TransactionDetail:
    """
    Look up a transaction by its public reference, as seen by viewer.

    Raises:
        NotFoundError: If no transaction has this reference.
        PermissionDeniedError: If viewer is not a party to it (and not admin).
    """
    result = await db.execute(
        select(Transaction).where(Transaction.transaction_id == transaction_id)
    )
    txn = result.scalar_one_or_none()

    if txn is None:
        raise NotFoundError("Transaction not found")

    view = _base_view(txn)

    match viewer.role:
        case UserRole.ADMIN:
            view.update(
                card_id=txn.card_id,
                card_number_last_four=txn.card_number_last_four,
                merchant=await _party(db, txn.merchant_id),
                customer=await _party(db, txn.customer_id),
                ip_address=txn.ip_address,
                location=txn.location,
                device_info=txn.device_info,
            )
        case UserRole.MERCHANT if txn.merchant_id == viewer.id:
            view.update(
                customer=await _party(db, txn.customer_id),
                location=txn.location,
            )
        case UserRole.USER if txn.customer_id == viewer.id:
            view.update(
                merchant=await _party(db, txn.merchant_id),
                location=txn.location,
            )
        case _:
            logger.info(
                "transaction_access_denied",
                transaction_id=transaction_id,
                user_id=str(viewer.id),
                role=viewer.role.value,
            )
            raise PermissionDeniedError("Access denied")

    return TransactionDetail(**view)
