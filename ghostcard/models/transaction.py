"""
Transaction model — the immutable record of one card charge.

A Transaction is written once per successful charge, as the first step of
the charge saga (see services/charge_service.py). Its status is set to
"completed" synchronously; "pending" and "failed" exist in the enum for
records imported from elsewhere and are counted by the analytics.

Key fields:
  - transaction_id: Public reference ("TXN" + epoch millis + 3 digits);
    the surrogate UUID primary key is never exposed
  - amount_cents: Always positive
  - card_id / merchant_id / customer_id: References to the charged card,
    the charging merchant, and the card owner
  - card_number_last_four, card_holder_name, merchant_name, customer_name:
    Denormalized at charge time so analytics need no joins
  - ip_address, location, device_info: Request metadata captured from the
    merchant's call
"""

import enum
import random
import time
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, ForeignKey, CheckConstraint, Enum
from sqlalchemy.orm import Mapped, mapped_column

from ghostcard.database import Base


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


def generate_transaction_reference() -> str:
    """TXN + epoch milliseconds + 3 random digits, e.g. TXN1718000000000042."""
    millis = int(time.time() * 1000)
    return f"TXN{millis}{random.randint(0, 999):03d}"


class Transaction(Base):
    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_transactions_positive_amount"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    transaction_id: Mapped[str] = mapped_column(
        String(32),
        unique=True,
        nullable=False,
        index=True,
        default=generate_transaction_reference,
    )

    amount_cents: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    card_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("cards.id"),
        nullable=False,
        index=True,
    )
    card_number_last_four: Mapped[str] = mapped_column(
        String(4),
        nullable=False,
    )
    card_holder_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    merchant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    merchant_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    customer_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    customer_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    status: Mapped[TransactionStatus] = mapped_column(
        Enum(TransactionStatus),
        nullable=False,
        default=TransactionStatus.PENDING,
        index=True,
    )

    description: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Request metadata
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    device_info: Mapped[str | None] = mapped_column(String(512), nullable=True)

    # Charge timestamp — indexed for the time-bucketed analytics
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
