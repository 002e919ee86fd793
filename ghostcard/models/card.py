"""
Card model — a single-use virtual card owned by a User.

A user may hold at most MAX_ACTIVE_CARDS_PER_USER active, unused cards.
Each card can be charged exactly once: the successful charge marks it
used and inactive, and sets current_balance_cents to the charged amount.

Encryption strategy:
  - card_number_encrypted: Full 12-digit card number, Fernet-encrypted
  - card_number_fingerprint: Keyed HMAC of the number — deterministic, so it
    backs the UNIQUE constraint and the lookup when a merchant charges
  - card_number_last_four: Last 4 digits in plaintext (for "ending in ****")
  - cvv_encrypted: 3-digit CVV, Fernet-encrypted

Embedded transaction summaries:
  transaction_summaries is a JSON list kept on the card row, one entry per
  charge:
      {"transaction_id", "amount_cents", "merchant_id", "timestamp",
       "status", "description"}
  The list is replaced (never mutated in place) so SQLAlchemy detects the
  change.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    LargeBinary,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ghostcard.database import Base


class Card(Base):
    __tablename__ = "cards"

    __table_args__ = (
        CheckConstraint(
            "current_balance_cents >= 0",
            name="ck_cards_non_negative_balance",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    card_number_encrypted: Mapped[bytes] = mapped_column(
        LargeBinary,
        nullable=False,
    )

    card_number_fingerprint: Mapped[str] = mapped_column(
        String(64),
        unique=True,
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

    card_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="virtual",
    )

    expiration_month: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    expiration_year: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    cvv_encrypted: Mapped[bytes] = mapped_column(
        LargeBinary,
        nullable=False,
    )

    # Fixed at issuance from CARD_MAX_LIMIT_CENTS
    max_limit_cents: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    current_balance_cents: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    # Set by the first successful charge; a used card is never charged again
    is_used: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    transaction_summaries: Mapped[list[dict]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # --- Relationships ---
    owner: Mapped["User"] = relationship(
        back_populates="cards",
    )

    @property
    def expiry_date(self) -> str:
        """Expiry rendered as MM/YYYY, the format merchants present."""
        return f"{self.expiration_month:02d}/{self.expiration_year}"

    def is_expired(self, now: datetime | None = None) -> bool:
        """
        A card is valid through the month *before* its expiry month.

        Valid only while (expiration_year, expiration_month) is strictly
        after the current (year, month).
        """
        now = now or datetime.now(timezone.utc)
        return (self.expiration_year, self.expiration_month) <= (now.year, now.month)
