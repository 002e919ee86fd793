"""
User model — the authentication identity and the billing party.

Each User represents a login credential (email + hashed password) with a
defined role:

  - USER: Requests virtual cards and owes the amounts charged to them
  - MERCHANT: Charges cards presented by customers
  - ADMIN: Read-only oversight — card lookups and platform analytics

Users are never deleted. They are mutated on login (failed-attempt counter,
last-login timestamp) and on charge settlement, when the amount charged to
one of their cards is added to outstanding_balance_cents.

The failed-attempt counter is informational: no lockout threshold is
enforced on it.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Boolean, Integer, DateTime, Enum, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ghostcard.database import Base


class UserRole(str, enum.Enum):
    """
    Defines the role a user holds within GhostCard.

    Inherits from str so the enum value serializes naturally to JSON
    and can be stored as a simple string in the database.
    """
    USER = "user"           # Cardholder — issues and spends virtual cards
    MERCHANT = "merchant"   # Charges cards
    ADMIN = "admin"         # Platform oversight


class User(Base):
    __tablename__ = "users"

    __table_args__ = (
        CheckConstraint(
            "outstanding_balance_cents >= 0",
            name="ck_users_non_negative_outstanding",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    # Display name; denormalized onto cards and transactions
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    # Email is the login identifier — must be unique and indexed for fast lookups
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )

    # Argon2id hash of the password (never store plaintext!)
    hashed_password: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole),
        default=UserRole.USER,
        nullable=False,
        index=True,
    )

    # Cumulative unpaid amount across all of this user's charged cards
    outstanding_balance_cents: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    # Soft-disable: deactivated users can't log in but their data is preserved
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    failed_login_attempts: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    last_login_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Audit timestamps
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
    cards: Mapped[list["Card"]] = relationship(
        back_populates="owner",
    )
