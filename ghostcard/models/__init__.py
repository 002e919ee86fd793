"""
SQLAlchemy ORM models package.

All models are imported here so that:
  1. Base.metadata knows every table before create_all() runs
  2. Other modules can import from ghostcard.models directly
"""

from ghostcard.models.user import User, UserRole  # noqa: F401
from ghostcard.models.card import Card  # noqa: F401
from ghostcard.models.transaction import Transaction, TransactionStatus  # noqa: F401
