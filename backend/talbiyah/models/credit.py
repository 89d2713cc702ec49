# backend/talbiyah/models/credit.py
"""
Credit ledger models.

Parents buy lesson credits up front. ``UserCredits`` holds the spendable
balance; every movement is recorded in ``CreditTransaction``. The unique
``idempotency_key`` on a transaction is what prevents a refund from being
applied twice.
"""

from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class CreditTransactionType(str, Enum):
    """Types of credit ledger entries."""

    REFUND = "refund"
    PURCHASE = "purchase"
    SPEND = "spend"


class UserCredits(Base):
    """Spendable credit balance of a paying account."""

    __tablename__ = "user_credits"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id = Column(String(26), ForeignKey("users.id"), nullable=False, unique=True)
    credits_remaining = Column(Numeric(10, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="credits")

    __table_args__ = (
        CheckConstraint("credits_remaining >= 0", name="ck_user_credits_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<UserCredits user={self.user_id} remaining={self.credits_remaining}>"


class CreditTransaction(Base):
    """Immutable ledger entry for a credit movement."""

    __tablename__ = "credit_transactions"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id = Column(String(26), ForeignKey("users.id"), nullable=False)
    lesson_id = Column(String(26), ForeignKey("lessons.id"), nullable=True)
    transaction_type = Column(String(20), nullable=False, default=CreditTransactionType.REFUND.value)
    amount = Column(Numeric(10, 2), nullable=False)
    balance_after = Column(Numeric(10, 2), nullable=False)
    reference_note = Column(Text, nullable=True)
    idempotency_key = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_credit_transactions_idempotency_key"),
        Index("ix_credit_transactions_user_created_at", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<CreditTransaction {self.id}: user={self.user_id} "
            f"{self.transaction_type} {self.amount} key={self.idempotency_key}>"
        )
