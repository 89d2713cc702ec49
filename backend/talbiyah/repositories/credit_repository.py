# backend/talbiyah/repositories/credit_repository.py
"""
Credit Repository for the Talbiyah platform.

Balance changes are applied with ``credits_remaining = credits_remaining + :amount``
so two concurrent refunds never overwrite each other.
"""

from __future__ import annotations

from decimal import Decimal
import logging
from typing import Optional, cast

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.credit import CreditTransaction, UserCredits
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class CreditRepository(BaseRepository[CreditTransaction]):
    """Repository for credit balances and ledger entries."""

    def __init__(self, db: Session):
        super().__init__(db, CreditTransaction)
        self.logger = logging.getLogger(__name__)

    def get_balance(self, user_id: str) -> Decimal:
        """Current spendable balance (zero when the user has no balance row)."""
        try:
            value = self.db.execute(
                select(UserCredits.credits_remaining).where(UserCredits.user_id == user_id)
            ).scalar_one_or_none()
            return Decimal(value) if value is not None else Decimal("0")
        except SQLAlchemyError as exc:
            self.logger.error("Failed to read balance for %s: %s", user_id, exc)
            raise RepositoryException("Failed to read credit balance") from exc

    def get_transaction_by_key(self, idempotency_key: str) -> Optional[CreditTransaction]:
        try:
            return cast(
                Optional[CreditTransaction],
                self.db.execute(
                    select(CreditTransaction).where(
                        CreditTransaction.idempotency_key == idempotency_key
                    )
                ).scalar_one_or_none(),
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to load credit transaction %s: %s", idempotency_key, exc)
            raise RepositoryException("Failed to load credit transaction") from exc

    def increment_balance(self, user_id: str, amount: Decimal) -> Decimal:
        """
        Add ``amount`` to the user's balance, creating the balance row if needed.

        Returns:
            The balance after the increment
        """
        try:
            result = self.db.execute(
                update(UserCredits)
                .where(UserCredits.user_id == user_id)
                .values(credits_remaining=UserCredits.credits_remaining + amount)
                .execution_options(synchronize_session=False)
            )
            if not result.rowcount:
                self.db.add(UserCredits(user_id=user_id, credits_remaining=amount))
            self.db.flush()
            return self.get_balance(user_id)
        except IntegrityError as exc:
            self.logger.error("Integrity error crediting %s: %s", user_id, exc)
            raise RepositoryException(f"Integrity constraint violated: {exc}") from exc
        except SQLAlchemyError as exc:
            self.logger.error("Failed to credit %s: %s", user_id, exc)
            raise RepositoryException("Failed to update credit balance") from exc
