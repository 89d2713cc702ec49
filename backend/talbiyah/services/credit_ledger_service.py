"""Credit ledger: applies credit grants to a payer's balance exactly once per key."""

from __future__ import annotations

from decimal import Decimal
import logging
from typing import Optional, Protocol

from sqlalchemy.orm import Session

from ..core.exceptions import ValidationException
from ..models.credit import CreditTransactionType
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


class CreditLedger(Protocol):
    """Anything that can credit a payer idempotently."""

    def add_credits(
        self,
        user_id: str,
        amount: Decimal,
        reference_note: str,
        idempotency_key: str,
        lesson_id: Optional[str] = None,
        *,
        use_transaction: bool = True,
    ) -> Decimal:
        ...


class CreditLedgerService(BaseService):
    """Local ledger on ``user_credits`` / ``credit_transactions``."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.credit_repository = RepositoryFactory.create_credit_repository(db)

    @BaseService.measure_operation("credit_add")
    def add_credits(
        self,
        user_id: str,
        amount: Decimal,
        reference_note: str,
        idempotency_key: str,
        lesson_id: Optional[str] = None,
        *,
        use_transaction: bool = True,
    ) -> Decimal:
        """
        Credit ``amount`` to ``user_id`` unless ``idempotency_key`` was already applied.

        Args:
            user_id: Paying account receiving the credit
            amount: Positive number of credits
            reference_note: Human readable reason stored on the ledger entry
            idempotency_key: Duplicate-call guard; a second call is a no-op
            lesson_id: Lesson the credit relates to, if any
            use_transaction: Commit here; pass False when the caller owns the transaction

        Returns:
            The balance after the grant (or the current balance on a duplicate call)
        """
        amount = Decimal(amount)
        if amount <= 0:
            raise ValidationException(
                "Credit amount must be positive",
                code="INVALID_CREDIT_AMOUNT",
                details={"amount": str(amount)},
            )

        def _apply() -> Decimal:
            existing = self.credit_repository.get_transaction_by_key(idempotency_key)
            if existing is not None:
                self.logger.info(
                    "Credit grant %s already applied; skipping",
                    idempotency_key,
                    extra={"user_id": user_id, "lesson_id": lesson_id},
                )
                return self.credit_repository.get_balance(user_id)

            new_balance = self.credit_repository.increment_balance(user_id, amount)
            self.credit_repository.create(
                user_id=user_id,
                lesson_id=lesson_id,
                transaction_type=CreditTransactionType.REFUND.value,
                amount=amount,
                balance_after=new_balance,
                reference_note=reference_note,
                idempotency_key=idempotency_key,
            )
            self.log_operation(
                "credits_added",
                user_id=user_id,
                lesson_id=lesson_id,
                amount=str(amount),
                new_balance=str(new_balance),
            )
            return new_balance

        if not use_transaction:
            return _apply()
        with self.transaction():
            return _apply()

    def get_balance(self, user_id: str) -> Decimal:
        return self.credit_repository.get_balance(user_id)
