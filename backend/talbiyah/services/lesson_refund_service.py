"""
Compensation for declined lessons.

A decline writes a ``lesson.refund_requested`` outbox row (the refund intent)
in the same transaction as the state change. This service turns an intent
into a ledger credit for the learner's parent account. The ledger is keyed by
the intent's idempotency key, so replaying an intent never refunds twice.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import EVENT_LESSON_REFUND_COMPLETED, EVENT_LESSON_REFUND_REQUESTED
from ..core.exceptions import CompensationFailedException, LessonNotFoundException
from ..models.event_outbox import EventOutbox, EventOutboxStatus
from ..models.lesson import Lesson
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .credit_ledger_service import CreditLedger, CreditLedgerService
from .notification_service import LessonNotifier, NotificationService, notify_safely

logger = logging.getLogger(__name__)

MAX_REFUND_ATTEMPTS = 5
REFUND_BACKOFF_SECONDS = [30, 120, 600, 1800, 7200]


class RefundStatus:
    REFUNDED = "refunded"
    PENDING = "pending"
    FAILED = "failed"


def refund_idempotency_key(lesson_id: str) -> str:
    return f"lesson:{lesson_id}:decline_refund"


def next_refund_backoff(attempt_number: int) -> int:
    """Backoff delay in seconds after the given (1-indexed) attempt."""
    index = max(0, min(attempt_number - 1, len(REFUND_BACKOFF_SECONDS) - 1))
    return REFUND_BACKOFF_SECONDS[index]


@dataclass(frozen=True)
class RefundOutcome:
    """Result of trying to apply a refund intent."""

    lesson_id: str
    status: str
    amount: Optional[Decimal] = None
    payer_id: Optional[str] = None
    new_balance: Optional[Decimal] = None
    attempt_count: int = 0

    @property
    def refunded(self) -> bool:
        return self.status == RefundStatus.REFUNDED


class LessonRefundService(BaseService):
    """Records refund intents and applies them through the credit ledger."""

    def __init__(
        self,
        db: Session,
        credit_ledger: Optional[CreditLedger] = None,
        notifier: Optional[LessonNotifier] = None,
    ):
        super().__init__(db)
        self.credit_ledger: CreditLedger = credit_ledger or CreditLedgerService(db)
        self.notifier: LessonNotifier = notifier or NotificationService(db)
        self.outbox_repository = RepositoryFactory.create_event_outbox_repository(db)
        self.lesson_repository = RepositoryFactory.create_lesson_repository(db)

    @staticmethod
    def refund_amount_for(lesson: Lesson) -> Decimal:
        """Credits paid for the lesson, or the configured default when unknown."""
        if lesson.credits_paid is not None and Decimal(lesson.credits_paid) > 0:
            return Decimal(lesson.credits_paid)
        return Decimal(settings.decline_refund_credits)

    def record_refund_intent(self, lesson: Lesson, amount: Decimal) -> EventOutbox:
        """
        Persist the refund intent. Must run inside the caller's transaction.

        Enqueueing twice for the same lesson returns the existing intent.
        """
        payload: Dict[str, Any] = {
            "lesson_id": lesson.id,
            "payer_id": lesson.payer_id,
            "amount": str(amount),
            "reference_note": f"Refund for lesson {lesson.id} declined by teacher",
        }
        return self.outbox_repository.enqueue(
            event_type=EVENT_LESSON_REFUND_REQUESTED,
            aggregate_id=lesson.id,
            idempotency_key=refund_idempotency_key(lesson.id),
            payload=payload,
        )

    @BaseService.measure_operation("process_refund")
    def process_refund(self, lesson_id: str) -> RefundOutcome:
        """
        Apply the refund intent recorded for ``lesson_id``.

        Returns:
            ``RefundOutcome`` with status ``refunded`` (including intents that
            were already applied)

        Raises:
            CompensationFailedException: The ledger call failed; the intent was
                left pending with backoff, or parked as failed after the last attempt
        """
        key = refund_idempotency_key(lesson_id)
        intent = self.outbox_repository.get_by_key(key, for_update=True)
        if intent is None:
            raise CompensationFailedException(lesson_id, None, "no refund intent recorded")

        payload = dict(intent.payload or {})
        payer_id = payload.get("payer_id")
        amount = Decimal(str(payload.get("amount", settings.decline_refund_credits)))

        if intent.status == EventOutboxStatus.SENT.value:
            prometheus_metrics.record_refund_outcome("duplicate")
            return RefundOutcome(
                lesson_id=lesson_id,
                status=RefundStatus.REFUNDED,
                amount=amount,
                payer_id=payer_id,
                attempt_count=intent.attempt_count,
            )

        intent_id = intent.id
        attempt_number = (intent.attempt_count or 0) + 1
        try:
            if not payer_id:
                raise ValueError("refund intent has no payer")
            with self.transaction():
                new_balance = self.credit_ledger.add_credits(
                    payer_id,
                    amount,
                    payload.get("reference_note") or f"Refund for lesson {lesson_id}",
                    key,
                    lesson_id,
                    use_transaction=False,
                )
                self.outbox_repository.mark_sent(intent_id, attempt_number)
        except Exception as exc:
            failure = CompensationFailedException(lesson_id, payer_id, str(exc))
            self._record_failure(intent_id, attempt_number, failure)
            raise failure from exc

        prometheus_metrics.record_refund_outcome("refunded")
        self.log_operation(
            "lesson_refunded",
            lesson_id=lesson_id,
            payer_id=payer_id,
            amount=str(amount),
            new_balance=str(new_balance),
        )
        if attempt_number > 1:
            self._notify_refund_completed(lesson_id, amount, new_balance)
        return RefundOutcome(
            lesson_id=lesson_id,
            status=RefundStatus.REFUNDED,
            amount=amount,
            payer_id=payer_id,
            new_balance=new_balance,
            attempt_count=attempt_number,
        )

    def _notify_refund_completed(
        self, lesson_id: str, amount: Decimal, new_balance: Optional[Decimal]
    ) -> None:
        """The decline email said the refund was pending; follow up now it has landed."""
        def send() -> None:
            lesson = self.lesson_repository.get_by_id(lesson_id)
            if lesson is None:
                raise LessonNotFoundException(lesson_id)
            self.notifier.lesson_refund_completed(lesson, amount, new_balance)

        notify_safely(self.logger, EVENT_LESSON_REFUND_COMPLETED, lesson_id, send)

    def _record_failure(
        self, intent_id: str, attempt_number: int, failure: CompensationFailedException
    ) -> None:
        terminal = attempt_number >= MAX_REFUND_ATTEMPTS
        backoff = next_refund_backoff(attempt_number)
        with self.transaction():
            self.outbox_repository.mark_failed(
                intent_id,
                attempt_count=attempt_number,
                backoff_seconds=backoff,
                error=failure.message,
                terminal=terminal,
            )
        prometheus_metrics.record_refund_outcome("failed" if terminal else "retry_scheduled")
        log = self.logger.error if terminal else self.logger.warning
        log(
            "CompensationFailed: %s (attempt %s%s)",
            failure.message,
            attempt_number,
            ", giving up" if terminal else f", retry in {backoff}s",
            extra={
                "code": failure.code,
                "lesson_id": failure.details.get("lesson_id"),
                "payer_id": failure.details.get("payer_id"),
                "attempt": attempt_number,
            },
        )

    @BaseService.measure_operation("retry_pending_refunds")
    def retry_pending_refunds(self, limit: int = 100) -> Dict[str, int]:
        """
        Re-drive every due refund intent.

        Returns:
            Counts of intents ``refunded`` and ``failed`` in this pass
        """
        due = self.outbox_repository.fetch_pending(
            event_types=[EVENT_LESSON_REFUND_REQUESTED], limit=limit
        )
        lesson_ids = [intent.aggregate_id for intent in due]
        # Release row locks taken by the fetch before processing each intent
        self.db.commit()

        summary = {"processed": len(lesson_ids), "refunded": 0, "failed": 0}
        for lesson_id in lesson_ids:
            try:
                self.process_refund(lesson_id)
                summary["refunded"] += 1
            except CompensationFailedException:
                summary["failed"] += 1
        if lesson_ids:
            self.logger.info(
                "Refund retry pass: %s processed, %s refunded, %s failed",
                summary["processed"],
                summary["refunded"],
                summary["failed"],
            )
        return summary
