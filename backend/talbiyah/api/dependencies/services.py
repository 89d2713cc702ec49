# backend/talbiyah/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Each factory builds a service on the request's session. Tests swap these out
through ``app.dependency_overrides``.
"""

import logging

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.auto_acknowledge_service import AutoAcknowledgeService
from ...services.credit_ledger_service import CreditLedgerService
from ...services.lesson_confirmation_service import LessonConfirmationService
from ...services.lesson_refund_service import LessonRefundService
from ...services.notification_service import NotificationService
from .database import get_db

logger = logging.getLogger(__name__)


def get_notification_service(db: Session = Depends(get_db)) -> NotificationService:
    """Outbox-backed notifier bound to the request session."""
    return NotificationService(db)


def get_refund_service(db: Session = Depends(get_db)) -> LessonRefundService:
    """Refund compensation service using the default credit ledger."""
    return LessonRefundService(db, credit_ledger=CreditLedgerService(db))


def get_lesson_confirmation_service(
    db: Session = Depends(get_db),
    notification_service: NotificationService = Depends(get_notification_service),
    refund_service: LessonRefundService = Depends(get_refund_service),
) -> LessonConfirmationService:
    """
    Get lesson confirmation service instance.

    Args:
        db: Database session
        notification_service: Notifier for learner-facing outcomes
        refund_service: Compensation for declined lessons

    Returns:
        LessonConfirmationService instance
    """
    return LessonConfirmationService(
        db, notifier=notification_service, refund_service=refund_service
    )


def get_auto_acknowledge_service(
    db: Session = Depends(get_db),
    notification_service: NotificationService = Depends(get_notification_service),
) -> AutoAcknowledgeService:
    """Get the auto-acknowledge sweep service."""
    return AutoAcknowledgeService(db, notifier=notification_service)
