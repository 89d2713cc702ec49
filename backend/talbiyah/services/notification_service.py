# backend/talbiyah/services/notification_service.py
"""
Learner notifications for confirmation outcomes.

Notifications are never sent inline. ``NotificationService`` writes an outbox
row per event; the Celery ``outbox.deliver_event`` task renders and emails it.
Callers treat notification as fire-and-forget through ``notify_safely``: a
failure is logged as ``NotificationFailed`` and never undoes a transition.
"""

from __future__ import annotations

from decimal import Decimal
import logging
from typing import Any, Callable, Dict, Optional, Protocol

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import (
    EVENT_LESSON_ACKNOWLEDGED,
    EVENT_LESSON_AUTO_ACKNOWLEDGED,
    EVENT_LESSON_DECLINED,
    EVENT_LESSON_REFUND_COMPLETED,
)
from ..core.exceptions import NotificationFailedException
from ..core.timezone_utils import ensure_utc, format_lesson_time, parse_iso_utc
from ..models.lesson import Lesson
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


class LessonNotifier(Protocol):
    """Dispatcher for learner-facing confirmation notifications."""

    def lesson_acknowledged(self, lesson: Lesson) -> None:
        ...

    def lesson_declined(
        self, lesson: Lesson, refund_status: str, new_balance: Optional[Decimal] = None
    ) -> None:
        ...

    def lesson_auto_acknowledged(self, lesson: Lesson) -> None:
        ...

    def lesson_refund_completed(
        self, lesson: Lesson, amount: Decimal, new_balance: Optional[Decimal] = None
    ) -> None:
        ...


def notify_safely(
    log: logging.Logger, event_type: str, lesson_id: str, send: Callable[[], None]
) -> bool:
    """
    Run a notifier call without letting its failure propagate.

    Returns:
        True when the notification was handed off, False when it failed
    """
    try:
        send()
        return True
    except Exception as exc:
        failure = NotificationFailedException(event_type, lesson_id, str(exc))
        log.warning(
            "NotificationFailed: %s",
            failure.message,
            extra={"code": failure.code, "event_type": event_type, "lesson_id": lesson_id},
        )
        return False


class NotificationService(BaseService):
    """Outbox-backed ``LessonNotifier``."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.event_outbox_repository = RepositoryFactory.create_event_outbox_repository(db)

    @staticmethod
    def notification_key(lesson_id: str, event_type: str) -> str:
        return f"lesson:{lesson_id}:{event_type}"

    def _base_payload(self, lesson: Lesson) -> Dict[str, Any]:
        learner = lesson.learner
        parent = learner.parent if learner is not None else None
        scheduled = ensure_utc(lesson.scheduled_time)
        return {
            "lesson_id": lesson.id,
            "recipient_email": parent.email if parent is not None else None,
            "recipient_name": parent.first_name if parent is not None else None,
            "student_name": lesson.student_name,
            "teacher_name": lesson.teacher_name,
            "subject_name": lesson.subject_name,
            "scheduled_time": scheduled.isoformat() if scheduled else None,
            "scheduled_time_display": (
                format_lesson_time(scheduled, settings.display_timezone) if scheduled else None
            ),
            "duration_minutes": lesson.duration_minutes,
        }

    def _enqueue(self, lesson: Lesson, event_type: str, extra: Dict[str, Any]) -> None:
        payload = self._base_payload(lesson)
        payload.update(extra)
        if not payload.get("recipient_email"):
            raise NotificationFailedException(event_type, lesson.id, "learner has no payer email")
        with self.transaction():
            self.event_outbox_repository.enqueue(
                event_type=event_type,
                aggregate_id=lesson.id,
                idempotency_key=self.notification_key(lesson.id, event_type),
                payload=payload,
            )
        self.logger.debug("Queued %s notification for lesson %s", event_type, lesson.id)

    @BaseService.measure_operation("notify_lesson_acknowledged")
    def lesson_acknowledged(self, lesson: Lesson) -> None:
        self._enqueue(
            lesson,
            EVENT_LESSON_ACKNOWLEDGED,
            {
                "teacher_message": lesson.teacher_acknowledgment_message,
                "room_opens_hours_before": settings.room_opens_hours_before,
            },
        )

    @BaseService.measure_operation("notify_lesson_declined")
    def lesson_declined(
        self, lesson: Lesson, refund_status: str, new_balance: Optional[Decimal] = None
    ) -> None:
        suggested = [
            format_lesson_time(parse_iso_utc(value), settings.display_timezone)
            for value in (lesson.suggested_alternative_times or [])
        ]
        self._enqueue(
            lesson,
            EVENT_LESSON_DECLINED,
            {
                "decline_reason": lesson.decline_reason,
                "suggested_times": list(lesson.suggested_alternative_times or []),
                "suggested_times_display": suggested,
                "refund_status": refund_status,
                "new_balance": str(new_balance) if new_balance is not None else None,
            },
        )

    @BaseService.measure_operation("notify_lesson_auto_acknowledged")
    def lesson_auto_acknowledged(self, lesson: Lesson) -> None:
        self._enqueue(
            lesson,
            EVENT_LESSON_AUTO_ACKNOWLEDGED,
            {"room_opens_hours_before": settings.room_opens_hours_before},
        )

    @BaseService.measure_operation("notify_lesson_refund_completed")
    def lesson_refund_completed(
        self, lesson: Lesson, amount: Decimal, new_balance: Optional[Decimal] = None
    ) -> None:
        """Tell the payer a refund that was pending at decline time has landed."""
        self._enqueue(
            lesson,
            EVENT_LESSON_REFUND_COMPLETED,
            {
                "refund_status": "refunded",
                "amount": str(amount),
                "new_balance": str(new_balance) if new_balance is not None else None,
            },
        )
