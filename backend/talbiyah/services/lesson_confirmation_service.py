# backend/talbiyah/services/lesson_confirmation_service.py
"""
Lesson Confirmation Service for the Talbiyah platform.

Teacher-facing operations on a booked lesson that is awaiting confirmation:

- acknowledge: confirm the lesson, optionally with a note for the learner
- decline: refuse with a reason, optionally suggesting other times; the
  payer is refunded and the lesson is cancelled
- dismiss: clear a pending lesson whose start time has already passed
- pending list: what a teacher still has to respond to

Every transition is a single conditional update guarded on
``confirmation_status = 'pending' AND status = 'booked'``. If another actor
resolved the lesson first the update affects no row and the caller gets
``InvalidStateTransitionException`` without any write taking place.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import EVENT_LESSON_ACKNOWLEDGED, EVENT_LESSON_DECLINED
from ..core.exceptions import BusinessRuleException, LessonNotFoundException
from ..core.timezone_utils import ensure_utc, hours_between, utc_now
from ..models.lesson import ConfirmationStatus, Lesson
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..repositories.lesson_repository import LessonRepository
from .base import BaseService
from .lesson_refund_service import LessonRefundService, RefundOutcome, RefundStatus
from .lesson_state_machine import (
    LessonStateMachine,
    TransitionPlan,
    normalize_decline_reason,
    normalize_suggested_times,
)
from .notification_service import LessonNotifier, NotificationService, notify_safely

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeclineResult:
    """Declined lesson plus what happened to its refund."""

    lesson: Lesson
    refund: RefundOutcome


@dataclass(frozen=True)
class PendingLessonView:
    """A lesson still waiting for the teacher's response."""

    lesson_id: str
    student_name: Optional[str]
    subject_name: Optional[str]
    scheduled_time: datetime
    duration_minutes: int
    confirmation_requested_at: datetime
    respond_by: datetime
    hours_until_lesson: float
    requested_hours_ago: float
    is_urgent: bool
    is_overdue: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lesson_id": self.lesson_id,
            "student_name": self.student_name,
            "subject_name": self.subject_name,
            "scheduled_time": self.scheduled_time,
            "duration_minutes": self.duration_minutes,
            "confirmation_requested_at": self.confirmation_requested_at,
            "respond_by": self.respond_by,
            "hours_until_lesson": self.hours_until_lesson,
            "requested_hours_ago": self.requested_hours_ago,
            "is_urgent": self.is_urgent,
            "is_overdue": self.is_overdue,
        }


class LessonConfirmationService(BaseService):
    """Teacher acknowledgment, decline and dismissal of pending lessons."""

    def __init__(
        self,
        db: Session,
        notifier: Optional[LessonNotifier] = None,
        refund_service: Optional[LessonRefundService] = None,
        lesson_repository: Optional[LessonRepository] = None,
        state_machine: Optional[LessonStateMachine] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        super().__init__(db)
        self.repository = lesson_repository or RepositoryFactory.create_lesson_repository(db)
        self.notifier: LessonNotifier = notifier or NotificationService(db)
        self.refund_service = refund_service or LessonRefundService(db)
        self.state_machine = state_machine or LessonStateMachine(
            settings.confirmation_window_hours
        )
        self.clock = clock

    def _load_lesson(self, lesson_id: str) -> Lesson:
        lesson = self.repository.get_by_id(lesson_id)
        if lesson is None:
            raise LessonNotFoundException(lesson_id)
        return lesson

    def _apply(self, lesson: Lesson, plan: TransitionPlan, extra: Optional[Callable[[], Any]] = None) -> None:
        """
        Run the guarded update (and any same-transaction work) for ``plan``.

        Raises:
            InvalidStateTransitionException: The lesson left ``pending`` before the update ran
        """
        with self.transaction():
            updated = self.repository.transition_from_pending(lesson.id, plan.values)
            if not updated:
                current = self.repository.get_status(lesson.id) or {}
                prometheus_metrics.record_confirmation_transition(plan.target.value, applied=False)
                raise self.state_machine.rejection(
                    lesson.id,
                    current.get("confirmation_status"),
                    current.get("status"),
                    plan.target,
                )
            if extra is not None:
                extra()
        self.repository.refresh(lesson)
        prometheus_metrics.record_confirmation_transition(plan.target.value, applied=True)

    @BaseService.measure_operation("acknowledge_lesson")
    def acknowledge_lesson(self, lesson_id: str, message: Optional[str] = None) -> Lesson:
        """
        Confirm a pending lesson on behalf of its teacher.

        Args:
            lesson_id: Lesson to confirm
            message: Optional note for the learner (blank notes are dropped)

        Returns:
            The acknowledged lesson

        Raises:
            LessonNotFoundException: Unknown lesson id
            InvalidStateTransitionException: Lesson is not pending or not booked
        """
        lesson = self._load_lesson(lesson_id)
        self.state_machine.ensure_can_transition(
            lesson.id, lesson.confirmation_status, lesson.status, ConfirmationStatus.ACKNOWLEDGED
        )
        plan = self.state_machine.plan_acknowledge(self.clock(), message)
        self._apply(lesson, plan)

        self.log_operation("lesson_acknowledged", lesson_id=lesson.id, teacher_id=lesson.teacher_id)
        notify_safely(
            self.logger,
            EVENT_LESSON_ACKNOWLEDGED,
            lesson.id,
            lambda: self.notifier.lesson_acknowledged(lesson),
        )
        return lesson

    @BaseService.measure_operation("decline_lesson")
    def decline_lesson(
        self,
        lesson_id: str,
        decline_reason: Optional[str],
        suggested_times: Optional[List[datetime]] = None,
    ) -> DeclineResult:
        """
        Decline a pending lesson, cancel it and refund the payer.

        The state change and the refund intent commit together. The refund
        itself runs afterwards; if it fails the decline stands and the intent
        is retried by the refund task.

        Raises:
            MissingDeclineReasonException: Reason is empty after stripping
            ValidationException: A suggested time is not in the future
            LessonNotFoundException: Unknown lesson id
            InvalidStateTransitionException: Lesson is not pending or not booked
        """
        reason = normalize_decline_reason(decline_reason, lesson_id)
        now = self.clock()
        suggestions = normalize_suggested_times(suggested_times, now)

        lesson = self._load_lesson(lesson_id)
        self.state_machine.ensure_can_transition(
            lesson.id, lesson.confirmation_status, lesson.status, ConfirmationStatus.DECLINED
        )
        amount = self.refund_service.refund_amount_for(lesson)
        plan = self.state_machine.plan_decline(now, reason, suggestions)
        self._apply(
            lesson, plan, extra=lambda: self.refund_service.record_refund_intent(lesson, amount)
        )
        self.log_operation(
            "lesson_declined",
            lesson_id=lesson.id,
            teacher_id=lesson.teacher_id,
            suggested_times=len(suggestions),
        )

        refund = self._attempt_refund(lesson, amount)
        notify_safely(
            self.logger,
            EVENT_LESSON_DECLINED,
            lesson.id,
            lambda: self.notifier.lesson_declined(lesson, refund.status, refund.new_balance),
        )
        return DeclineResult(lesson=lesson, refund=refund)

    def _attempt_refund(self, lesson: Lesson, amount: Decimal) -> RefundOutcome:
        try:
            return self.refund_service.process_refund(lesson.id)
        except Exception as exc:
            # process_refund already logged CompensationFailed and scheduled the retry
            self.logger.warning(
                "Refund for declined lesson %s deferred: %s",
                lesson.id,
                exc,
                extra={"lesson_id": lesson.id, "payer_id": lesson.payer_id},
            )
            return RefundOutcome(
                lesson_id=lesson.id,
                status=RefundStatus.PENDING,
                amount=amount,
                payer_id=lesson.payer_id,
            )

    @BaseService.measure_operation("dismiss_past_lesson")
    def dismiss_past_lesson(self, lesson_id: str) -> Lesson:
        """
        Clear a pending lesson whose start time has passed.

        The lesson is marked ``auto_acknowledged`` and nobody is notified.

        Raises:
            LessonNotFoundException: Unknown lesson id
            InvalidStateTransitionException: Lesson is not pending or not booked
            BusinessRuleException: The lesson has not started yet
        """
        lesson = self._load_lesson(lesson_id)
        self.state_machine.ensure_can_transition(
            lesson.id,
            lesson.confirmation_status,
            lesson.status,
            ConfirmationStatus.AUTO_ACKNOWLEDGED,
        )
        now = self.clock()
        scheduled = ensure_utc(lesson.scheduled_time)
        if scheduled is None or scheduled > ensure_utc(now):  # type: ignore[operator]
            raise BusinessRuleException(
                f"Lesson {lesson.id} has not taken place yet; acknowledge or decline it instead",
                code="LESSON_NOT_PAST",
                details={"lesson_id": lesson.id},
            )
        self._apply(lesson, self.state_machine.plan_auto_acknowledge(now))
        self.log_operation("lesson_dismissed", lesson_id=lesson.id, teacher_id=lesson.teacher_id)
        return lesson

    @BaseService.measure_operation("get_teacher_pending_lessons")
    def get_teacher_pending_lessons(self, teacher_id: str) -> List[PendingLessonView]:
        """Pending lessons of a teacher, soonest first, with urgency flags."""
        now = self.clock()
        window = timedelta(hours=settings.confirmation_window_hours)
        views: List[PendingLessonView] = []
        for lesson in self.repository.get_pending_for_teacher(teacher_id):
            scheduled = ensure_utc(lesson.scheduled_time)
            requested = ensure_utc(lesson.confirmation_requested_at)
            assert scheduled is not None and requested is not None
            hours_until = hours_between(now, scheduled)
            hours_ago = hours_between(requested, now)
            views.append(
                PendingLessonView(
                    lesson_id=lesson.id,
                    student_name=lesson.student_name,
                    subject_name=lesson.subject_name,
                    scheduled_time=scheduled,
                    duration_minutes=lesson.duration_minutes,
                    confirmation_requested_at=requested,
                    respond_by=requested + window,
                    hours_until_lesson=round(hours_until, 2),
                    requested_hours_ago=round(hours_ago, 2),
                    is_urgent=hours_ago > settings.urgent_after_hours,
                    is_overdue=hours_until < 0,
                )
            )
        return views
