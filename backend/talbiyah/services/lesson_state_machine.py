"""Confirmation state machine for booked lessons."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from ..core.constants import (
    MAX_DECLINE_REASON_LENGTH,
    MAX_SUGGESTED_TIMES,
    MAX_TEACHER_MESSAGE_LENGTH,
)
from ..core.exceptions import (
    InvalidStateTransitionException,
    MissingDeclineReasonException,
    ValidationException,
)
from ..core.timezone_utils import ensure_utc
from ..models.lesson import ConfirmationStatus, LessonStatus

ALLOWED_TRANSITIONS: dict[ConfirmationStatus, frozenset[ConfirmationStatus]] = {
    ConfirmationStatus.PENDING: frozenset(
        {
            ConfirmationStatus.ACKNOWLEDGED,
            ConfirmationStatus.DECLINED,
            ConfirmationStatus.AUTO_ACKNOWLEDGED,
        }
    ),
    ConfirmationStatus.ACKNOWLEDGED: frozenset(),
    ConfirmationStatus.DECLINED: frozenset(),
    ConfirmationStatus.AUTO_ACKNOWLEDGED: frozenset(),
}

_ATTEMPT_LABELS = {
    ConfirmationStatus.ACKNOWLEDGED: "acknowledged",
    ConfirmationStatus.DECLINED: "declined",
    ConfirmationStatus.AUTO_ACKNOWLEDGED: "auto-acknowledged",
}


@dataclass(frozen=True)
class TransitionPlan:
    """Column values a transition out of ``pending`` writes."""

    target: ConfirmationStatus
    values: dict[str, Any] = field(default_factory=dict)


class LessonStateMachine:
    """Guards and column values for every confirmation transition."""

    def __init__(self, confirmation_window_hours: int = 24):
        self.confirmation_window = timedelta(hours=confirmation_window_hours)

    @staticmethod
    def can_transition(
        confirmation_status: Optional[str],
        status: Optional[str],
        target: ConfirmationStatus,
    ) -> bool:
        if status != LessonStatus.BOOKED.value:
            return False
        try:
            current = ConfirmationStatus(confirmation_status)
        except ValueError:
            return False
        return target in ALLOWED_TRANSITIONS[current]

    def ensure_can_transition(
        self,
        lesson_id: str,
        confirmation_status: Optional[str],
        status: Optional[str],
        target: ConfirmationStatus,
    ) -> None:
        """Raise ``InvalidStateTransitionException`` unless the lesson may move to ``target``."""
        if not self.can_transition(confirmation_status, status, target):
            raise self.rejection(lesson_id, confirmation_status, status, target)

    @staticmethod
    def rejection(
        lesson_id: str,
        confirmation_status: Optional[str],
        status: Optional[str],
        target: ConfirmationStatus,
    ) -> InvalidStateTransitionException:
        attempted = _ATTEMPT_LABELS[target]
        if status is not None and status != LessonStatus.BOOKED.value:
            message = f"Lesson {lesson_id} cannot be {attempted}: lesson is {status}"
        else:
            message = (
                f"Lesson {lesson_id} cannot be {attempted}: "
                f"confirmation is already {confirmation_status}"
            )
        return InvalidStateTransitionException(
            lesson_id,
            attempted=attempted,
            confirmation_status=confirmation_status,
            status=status,
            message=message,
        )

    def stale_cutoff(self, now: datetime) -> datetime:
        """Lessons requested strictly before this instant are overdue for a response."""
        return ensure_utc(now) - self.confirmation_window  # type: ignore[operator]

    def is_stale(self, confirmation_requested_at: Optional[datetime], now: datetime) -> bool:
        requested = ensure_utc(confirmation_requested_at)
        if requested is None:
            return False
        return requested < self.stale_cutoff(now)

    # ------------------------------------------------------------------ plans
    def plan_acknowledge(self, now: datetime, message: Optional[str] = None) -> TransitionPlan:
        return TransitionPlan(
            target=ConfirmationStatus.ACKNOWLEDGED,
            values={
                "confirmation_status": ConfirmationStatus.ACKNOWLEDGED.value,
                "acknowledged_at": now,
                "teacher_acknowledgment_message": normalize_teacher_message(message),
                "auto_acknowledged": False,
                "updated_at": now,
            },
        )

    def plan_decline(
        self,
        now: datetime,
        reason: str,
        suggested_times: Optional[list[str]] = None,
    ) -> TransitionPlan:
        return TransitionPlan(
            target=ConfirmationStatus.DECLINED,
            values={
                "confirmation_status": ConfirmationStatus.DECLINED.value,
                "declined_at": now,
                "decline_reason": reason,
                "suggested_alternative_times": suggested_times or None,
                "status": LessonStatus.CANCELLED.value,
                "cancelled_at": now,
                "cancellation_reason": reason,
                "updated_at": now,
            },
        )

    def plan_auto_acknowledge(self, now: datetime) -> TransitionPlan:
        return TransitionPlan(
            target=ConfirmationStatus.AUTO_ACKNOWLEDGED,
            values={
                "confirmation_status": ConfirmationStatus.AUTO_ACKNOWLEDGED.value,
                "acknowledged_at": now,
                "auto_acknowledged": True,
                "updated_at": now,
            },
        )


def normalize_teacher_message(message: Optional[str]) -> Optional[str]:
    """Strip the optional note; blank notes are stored as ``None``."""
    if message is None:
        return None
    stripped = message.strip()
    if not stripped:
        return None
    if len(stripped) > MAX_TEACHER_MESSAGE_LENGTH:
        raise ValidationException(
            f"Message must be at most {MAX_TEACHER_MESSAGE_LENGTH} characters",
            code="MESSAGE_TOO_LONG",
        )
    return stripped


def normalize_decline_reason(reason: Optional[str], lesson_id: Optional[str] = None) -> str:
    """Return the stripped reason or raise ``MissingDeclineReasonException``."""
    stripped = (reason or "").strip()
    if not stripped:
        raise MissingDeclineReasonException(lesson_id)
    if len(stripped) > MAX_DECLINE_REASON_LENGTH:
        raise ValidationException(
            f"Decline reason must be at most {MAX_DECLINE_REASON_LENGTH} characters",
            code="DECLINE_REASON_TOO_LONG",
            details={"lesson_id": lesson_id} if lesson_id else {},
        )
    return stripped


def normalize_suggested_times(
    suggested_times: Optional[Iterable[datetime]], now: datetime
) -> list[str]:
    """
    Validate alternative slots offered on decline.

    Every slot must lie in the future. Duplicates are dropped and the result is
    returned as sorted ISO-8601 UTC strings.
    """
    if not suggested_times:
        return []
    current = ensure_utc(now)
    normalized = sorted({ensure_utc(value) for value in suggested_times})  # type: ignore[type-var]
    if len(normalized) > MAX_SUGGESTED_TIMES:
        raise ValidationException(
            f"At most {MAX_SUGGESTED_TIMES} alternative times may be suggested",
            code="INVALID_SUGGESTED_TIMES",
        )
    past = [value for value in normalized if value <= current]  # type: ignore[operator]
    if past:
        raise ValidationException(
            "Suggested alternative times must be in the future",
            code="INVALID_SUGGESTED_TIMES",
            details={"invalid_times": [value.isoformat() for value in past]},  # type: ignore[union-attr]
        )
    return [value.isoformat() for value in normalized]  # type: ignore[union-attr]
