"""
Unit tests for LessonConfirmationService with every collaborator mocked.

The repository's ``transition_from_pending`` return value stands in for the
guarded UPDATE: 1 means this caller won, 0 means somebody else resolved the
lesson first.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from talbiyah.core.exceptions import (
    BusinessRuleException,
    InvalidStateTransitionException,
    LessonNotFoundException,
    MissingDeclineReasonException,
    ValidationException,
)
from talbiyah.services.lesson_confirmation_service import LessonConfirmationService
from talbiyah.services.lesson_refund_service import RefundOutcome, RefundStatus

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
LESSON_ID = "01HF4G12ABCDEF3456789XYZAB"


def _lesson(**overrides):
    lesson = MagicMock()
    lesson.id = LESSON_ID
    lesson.teacher_id = "01HF4G12ABCDEF3456789TEACH"
    lesson.payer_id = "01HF4G12ABCDEF3456789PAYER"
    lesson.status = "booked"
    lesson.confirmation_status = "pending"
    lesson.scheduled_time = NOW + timedelta(days=1)
    lesson.confirmation_requested_at = NOW - timedelta(hours=2)
    lesson.credits_paid = None
    for key, value in overrides.items():
        setattr(lesson, key, value)
    return lesson


@pytest.fixture
def lesson():
    return _lesson()


@pytest.fixture
def repository(lesson):
    repo = MagicMock()
    repo.get_by_id.return_value = lesson
    repo.transition_from_pending.return_value = 1
    return repo


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def refund_service(lesson):
    refunds = MagicMock()
    refunds.refund_amount_for.return_value = Decimal("1")
    refunds.process_refund.return_value = RefundOutcome(
        lesson_id=lesson.id,
        status=RefundStatus.REFUNDED,
        amount=Decimal("1"),
        payer_id=lesson.payer_id,
        new_balance=Decimal("11"),
        attempt_count=1,
    )
    return refunds


@pytest.fixture
def service(repository, notifier, refund_service):
    return LessonConfirmationService(
        MagicMock(),
        notifier=notifier,
        refund_service=refund_service,
        lesson_repository=repository,
        clock=lambda: NOW,
    )


@pytest.mark.unit
class TestAcknowledgeLesson:
    def test_acknowledge_runs_guarded_update_and_notifies(self, service, repository, notifier, lesson):
        result = service.acknowledge_lesson(LESSON_ID, "  Looking forward to it ")

        assert result is lesson
        lesson_id, values = repository.transition_from_pending.call_args.args
        assert lesson_id == LESSON_ID
        assert values["confirmation_status"] == "acknowledged"
        assert values["teacher_acknowledgment_message"] == "Looking forward to it"
        assert values["acknowledged_at"] == NOW
        service.db.commit.assert_called()
        repository.refresh.assert_called_once_with(lesson)
        notifier.lesson_acknowledged.assert_called_once_with(lesson)

    def test_unknown_lesson(self, service, repository):
        repository.get_by_id.return_value = None

        with pytest.raises(LessonNotFoundException):
            service.acknowledge_lesson(LESSON_ID)

        repository.transition_from_pending.assert_not_called()

    def test_already_resolved_lesson_is_rejected_before_update(self, service, repository, notifier, lesson):
        lesson.confirmation_status = "declined"
        lesson.status = "cancelled"

        with pytest.raises(InvalidStateTransitionException):
            service.acknowledge_lesson(LESSON_ID)

        repository.transition_from_pending.assert_not_called()
        notifier.lesson_acknowledged.assert_not_called()

    def test_lost_race_raises_with_current_state(self, service, repository, notifier):
        repository.transition_from_pending.return_value = 0
        repository.get_status.return_value = {
            "confirmation_status": "auto_acknowledged",
            "status": "booked",
        }

        with pytest.raises(InvalidStateTransitionException) as exc_info:
            service.acknowledge_lesson(LESSON_ID)

        assert exc_info.value.details["confirmation_status"] == "auto_acknowledged"
        service.db.rollback.assert_called()
        repository.refresh.assert_not_called()
        notifier.lesson_acknowledged.assert_not_called()

    def test_notification_failure_does_not_undo_acknowledgment(self, service, notifier, lesson):
        notifier.lesson_acknowledged.side_effect = RuntimeError("smtp down")

        with patch.object(service.logger, "warning") as warning:
            result = service.acknowledge_lesson(LESSON_ID)

        assert result is lesson
        assert "NotificationFailed" in warning.call_args.args[0]


@pytest.mark.unit
class TestDeclineLesson:
    def test_decline_records_refund_intent_inside_transition(
        self, service, repository, refund_service, notifier, lesson
    ):
        order = []
        repository.transition_from_pending.side_effect = lambda *a: order.append("update") or 1
        refund_service.record_refund_intent.side_effect = lambda *a: order.append("intent")
        service.db.commit.side_effect = lambda: order.append("commit")

        result = service.decline_lesson(LESSON_ID, " Family emergency ")

        assert order[:3] == ["update", "intent", "commit"]
        refund_service.record_refund_intent.assert_called_once_with(lesson, Decimal("1"))
        refund_service.process_refund.assert_called_once_with(LESSON_ID)
        assert result.lesson is lesson
        assert result.refund.status == RefundStatus.REFUNDED
        assert result.refund.new_balance == Decimal("11")
        _, values = repository.transition_from_pending.call_args.args
        assert values["decline_reason"] == "Family emergency"
        assert values["status"] == "cancelled"
        notifier.lesson_declined.assert_called_once_with(lesson, "refunded", Decimal("11"))

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_missing_reason_changes_nothing(self, service, repository, refund_service, reason):
        with pytest.raises(MissingDeclineReasonException):
            service.decline_lesson(LESSON_ID, reason)

        repository.get_by_id.assert_not_called()
        repository.transition_from_pending.assert_not_called()
        refund_service.record_refund_intent.assert_not_called()

    def test_past_suggested_time_is_rejected(self, service, repository):
        with pytest.raises(ValidationException):
            service.decline_lesson(LESSON_ID, "Busy", [NOW - timedelta(hours=1)])

        repository.transition_from_pending.assert_not_called()

    def test_suggested_times_stored_as_iso_strings(self, service, repository):
        slot = NOW + timedelta(days=3)

        service.decline_lesson(LESSON_ID, "Busy", [slot])

        _, values = repository.transition_from_pending.call_args.args
        assert values["suggested_alternative_times"] == [slot.isoformat()]

    def test_refund_failure_still_declines(self, service, refund_service, notifier, lesson):
        refund_service.process_refund.side_effect = RuntimeError("ledger unavailable")

        result = service.decline_lesson(LESSON_ID, "Unwell")

        assert result.refund.status == RefundStatus.PENDING
        assert result.refund.amount == Decimal("1")
        assert result.refund.new_balance is None
        notifier.lesson_declined.assert_called_once_with(lesson, "pending", None)

    def test_lost_race_records_no_refund(self, service, repository, refund_service):
        repository.transition_from_pending.return_value = 0
        repository.get_status.return_value = {"confirmation_status": "acknowledged", "status": "booked"}

        with pytest.raises(InvalidStateTransitionException):
            service.decline_lesson(LESSON_ID, "Unwell")

        refund_service.record_refund_intent.assert_not_called()
        refund_service.process_refund.assert_not_called()

    def test_cancelled_lesson_cannot_be_declined(self, service, repository, lesson):
        lesson.status = "cancelled"

        with pytest.raises(InvalidStateTransitionException):
            service.decline_lesson(LESSON_ID, "Unwell")

        repository.transition_from_pending.assert_not_called()


@pytest.mark.unit
class TestDismissPastLesson:
    def test_dismiss_past_lesson_without_notification(self, service, repository, notifier, lesson):
        lesson.scheduled_time = NOW - timedelta(hours=1)

        service.dismiss_past_lesson(LESSON_ID)

        _, values = repository.transition_from_pending.call_args.args
        assert values["confirmation_status"] == "auto_acknowledged"
        assert values["auto_acknowledged"] is True
        notifier.lesson_auto_acknowledged.assert_not_called()
        notifier.lesson_acknowledged.assert_not_called()

    def test_future_lesson_cannot_be_dismissed(self, service, repository, lesson):
        lesson.scheduled_time = NOW + timedelta(minutes=5)

        with pytest.raises(BusinessRuleException) as exc_info:
            service.dismiss_past_lesson(LESSON_ID)

        assert exc_info.value.code == "LESSON_NOT_PAST"
        repository.transition_from_pending.assert_not_called()

    def test_naive_scheduled_time_is_compared_as_utc(self, service, repository, lesson):
        lesson.scheduled_time = (NOW - timedelta(minutes=1)).replace(tzinfo=None)

        service.dismiss_past_lesson(LESSON_ID)

        repository.transition_from_pending.assert_called_once()


@pytest.mark.unit
class TestPendingLessons:
    def test_urgency_and_overdue_flags(self, service, repository):
        fresh = _lesson(
            id="A",
            student_name="Aisha",
            subject_name="Quran",
            duration_minutes=30,
            scheduled_time=NOW + timedelta(hours=30),
            confirmation_requested_at=NOW - timedelta(hours=2),
        )
        urgent = _lesson(
            id="B",
            student_name="Bilal",
            subject_name="Arabic",
            duration_minutes=60,
            scheduled_time=NOW + timedelta(hours=5),
            confirmation_requested_at=NOW - timedelta(hours=21),
        )
        overdue = _lesson(
            id="C",
            student_name="Khadija",
            subject_name="Tajweed",
            duration_minutes=45,
            scheduled_time=NOW - timedelta(minutes=30),
            confirmation_requested_at=(NOW - timedelta(hours=20)).replace(tzinfo=None),
        )
        repository.get_pending_for_teacher.return_value = [overdue, urgent, fresh]

        views = service.get_teacher_pending_lessons("T1")

        repository.get_pending_for_teacher.assert_called_once_with("T1")
        by_id = {view.lesson_id: view for view in views}
        assert [view.lesson_id for view in views] == ["C", "B", "A"]

        assert by_id["A"].is_urgent is False
        assert by_id["A"].is_overdue is False
        assert by_id["A"].hours_until_lesson == 30.0
        assert by_id["A"].respond_by == NOW + timedelta(hours=22)

        assert by_id["B"].is_urgent is True
        assert by_id["B"].requested_hours_ago == 21.0

        assert by_id["C"].is_overdue is True
        assert by_id["C"].is_urgent is False
        assert by_id["C"].hours_until_lesson == -0.5
        assert by_id["C"].confirmation_requested_at.tzinfo is not None

    def test_empty_list(self, service, repository):
        repository.get_pending_for_teacher.return_value = []
        assert service.get_teacher_pending_lessons("T1") == []

    def test_view_to_dict_has_every_field(self, service, repository, lesson):
        lesson.student_name = "Aisha"
        lesson.subject_name = "Quran"
        lesson.duration_minutes = 45
        repository.get_pending_for_teacher.return_value = [lesson]

        payload = service.get_teacher_pending_lessons("T1")[0].to_dict()

        assert set(payload) == {
            "lesson_id",
            "student_name",
            "subject_name",
            "scheduled_time",
            "duration_minutes",
            "confirmation_requested_at",
            "respond_by",
            "hours_until_lesson",
            "requested_hours_ago",
            "is_urgent",
            "is_overdue",
        }
