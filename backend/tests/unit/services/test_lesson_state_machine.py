"""
Unit tests for LessonStateMachine and the input normalizers.

No database: the state machine only decides whether a transition is legal
and which column values it writes.
"""

from datetime import datetime, timedelta, timezone

import pytest

from talbiyah.core.constants import MAX_DECLINE_REASON_LENGTH, MAX_SUGGESTED_TIMES
from talbiyah.core.exceptions import (
    InvalidStateTransitionException,
    MissingDeclineReasonException,
    ValidationException,
)
from talbiyah.models.lesson import ConfirmationStatus, LessonStatus
from talbiyah.services.lesson_state_machine import (
    LessonStateMachine,
    normalize_decline_reason,
    normalize_suggested_times,
    normalize_teacher_message,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

TARGETS = [
    ConfirmationStatus.ACKNOWLEDGED,
    ConfirmationStatus.DECLINED,
    ConfirmationStatus.AUTO_ACKNOWLEDGED,
]


@pytest.fixture
def machine() -> LessonStateMachine:
    return LessonStateMachine(confirmation_window_hours=24)


@pytest.mark.unit
class TestCanTransition:
    @pytest.mark.parametrize("target", TARGETS)
    def test_pending_booked_lesson_can_move_to_every_resolution(self, machine, target):
        assert machine.can_transition("pending", "booked", target) is True

    @pytest.mark.parametrize(
        "current", ["acknowledged", "declined", "auto_acknowledged"]
    )
    @pytest.mark.parametrize("target", TARGETS)
    def test_resolved_lessons_are_terminal(self, machine, current, target):
        assert machine.can_transition(current, "booked", target) is False

    @pytest.mark.parametrize("status", ["cancelled", "completed"])
    def test_pending_but_not_booked_is_rejected(self, machine, status):
        assert machine.can_transition("pending", status, ConfirmationStatus.ACKNOWLEDGED) is False

    def test_pending_is_never_a_target(self, machine):
        assert machine.can_transition("pending", "booked", ConfirmationStatus.PENDING) is False

    def test_unknown_confirmation_status_is_rejected(self, machine):
        assert machine.can_transition("bogus", "booked", ConfirmationStatus.ACKNOWLEDGED) is False
        assert machine.can_transition(None, "booked", ConfirmationStatus.ACKNOWLEDGED) is False


@pytest.mark.unit
class TestRejection:
    def test_already_resolved_message_names_current_state(self, machine):
        with pytest.raises(InvalidStateTransitionException) as exc_info:
            machine.ensure_can_transition(
                "L1", "acknowledged", "booked", ConfirmationStatus.DECLINED
            )

        exc = exc_info.value
        assert exc.code == "INVALID_STATE_TRANSITION"
        assert "cannot be declined" in exc.message
        assert "already acknowledged" in exc.message
        assert exc.details == {
            "lesson_id": "L1",
            "attempted": "declined",
            "confirmation_status": "acknowledged",
            "status": "booked",
        }

    def test_cancelled_lesson_message_names_lesson_status(self, machine):
        exc = machine.rejection("L2", "pending", "cancelled", ConfirmationStatus.ACKNOWLEDGED)

        assert "lesson is cancelled" in exc.message
        assert exc.to_http_exception().status_code == 409

    def test_allowed_transition_does_not_raise(self, machine):
        machine.ensure_can_transition("L3", "pending", "booked", ConfirmationStatus.ACKNOWLEDGED)


@pytest.mark.unit
class TestStaleness:
    def test_cutoff_is_window_before_now(self, machine):
        assert machine.stale_cutoff(NOW) == NOW - timedelta(hours=24)

    def test_naive_now_is_treated_as_utc(self, machine):
        naive = NOW.replace(tzinfo=None)
        assert machine.stale_cutoff(naive) == NOW - timedelta(hours=24)

    def test_exactly_at_window_is_not_stale(self, machine):
        assert machine.is_stale(NOW - timedelta(hours=24), NOW) is False

    def test_just_inside_window_is_not_stale(self, machine):
        assert machine.is_stale(NOW - timedelta(hours=23, minutes=59), NOW) is False

    def test_past_window_is_stale(self, machine):
        assert machine.is_stale(NOW - timedelta(hours=24, seconds=1), NOW) is True

    def test_missing_request_time_is_not_stale(self, machine):
        assert machine.is_stale(None, NOW) is False

    def test_window_is_configurable(self):
        short = LessonStateMachine(confirmation_window_hours=2)
        assert short.is_stale(NOW - timedelta(hours=3), NOW) is True


@pytest.mark.unit
class TestPlans:
    def test_acknowledge_plan(self, machine):
        plan = machine.plan_acknowledge(NOW, "  See you then  ")

        assert plan.target is ConfirmationStatus.ACKNOWLEDGED
        assert plan.values["confirmation_status"] == "acknowledged"
        assert plan.values["acknowledged_at"] == NOW
        assert plan.values["teacher_acknowledgment_message"] == "See you then"
        assert plan.values["auto_acknowledged"] is False
        assert "declined_at" not in plan.values
        assert "status" not in plan.values

    def test_acknowledge_plan_drops_blank_message(self, machine):
        plan = machine.plan_acknowledge(NOW, "   ")
        assert plan.values["teacher_acknowledgment_message"] is None

    def test_decline_plan_cancels_lesson(self, machine):
        plan = machine.plan_decline(NOW, "Travelling", ["2026-03-05T17:00:00+00:00"])

        assert plan.target is ConfirmationStatus.DECLINED
        assert plan.values["confirmation_status"] == "declined"
        assert plan.values["status"] == LessonStatus.CANCELLED.value
        assert plan.values["declined_at"] == NOW
        assert plan.values["cancelled_at"] == NOW
        assert plan.values["decline_reason"] == "Travelling"
        assert plan.values["cancellation_reason"] == "Travelling"
        assert plan.values["suggested_alternative_times"] == ["2026-03-05T17:00:00+00:00"]
        assert "acknowledged_at" not in plan.values

    def test_decline_plan_without_suggestions_stores_null(self, machine):
        plan = machine.plan_decline(NOW, "Ill", [])
        assert plan.values["suggested_alternative_times"] is None

    def test_auto_acknowledge_plan(self, machine):
        plan = machine.plan_auto_acknowledge(NOW)

        assert plan.target is ConfirmationStatus.AUTO_ACKNOWLEDGED
        assert plan.values["confirmation_status"] == "auto_acknowledged"
        assert plan.values["auto_acknowledged"] is True
        assert plan.values["acknowledged_at"] == NOW
        assert "teacher_acknowledgment_message" not in plan.values


@pytest.mark.unit
class TestNormalizers:
    @pytest.mark.parametrize("reason", [None, "", "   ", "\n\t"])
    def test_missing_reason(self, reason):
        with pytest.raises(MissingDeclineReasonException) as exc_info:
            normalize_decline_reason(reason, "L1")
        assert exc_info.value.code == "MISSING_DECLINE_REASON"
        assert exc_info.value.to_http_exception().status_code == 400

    def test_reason_is_stripped(self):
        assert normalize_decline_reason("  Unwell today ") == "Unwell today"

    def test_overlong_reason(self):
        with pytest.raises(ValidationException) as exc_info:
            normalize_decline_reason("x" * (MAX_DECLINE_REASON_LENGTH + 1))
        assert exc_info.value.code == "DECLINE_REASON_TOO_LONG"

    def test_message_none_passes_through(self):
        assert normalize_teacher_message(None) is None

    def test_overlong_message(self):
        with pytest.raises(ValidationException):
            normalize_teacher_message("x" * 5000)

    def test_no_suggested_times(self):
        assert normalize_suggested_times(None, NOW) == []
        assert normalize_suggested_times([], NOW) == []

    def test_suggested_times_sorted_deduplicated_utc(self):
        later = datetime(2026, 3, 6, 18, 0, tzinfo=timezone(timedelta(hours=3)))
        sooner = datetime(2026, 3, 4, 9, 0, tzinfo=timezone.utc)

        result = normalize_suggested_times([later, sooner, sooner], NOW)

        assert result == ["2026-03-04T09:00:00+00:00", "2026-03-06T15:00:00+00:00"]

    def test_naive_suggested_time_is_utc(self):
        result = normalize_suggested_times([datetime(2026, 3, 4, 9, 0)], NOW)
        assert result == ["2026-03-04T09:00:00+00:00"]

    @pytest.mark.parametrize("offset", [timedelta(0), -timedelta(minutes=1)])
    def test_past_or_present_suggestion_rejected(self, offset):
        with pytest.raises(ValidationException) as exc_info:
            normalize_suggested_times([NOW + timedelta(days=1), NOW + offset], NOW)
        assert exc_info.value.code == "INVALID_SUGGESTED_TIMES"
        assert len(exc_info.value.details["invalid_times"]) == 1

    def test_too_many_suggestions(self):
        times = [NOW + timedelta(hours=i + 1) for i in range(MAX_SUGGESTED_TIMES + 1)]
        with pytest.raises(ValidationException):
            normalize_suggested_times(times, NOW)
