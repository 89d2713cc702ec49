"""Integration tests for the periodic confirmation tasks (run eagerly under pytest)."""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from talbiyah.core.timezone_utils import utc_now
from talbiyah.models import EventOutbox, Lesson
from talbiyah.services.credit_ledger_service import CreditLedgerService
from talbiyah.services.lesson_refund_service import LessonRefundService
from talbiyah.tasks.confirmation_tasks import auto_acknowledge_stale, retry_pending_refunds


@pytest.mark.integration
class TestAutoAcknowledgeTask:
    def test_task_sweeps_stale_lessons(self, db, make_lesson):
        now = utc_now()
        stale = make_lesson(
            requested_at=now - timedelta(hours=25), scheduled_time=now + timedelta(hours=8)
        )
        fresh = make_lesson(
            requested_at=now - timedelta(hours=1), scheduled_time=now + timedelta(days=2)
        )

        result = auto_acknowledge_stale.delay().get()

        assert result["auto_acknowledged_count"] == 1
        assert result["lessons"][0]["lesson_id"] == stale.id
        db.expire_all()
        assert db.get(Lesson, stale.id).confirmation_status == "auto_acknowledged"
        assert db.get(Lesson, fresh.id).confirmation_status == "pending"

    def test_task_called_directly_twice(self, db, make_lesson):
        make_lesson(requested_at=utc_now() - timedelta(days=2))

        assert auto_acknowledge_stale()["auto_acknowledged_count"] == 1
        assert auto_acknowledge_stale()["auto_acknowledged_count"] == 0


@pytest.mark.integration
class TestRetryPendingRefundsTask:
    def test_task_applies_refund_intents(self, db, pending_lesson, parent, parent_credits):
        LessonRefundService(db).record_refund_intent(pending_lesson, Decimal("1"))
        db.commit()

        summary = retry_pending_refunds()

        assert summary == {"processed": 1, "refunded": 1, "failed": 0}
        db.expire_all()
        assert CreditLedgerService(db).get_balance(parent.id) == Decimal("11")
        intent = db.execute(select(EventOutbox)).scalar_one()
        assert intent.status == "sent"

