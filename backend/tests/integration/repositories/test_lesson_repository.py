"""Integration tests for LessonRepository's guarded updates."""

from datetime import datetime, timedelta, timezone

import pytest

from talbiyah.models import Lesson
from talbiyah.repositories.factory import RepositoryFactory
from talbiyah.services.lesson_state_machine import LessonStateMachine

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def repository(db):
    return RepositoryFactory.create_lesson_repository(db)


@pytest.mark.integration
class TestTransitionFromPending:
    def test_updates_pending_lesson_once(self, db, repository, pending_lesson):
        values = LessonStateMachine().plan_acknowledge(NOW, "ok").values

        assert repository.transition_from_pending(pending_lesson.id, values) == 1
        db.commit()
        assert repository.transition_from_pending(pending_lesson.id, values) == 0

        assert repository.get_status(pending_lesson.id) == {
            "confirmation_status": "acknowledged",
            "status": "booked",
        }

    def test_cancelled_lesson_is_not_updated(self, repository, make_lesson):
        lesson = make_lesson(status="cancelled")
        values = LessonStateMachine().plan_auto_acknowledge(NOW).values

        assert repository.transition_from_pending(lesson.id, values) == 0

    def test_unknown_lesson(self, repository):
        values = LessonStateMachine().plan_auto_acknowledge(NOW).values

        assert repository.transition_from_pending("01HF4G12ABCDEF3456789NOONE", values) == 0
        assert repository.get_status("01HF4G12ABCDEF3456789NOONE") is None


@pytest.mark.integration
class TestAutoAcknowledgeStale:
    def test_strict_cutoff(self, db, repository, make_lesson):
        cutoff = NOW - timedelta(hours=24)
        at_cutoff = make_lesson(requested_at=cutoff)
        before_cutoff = make_lesson(requested_at=cutoff - timedelta(microseconds=1))

        ids = repository.auto_acknowledge_stale(cutoff, NOW)
        db.commit()

        assert ids == [before_cutoff.id]
        assert repository.get_status(at_cutoff.id)["confirmation_status"] == "pending"

    def test_second_run_returns_nothing(self, db, repository, make_lesson):
        make_lesson(requested_at=NOW - timedelta(days=3))
        cutoff = NOW - timedelta(hours=24)

        assert len(repository.auto_acknowledge_stale(cutoff, NOW)) == 1
        db.commit()
        assert repository.auto_acknowledge_stale(cutoff, NOW) == []


@pytest.mark.integration
class TestQueries:
    def test_get_by_ids_refreshes_and_orders(self, db, repository, make_lesson):
        later = make_lesson(scheduled_time=NOW + timedelta(days=5), requested_at=NOW - timedelta(days=2))
        sooner = make_lesson(scheduled_time=NOW + timedelta(days=1), requested_at=NOW - timedelta(days=2))

        ids = repository.auto_acknowledge_stale(NOW - timedelta(hours=24), NOW)
        db.commit()
        lessons = repository.get_by_ids(ids)

        assert [lesson.id for lesson in lessons] == [sooner.id, later.id]
        assert all(lesson.confirmation_status == "auto_acknowledged" for lesson in lessons)
        assert lessons[0].student_name == "Aisha Rahman"

    def test_get_by_ids_empty(self, repository):
        assert repository.get_by_ids([]) == []

    def test_pending_for_teacher(self, repository, make_lesson, teacher):
        pending = make_lesson()
        make_lesson(confirmation_status="acknowledged")

        lessons = repository.get_pending_for_teacher(teacher.id)

        assert [lesson.id for lesson in lessons] == [pending.id]
        assert isinstance(lessons[0], Lesson)
        assert lessons[0].teacher_name == "Maryam Siddiqui"
