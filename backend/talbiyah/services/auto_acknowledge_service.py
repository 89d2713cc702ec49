# backend/talbiyah/services/auto_acknowledge_service.py
"""
Periodic sweep that auto-acknowledges lessons teachers never answered.

A lesson is stale once its confirmation request is older than the
confirmation window. The sweep selects and transitions stale lessons in one
guarded statement, then queues a notification for each lesson it moved.
Running the sweep twice in a row moves nothing the second time.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import EVENT_LESSON_AUTO_ACKNOWLEDGED
from ..core.timezone_utils import ensure_utc, utc_now
from ..models.lesson import Lesson
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..repositories.lesson_repository import LessonRepository
from .base import BaseService
from .lesson_state_machine import LessonStateMachine
from .notification_service import LessonNotifier, NotificationService, notify_safely

logger = logging.getLogger(__name__)


def _summarize(lesson: Lesson) -> Dict[str, Any]:
    scheduled = ensure_utc(lesson.scheduled_time)
    return {
        "lesson_id": lesson.id,
        "student_name": lesson.student_name,
        "teacher_name": lesson.teacher_name,
        "subject_name": lesson.subject_name,
        "scheduled_time": scheduled.isoformat() if scheduled else None,
    }


class AutoAcknowledgeService(BaseService):
    """Sweeps stale pending lessons to ``auto_acknowledged``."""

    def __init__(
        self,
        db: Session,
        notifier: Optional[LessonNotifier] = None,
        lesson_repository: Optional[LessonRepository] = None,
        state_machine: Optional[LessonStateMachine] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        super().__init__(db)
        self.repository = lesson_repository or RepositoryFactory.create_lesson_repository(db)
        self.notifier: LessonNotifier = notifier or NotificationService(db)
        self.state_machine = state_machine or LessonStateMachine(
            settings.confirmation_window_hours
        )
        self.clock = clock

    @BaseService.measure_operation("auto_acknowledge_stale_lessons")
    def auto_acknowledge_stale_lessons(self) -> Dict[str, Any]:
        """
        Auto-acknowledge every lesson still pending past the confirmation window.

        Returns:
            ``{"auto_acknowledged_count": int, "lessons": [summary, ...]}`` covering
            only the lessons this run transitioned
        """
        now = self.clock()
        cutoff = self.state_machine.stale_cutoff(now)
        with self.transaction():
            lesson_ids = self.repository.auto_acknowledge_stale(cutoff, now)

        lessons: List[Lesson] = self.repository.get_by_ids(lesson_ids)
        prometheus_metrics.record_auto_acknowledged(len(lessons))

        for lesson in lessons:
            notify_safely(
                self.logger,
                EVENT_LESSON_AUTO_ACKNOWLEDGED,
                lesson.id,
                lambda lesson=lesson: self.notifier.lesson_auto_acknowledged(lesson),  # type: ignore[misc]
            )

        if lessons:
            self.log_operation(
                "lessons_auto_acknowledged",
                count=len(lessons),
                cutoff=cutoff.isoformat(),
            )
        else:
            self.logger.debug("Auto-acknowledge sweep found no stale lessons")

        return {
            "auto_acknowledged_count": len(lessons),
            "lessons": [_summarize(lesson) for lesson in lessons],
        }
