# backend/talbiyah/repositories/lesson_repository.py
"""
Lesson Repository for the Talbiyah platform.

Every transition out of ``pending`` goes through a single conditional
``UPDATE ... WHERE confirmation_status = 'pending' AND status = 'booked'``.
The number of affected rows tells the caller whether it won: zero means some
other actor (teacher, sweep, second request) resolved the lesson first.
"""

from datetime import datetime
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload

from ..core.exceptions import RepositoryException
from ..database.session_utils import supports_update_returning
from ..models.lesson import ConfirmationStatus, Lesson, LessonStatus
from ..models.user import Learner
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class LessonRepository(BaseRepository[Lesson]):
    """Data access for lessons and their confirmation state."""

    def __init__(self, db: Session):
        super().__init__(db, Lesson)
        self.logger = logging.getLogger(__name__)

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(
            joinedload(Lesson.learner).joinedload(Learner.parent),
            joinedload(Lesson.teacher),
            joinedload(Lesson.subject),
        )

    @staticmethod
    def _pending_guard() -> List[Any]:
        return [
            Lesson.confirmation_status == ConfirmationStatus.PENDING.value,
            Lesson.status == LessonStatus.BOOKED.value,
        ]

    def transition_from_pending(self, lesson_id: str, values: Dict[str, Any]) -> int:
        """
        Apply ``values`` only if the lesson is still pending and booked.

        Returns:
            Number of rows updated (0 or 1)
        """
        try:
            stmt = (
                update(Lesson)
                .where(Lesson.id == lesson_id, *self._pending_guard())
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = self.db.execute(stmt)
            self.db.flush()
            return int(result.rowcount or 0)
        except SQLAlchemyError as e:
            self.logger.error(f"Error transitioning lesson {lesson_id}: {str(e)}")
            raise RepositoryException(f"Failed to update lesson {lesson_id}: {str(e)}")

    def auto_acknowledge_stale(self, cutoff: datetime, now: datetime) -> List[str]:
        """
        Auto-acknowledge every pending lesson requested strictly before ``cutoff``.

        Selection and transition happen in one statement, so a lesson resolved
        concurrently is never overwritten and never reported.

        Returns:
            Ids of the lessons this call transitioned
        """
        values = {
            "confirmation_status": ConfirmationStatus.AUTO_ACKNOWLEDGED.value,
            "acknowledged_at": now,
            "auto_acknowledged": True,
            "updated_at": now,
        }
        conditions = [*self._pending_guard(), Lesson.confirmation_requested_at < cutoff]
        try:
            if supports_update_returning(self.db):
                stmt = (
                    update(Lesson)
                    .where(*conditions)
                    .values(**values)
                    .returning(Lesson.id)
                    .execution_options(synchronize_session=False)
                )
                ids = [row[0] for row in self.db.execute(stmt).all()]
            else:
                candidates = self.db.execute(select(Lesson.id).where(*conditions)).scalars().all()
                ids = []
                for lesson_id in candidates:
                    if self.transition_from_pending(lesson_id, values):
                        ids.append(lesson_id)
            self.db.flush()
            return ids
        except SQLAlchemyError as e:
            self.logger.error(f"Error auto-acknowledging stale lessons: {str(e)}")
            raise RepositoryException(f"Failed to auto-acknowledge lessons: {str(e)}")

    def get_by_ids(self, lesson_ids: List[str]) -> List[Lesson]:
        """Load lessons with learner, teacher and subject, ordered by scheduled time."""
        if not lesson_ids:
            return []
        try:
            query = self.db.query(Lesson).filter(Lesson.id.in_(lesson_ids))
            query = self._apply_eager_loading(query)
            lessons = query.order_by(Lesson.scheduled_time.asc(), Lesson.id.asc()).all()
            # Bulk UPDATE bypassed the identity map
            for lesson in lessons:
                self.db.refresh(lesson)
            return lessons
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading lessons {lesson_ids}: {str(e)}")
            raise RepositoryException(f"Failed to load lessons: {str(e)}")

    def get_pending_for_teacher(self, teacher_id: str) -> List[Lesson]:
        """All lessons of a teacher still awaiting confirmation, soonest first."""
        try:
            query = self.db.query(Lesson).filter(
                Lesson.teacher_id == teacher_id, *self._pending_guard()
            )
            query = self._apply_eager_loading(query)
            return query.order_by(Lesson.scheduled_time.asc()).all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading pending lessons for teacher {teacher_id}: {str(e)}")
            raise RepositoryException(f"Failed to load pending lessons: {str(e)}")

    def get_status(self, lesson_id: str) -> Optional[Dict[str, Any]]:
        """Read the current persisted state, bypassing the session identity map."""
        try:
            row = self.db.execute(
                select(Lesson.confirmation_status, Lesson.status).where(Lesson.id == lesson_id)
            ).first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error reading status of lesson {lesson_id}: {str(e)}")
            raise RepositoryException(f"Failed to read lesson status: {str(e)}")
        if row is None:
            return None
        return {"confirmation_status": row[0], "status": row[1]}
