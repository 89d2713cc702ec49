# backend/talbiyah/models/lesson.py
"""
Lesson model for the Talbiyah platform.

A lesson is created by the booking flow with ``status=booked`` and
``confirmation_status=pending``. From there the teacher acknowledges or
declines it, or the hourly sweep auto-acknowledges it once the response
window has lapsed. ``confirmation_status`` never returns to ``pending``.
"""

from enum import Enum
import logging
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
import ulid

from ..database import Base

logger = logging.getLogger(__name__)


class LessonStatus(str, Enum):
    """Booking lifecycle of a lesson."""

    BOOKED = "booked"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class ConfirmationStatus(str, Enum):
    """Teacher confirmation state of a booked lesson."""

    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    DECLINED = "declined"
    AUTO_ACKNOWLEDGED = "auto_acknowledged"


class Lesson(Base):
    """
    Scheduled lesson between a teacher and a learner.

    Confirmation fields:
        confirmation_requested_at: When the booking asked the teacher to respond
        acknowledged_at: Set on manual or automatic acknowledgment
        declined_at: Set on decline (mutually exclusive with acknowledged_at)
        teacher_acknowledgment_message: Optional note shown to the learner
        decline_reason: Required reason given by the teacher on decline
        suggested_alternative_times: ISO-8601 UTC strings offered on decline
        auto_acknowledged: True when the sweep (or a dismissal) resolved the lesson
    """

    __tablename__ = "lessons"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    teacher_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    learner_id = Column(String(26), ForeignKey("learners.id"), nullable=False, index=True)
    subject_id = Column(String(26), ForeignKey("subjects.id"), nullable=True)

    scheduled_time = Column(DateTime(timezone=True), nullable=False, index=True)
    duration_minutes = Column(Integer, nullable=False, default=60)
    # Credit cost captured when the booking was paid
    credits_paid = Column(Numeric(10, 2), nullable=True)

    status = Column(String(20), nullable=False, default=LessonStatus.BOOKED.value, index=True)
    confirmation_status = Column(
        String(20), nullable=False, default=ConfirmationStatus.PENDING.value, index=True
    )

    confirmation_requested_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    acknowledged_at = Column(DateTime(timezone=True), nullable=True)
    declined_at = Column(DateTime(timezone=True), nullable=True)
    teacher_acknowledgment_message = Column(Text, nullable=True)
    decline_reason = Column(Text, nullable=True)
    suggested_alternative_times = Column(JSON, nullable=True)
    auto_acknowledged = Column(Boolean, nullable=False, default=False)

    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    teacher = relationship("User", foreign_keys=[teacher_id], backref="teaching_lessons")
    learner = relationship("Learner", backref="lessons")
    subject = relationship("Subject")

    __table_args__ = (
        CheckConstraint(
            "status IN ('booked', 'cancelled', 'completed')",
            name="ck_lessons_status",
        ),
        CheckConstraint(
            "confirmation_status IN ('pending', 'acknowledged', 'declined', 'auto_acknowledged')",
            name="ck_lessons_confirmation_status",
        ),
        CheckConstraint("duration_minutes > 0", name="ck_lessons_duration_positive"),
        CheckConstraint(
            "acknowledged_at IS NULL OR declined_at IS NULL",
            name="ck_lessons_single_resolution",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Lesson {self.id}: teacher={self.teacher_id}, learner={self.learner_id}, "
            f"at={self.scheduled_time}, status={self.status}, "
            f"confirmation={self.confirmation_status}>"
        )

    @property
    def payer_id(self) -> Optional[str]:
        """Parent account of the learner; receives refunds."""
        learner = self.learner
        return learner.parent_id if learner is not None else None

    @property
    def student_name(self) -> Optional[str]:
        return self.learner.name if self.learner is not None else None

    @property
    def teacher_name(self) -> Optional[str]:
        return self.teacher.full_name if self.teacher is not None else None

    @property
    def subject_name(self) -> Optional[str]:
        return self.subject.name if self.subject is not None else None


Index(
    "ix_lessons_pending_confirmation",
    Lesson.confirmation_status,
    Lesson.status,
    Lesson.confirmation_requested_at,
    postgresql_where=(Lesson.confirmation_status == ConfirmationStatus.PENDING.value),
)
