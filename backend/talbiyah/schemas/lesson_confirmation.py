# backend/talbiyah/schemas/lesson_confirmation.py
"""
Request and response schemas for the lesson confirmation endpoints.

Text limits and the suggested-time rules (count, future only) are enforced
by the service so that they surface as 400 domain errors rather than schema
validation failures.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from ._strict_base import StrictModel, StrictRequestModel


class AcknowledgeLessonRequest(StrictRequestModel):
    message: Optional[str] = Field(
        None, description="Optional note for the learner shown in the confirmation email"
    )


class DeclineLessonRequest(StrictRequestModel):
    decline_reason: Optional[str] = Field(None, description="Why the teacher cannot take the lesson")
    suggested_times: Optional[List[datetime]] = Field(
        None,
        description="Alternative start times to offer; naive values are read as UTC",
    )


class AcknowledgeLessonResponse(StrictModel):
    success: bool = True
    lesson_id: str
    confirmation_status: str
    acknowledged_at: Optional[datetime]
    teacher_acknowledgment_message: Optional[str] = None


class DeclineLessonResponse(StrictModel):
    success: bool = True
    lesson_id: str
    confirmation_status: str
    status: str
    declined_at: Optional[datetime]
    decline_reason: Optional[str]
    suggested_times: List[str] = Field(default_factory=list)
    refund_status: str
    refund_amount: Optional[float] = None
    new_balance: Optional[float] = None


class DismissLessonResponse(StrictModel):
    success: bool = True
    lesson_id: str
    confirmation_status: str
    auto_acknowledged: bool
    acknowledged_at: Optional[datetime]


class PendingLessonItem(StrictModel):
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


class PendingLessonsResponse(StrictModel):
    teacher_id: str
    count: int
    lessons: List[PendingLessonItem]


class AutoAcknowledgedLesson(StrictModel):
    lesson_id: str
    student_name: Optional[str]
    teacher_name: Optional[str]
    subject_name: Optional[str]
    scheduled_time: Optional[str]


class AutoAcknowledgeResponse(StrictModel):
    auto_acknowledged_count: int
    lessons: List[AutoAcknowledgedLesson]
