# backend/talbiyah/schemas/__init__.py
"""Pydantic schemas for the Talbiyah lesson confirmation API."""

from .health import HealthResponse
from .lesson_confirmation import (
    AcknowledgeLessonRequest,
    AcknowledgeLessonResponse,
    AutoAcknowledgedLesson,
    AutoAcknowledgeResponse,
    DeclineLessonRequest,
    DeclineLessonResponse,
    DismissLessonResponse,
    PendingLessonItem,
    PendingLessonsResponse,
)

__all__ = [
    "AcknowledgeLessonRequest",
    "AcknowledgeLessonResponse",
    "AutoAcknowledgeResponse",
    "AutoAcknowledgedLesson",
    "DeclineLessonRequest",
    "DeclineLessonResponse",
    "DismissLessonResponse",
    "HealthResponse",
    "PendingLessonItem",
    "PendingLessonsResponse",
]
