"""
Teacher routes - API v1

Endpoints:
    GET /{teacher_id}/pending-lessons → Lessons awaiting the teacher's response
"""

import asyncio
import logging

from fastapi import APIRouter, Depends
from fastapi.params import Path

from ...api.dependencies.services import get_lesson_confirmation_service
from ...core.exceptions import DomainException
from ...schemas.lesson_confirmation import PendingLessonItem, PendingLessonsResponse
from ...services.lesson_confirmation_service import LessonConfirmationService
from .lessons import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["teachers-v1"])


@router.get("/{teacher_id}/pending-lessons", response_model=PendingLessonsResponse)
async def get_pending_lessons(
    teacher_id: str = Path(..., description="Teacher ULID", pattern=ULID_PATH_PATTERN),
    service: LessonConfirmationService = Depends(get_lesson_confirmation_service),
) -> PendingLessonsResponse:
    """
    List the teacher's lessons still awaiting acknowledgment, soonest first.

    Requests older than the urgency threshold are flagged ``is_urgent``;
    lessons whose start has passed are flagged ``is_overdue``.
    """
    try:
        views = await asyncio.to_thread(service.get_teacher_pending_lessons, teacher_id)
    except DomainException as exc:
        handle_domain_exception(exc)

    return PendingLessonsResponse(
        teacher_id=teacher_id,
        count=len(views),
        lessons=[PendingLessonItem(**view.to_dict()) for view in views],
    )
