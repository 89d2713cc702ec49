"""
Lesson confirmation routes - API v1

Teacher responses to booked lessons under /api/v1/lessons.
All business logic delegated to LessonConfirmationService.

Endpoints:
    POST /{lesson_id}/acknowledge → Confirm a pending lesson
    POST /{lesson_id}/decline     → Decline, cancel and refund a pending lesson
    POST /{lesson_id}/dismiss     → Clear a pending lesson whose start has passed
"""

import asyncio
import logging
from typing import Any, NoReturn, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status
from fastapi.params import Path

from ...api.dependencies.services import get_lesson_confirmation_service
from ...core.exceptions import DomainException
from ...core.ulid_helper import ULID_PATTERN
from ...schemas.lesson_confirmation import (
    AcknowledgeLessonRequest,
    AcknowledgeLessonResponse,
    DeclineLessonRequest,
    DeclineLessonResponse,
    DismissLessonResponse,
)
from ...services.lesson_confirmation_service import LessonConfirmationService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["lessons-v1"])

ULID_PATH_PATTERN = ULID_PATTERN


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _lesson_id_path() -> Any:
    return Path(
        ...,
        description="Lesson ULID",
        pattern=ULID_PATH_PATTERN,
        examples=["01HF4G12ABCDEF3456789XYZAB"],
    )


@router.post(
    "/{lesson_id}/acknowledge",
    response_model=AcknowledgeLessonResponse,
    responses={404: {"description": "Lesson not found"}, 409: {"description": "Already resolved"}},
)
async def acknowledge_lesson(
    lesson_id: str = _lesson_id_path(),
    payload: Optional[AcknowledgeLessonRequest] = Body(None),
    service: LessonConfirmationService = Depends(get_lesson_confirmation_service),
) -> AcknowledgeLessonResponse:
    """
    Confirm a lesson that is awaiting the teacher's response.

    The learner's parent is emailed the confirmation, including the optional note.
    """
    message = payload.message if payload else None
    try:
        lesson = await asyncio.to_thread(service.acknowledge_lesson, lesson_id, message)
    except DomainException as exc:
        handle_domain_exception(exc)

    return AcknowledgeLessonResponse(
        lesson_id=lesson.id,
        confirmation_status=lesson.confirmation_status,
        acknowledged_at=lesson.acknowledged_at,
        teacher_acknowledgment_message=lesson.teacher_acknowledgment_message,
    )


@router.post(
    "/{lesson_id}/decline",
    response_model=DeclineLessonResponse,
    responses={
        400: {"description": "Missing reason or invalid suggested times"},
        404: {"description": "Lesson not found"},
        409: {"description": "Already resolved"},
    },
)
async def decline_lesson(
    payload: DeclineLessonRequest,
    lesson_id: str = _lesson_id_path(),
    service: LessonConfirmationService = Depends(get_lesson_confirmation_service),
) -> DeclineLessonResponse:
    """
    Decline a pending lesson.

    The lesson is cancelled and the paying parent is refunded. If the refund
    cannot be applied right away the decline still succeeds and
    ``refund_status`` is ``pending``.
    """
    try:
        result = await asyncio.to_thread(
            service.decline_lesson,
            lesson_id,
            payload.decline_reason,
            payload.suggested_times,
        )
    except DomainException as exc:
        handle_domain_exception(exc)

    lesson = result.lesson
    refund = result.refund
    return DeclineLessonResponse(
        lesson_id=lesson.id,
        confirmation_status=lesson.confirmation_status,
        status=lesson.status,
        declined_at=lesson.declined_at,
        decline_reason=lesson.decline_reason,
        suggested_times=list(lesson.suggested_alternative_times or []),
        refund_status=refund.status,
        refund_amount=float(refund.amount) if refund.amount is not None else None,
        new_balance=float(refund.new_balance) if refund.new_balance is not None else None,
    )


@router.post(
    "/{lesson_id}/dismiss",
    response_model=DismissLessonResponse,
    responses={
        404: {"description": "Lesson not found"},
        409: {"description": "Already resolved"},
        422: {"description": "Lesson has not started yet"},
    },
)
async def dismiss_past_lesson(
    lesson_id: str = _lesson_id_path(),
    service: LessonConfirmationService = Depends(get_lesson_confirmation_service),
) -> DismissLessonResponse:
    """Clear a still-pending lesson whose scheduled start has already passed."""
    try:
        lesson = await asyncio.to_thread(service.dismiss_past_lesson, lesson_id)
    except DomainException as exc:
        handle_domain_exception(exc)

    return DismissLessonResponse(
        lesson_id=lesson.id,
        confirmation_status=lesson.confirmation_status,
        auto_acknowledged=bool(lesson.auto_acknowledged),
        acknowledged_at=lesson.acknowledged_at,
    )
