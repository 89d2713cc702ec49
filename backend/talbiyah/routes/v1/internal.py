"""
Internal operations - API v1

Endpoints:
    POST /confirmations/auto-acknowledge → Run the auto-acknowledge sweep now

The same sweep runs on the Celery beat schedule; this endpoint lets an
external scheduler or an operator trigger it directly.
"""

import asyncio
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status

from ...api.dependencies.services import get_auto_acknowledge_service
from ...core.config import settings
from ...core.exceptions import DomainException
from ...schemas.lesson_confirmation import AutoAcknowledgedLesson, AutoAcknowledgeResponse
from ...services.auto_acknowledge_service import AutoAcknowledgeService
from .lessons import handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["internal-v1"], include_in_schema=False)


def verify_internal_token(x_internal_token: Optional[str] = Header(None)) -> None:
    """Require ``X-Internal-Token`` when ``INTERNAL_API_TOKEN`` is configured."""
    configured = settings.internal_api_token
    if configured is None or not configured.get_secret_value():
        return
    if not x_internal_token or not hmac.compare_digest(
        x_internal_token.encode(), configured.get_secret_value().encode()
    ):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="invalid internal token")


@router.post(
    "/confirmations/auto-acknowledge",
    response_model=AutoAcknowledgeResponse,
    dependencies=[Depends(verify_internal_token)],
)
async def run_auto_acknowledge(
    service: AutoAcknowledgeService = Depends(get_auto_acknowledge_service),
) -> AutoAcknowledgeResponse:
    """Auto-acknowledge every lesson left pending past the confirmation window."""
    try:
        result = await asyncio.to_thread(service.auto_acknowledge_stale_lessons)
    except DomainException as exc:
        handle_domain_exception(exc)

    return AutoAcknowledgeResponse(
        auto_acknowledged_count=result["auto_acknowledged_count"],
        lessons=[AutoAcknowledgedLesson(**summary) for summary in result["lessons"]],
    )
