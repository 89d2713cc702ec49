# backend/talbiyah/tasks/confirmation_tasks.py
"""
Periodic confirmation workflow tasks.

- ``confirmations.auto_acknowledge_stale``: sweep lessons left pending past the window
- ``confirmations.retry_pending_refunds``: re-drive refund intents that failed earlier
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator

from celery.utils.log import get_task_logger
from sqlalchemy.orm import Session

from ..database import SessionLocal
from ..services.auto_acknowledge_service import AutoAcknowledgeService
from ..services.lesson_refund_service import LessonRefundService
from .celery_app import celery_app

logger = get_task_logger(__name__)


@contextmanager
def _session_scope() -> Iterator[Session]:
    """Session for one task run; services own their commits."""
    session = SessionLocal()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@celery_app.task(name="confirmations.auto_acknowledge_stale", max_retries=0, queue="confirmations")
def auto_acknowledge_stale() -> Dict[str, Any]:
    """
    Auto-acknowledge every lesson still pending past the confirmation window.

    Returns the sweep result (count plus per-lesson summaries).
    """
    with _session_scope() as session:
        result = AutoAcknowledgeService(session).auto_acknowledge_stale_lessons()
    if result["auto_acknowledged_count"]:
        logger.info("Auto-acknowledged %s lessons", result["auto_acknowledged_count"])
    return result


@celery_app.task(name="confirmations.retry_pending_refunds", max_retries=0, queue="confirmations")
def retry_pending_refunds(limit: int = 100) -> Dict[str, int]:
    """Apply refund intents whose retry time has come."""
    with _session_scope() as session:
        return LessonRefundService(session).retry_pending_refunds(limit=limit)
