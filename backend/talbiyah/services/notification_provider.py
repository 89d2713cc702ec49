# backend/talbiyah/services/notification_provider.py
"""
Notification provider used by the outbox dispatcher.

Renders the email for a lesson event and sends it, recording each delivery
in ``notification_delivery``. A key that was already delivered is skipped,
so a redelivered outbox row never emails the learner twice.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
import logging
from typing import Any, Callable, Dict, Generator, Optional

from sqlalchemy.orm import Session

from ..database import SessionLocal
from ..repositories.factory import RepositoryFactory
from .email import create_email_service
from .template_registry import EVENT_TEMPLATES, email_subject
from .template_service import TemplateService

logger = logging.getLogger(__name__)


class NotificationProviderTemporaryError(RuntimeError):
    """Delivery failed in a way worth retrying."""


@contextmanager
def _managed_session(session_factory: Callable[[], Session]) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@dataclass(slots=True)
class NotificationDispatchResult:
    """What happened to a single send request."""

    idempotency_key: str
    event_type: str
    delivered: bool
    attempt_count: int


class NotificationProvider:
    """
    Email provider for lesson notifications.

    Usage:
        provider = NotificationProvider()
        provider.send(event_type="lesson.acknowledged", payload={...}, idempotency_key="...")
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        email_service: Any | None = None,
        template_service: Optional[TemplateService] = None,
    ) -> None:
        self._session_factory = session_factory or SessionLocal
        self._email_service = email_service
        self._template_service = template_service

    @property
    def email_service(self) -> Any:
        if self._email_service is None:
            self._email_service = create_email_service()
        return self._email_service

    @property
    def template_service(self) -> TemplateService:
        if self._template_service is None:
            self._template_service = TemplateService()
        return self._template_service

    def send(
        self,
        event_type: str,
        payload: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> NotificationDispatchResult:
        """Render and send one notification unless it was already delivered."""
        if not idempotency_key:
            raise ValueError("idempotency_key is required for notification dispatch")
        payload = payload or {}

        template = EVENT_TEMPLATES.get(event_type)
        if template is None:
            raise ValueError(f"No email template registered for {event_type}")
        recipient = payload.get("recipient_email")
        if not recipient:
            raise ValueError(f"Notification {idempotency_key} has no recipient")

        with _managed_session(self._session_factory) as session:
            repo = RepositoryFactory.create_notification_delivery_repository(session)
            existing = repo.get_by_idempotency_key(idempotency_key)
            if existing is not None:
                existing.touch()
                logger.info(
                    "Notification %s already delivered; skipping resend",
                    idempotency_key,
                )
                return NotificationDispatchResult(
                    idempotency_key=idempotency_key,
                    event_type=event_type,
                    delivered=False,
                    attempt_count=existing.attempt_count,
                )

            html = self.template_service.render_template(template.value, context=payload)
            try:
                self.email_service.send_email(
                    to_email=recipient,
                    subject=email_subject(event_type, payload),
                    html_content=html,
                )
            except Exception as exc:
                raise NotificationProviderTemporaryError(str(exc)) from exc

            record = repo.record_delivery(
                event_type, idempotency_key, recipient=recipient, payload=payload
            )
            logger.info(
                "Delivered %s to %s key=%s",
                event_type,
                recipient,
                idempotency_key,
            )
            return NotificationDispatchResult(
                idempotency_key=idempotency_key,
                event_type=event_type,
                delivered=True,
                attempt_count=record.attempt_count,
            )
