# backend/talbiyah/models/event_outbox.py
"""
Transactional outbox for lesson side effects.

Two kinds of rows live here:

- ``lesson.refund_requested``: the durable refund intent written in the same
  transaction as a decline. It stays pending until the credit ledger has
  applied the refund.
- learner notifications (``lesson.acknowledged``, ``lesson.declined``,
  ``lesson.auto_acknowledged``) delivered by the Celery outbox worker.

``NotificationDelivery`` records each delivered notification so that a
redelivered outbox row never produces a second email.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
import ulid

from ..database import Base

_PAYLOAD_TYPE = JSONB(astext_type=Text()).with_variant(JSON(), "sqlite")


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class EventOutboxStatus(str, Enum):
    """Lifecycle states for an outbox row."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class EventOutbox(Base):
    """Outbox row awaiting processing by a worker."""

    __tablename__ = "event_outbox"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    event_type = Column(String(100), nullable=False, index=True)
    # Lesson id for every event this service emits
    aggregate_id = Column(String(64), nullable=False, index=True)
    idempotency_key = Column(String(255), nullable=False)
    payload = Column(_PAYLOAD_TYPE, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default=EventOutboxStatus.PENDING.value, index=True)
    attempt_count = Column(Integer, nullable=False, default=0)
    next_attempt_at = Column(DateTime(timezone=True), nullable=True, index=True)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (UniqueConstraint("idempotency_key", name="uq_event_outbox_idempotency_key"),)

    def __repr__(self) -> str:
        return (
            f"<EventOutbox {self.id}: {self.event_type} aggregate={self.aggregate_id} "
            f"status={self.status} attempts={self.attempt_count}>"
        )

    @property
    def is_pending(self) -> bool:
        return self.status == EventOutboxStatus.PENDING.value


class NotificationDelivery(Base):
    """Delivered notification, keyed by the outbox idempotency key."""

    __tablename__ = "notification_delivery"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    event_type = Column(String(100), nullable=False, index=True)
    idempotency_key = Column(String(255), nullable=False)
    recipient = Column(String(255), nullable=True)
    payload = Column(_PAYLOAD_TYPE, nullable=False, default=dict)
    attempt_count = Column(Integer, nullable=False, default=1)
    delivered_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_notification_delivery_idempotency"),
    )

    def touch(self, payload: Dict[str, Any] | None = None) -> None:
        """Record a duplicate delivery attempt without sending again."""
        self.attempt_count += 1
        self.delivered_at = _now_utc()
        if payload is not None:
            self.payload = payload
