# backend/talbiyah/repositories/notification_delivery_repository.py
"""
Repository for delivered learner notifications.

``record_delivery`` is called once an email has gone out. The returned row's
``attempt_count`` is 1 on the first delivery of a key and greater than 1
when the same key is recorded again.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional, cast

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from ..core.ulid_helper import generate_ulid
from ..database.session_utils import get_dialect_name
from ..models.event_outbox import NotificationDelivery


class NotificationDeliveryRepository:
    """Data access helper for notification_delivery rows."""

    def __init__(self, db: Session):
        self.db = db
        self._dialect = get_dialect_name(db, default="postgresql").lower()

    def record_delivery(
        self,
        event_type: str,
        idempotency_key: str,
        recipient: Optional[str] = None,
        payload: Optional[dict[str, Any]] = None,
    ) -> NotificationDelivery:
        """Insert a delivery row, or bump the attempt count of an existing one."""
        payload = payload or {}
        values = {
            "id": generate_ulid(),
            "event_type": event_type,
            "idempotency_key": idempotency_key,
            "recipient": recipient,
            "payload": payload,
            "attempt_count": 1,
            "delivered_at": datetime.now(timezone.utc),
        }

        if self._dialect == "postgresql":
            stmt = pg_insert(NotificationDelivery).values(**values)
        else:
            stmt = sqlite_insert(NotificationDelivery).values(**values)
        stmt = stmt.on_conflict_do_nothing(index_elements=["idempotency_key"])
        result = self.db.execute(stmt)
        inserted = bool(getattr(result, "rowcount", 0))
        self.db.flush()

        row = self.get_by_idempotency_key(idempotency_key)
        if row is None:
            raise RuntimeError("Notification delivery row missing after insert")
        if not inserted:
            row.touch(payload)
            self.db.flush()
        return row

    def get_by_idempotency_key(self, idempotency_key: str) -> Optional[NotificationDelivery]:
        stmt = select(NotificationDelivery).where(
            NotificationDelivery.idempotency_key == idempotency_key
        )
        return cast(Optional[NotificationDelivery], self.db.execute(stmt).scalar_one_or_none())
