# backend/talbiyah/repositories/event_outbox_repository.py
"""
Repository for the lesson event outbox.

Rows are inserted inside the caller's transaction and de-duplicated on
``idempotency_key``: enqueueing the same key twice returns the existing row
untouched. Workers claim due rows with ``FOR UPDATE SKIP LOCKED`` on
PostgreSQL so two workers never process the same row.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Iterable, Optional, cast

from sqlalchemy import Select, func, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.orm import Session

from ..core.ulid_helper import generate_ulid
from ..database.session_utils import get_dialect_name
from ..models.event_outbox import EventOutbox, EventOutboxStatus

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class EventOutboxRepository:
    """Data access helpers for outbox rows."""

    def __init__(self, db: Session):
        self.db = db
        self._dialect = get_dialect_name(db, default="postgresql").lower()

    def enqueue(
        self,
        event_type: str,
        aggregate_id: str,
        idempotency_key: str,
        payload: Optional[dict[str, Any]] = None,
        next_attempt_at: Optional[datetime] = None,
    ) -> EventOutbox:
        """
        Insert an outbox row unless one already exists for ``idempotency_key``.

        Returns:
            The persisted row (existing or newly created)
        """
        values = {
            "id": generate_ulid(),
            "event_type": event_type,
            "aggregate_id": aggregate_id,
            "idempotency_key": idempotency_key,
            "payload": payload or {},
            "status": EventOutboxStatus.PENDING.value,
            "attempt_count": 0,
            "next_attempt_at": next_attempt_at or _now_utc(),
        }

        inserted_id: Optional[str] = None
        if self._dialect == "postgresql":
            stmt = (
                pg_insert(EventOutbox)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["idempotency_key"])
                .returning(EventOutbox.id)
            )
            inserted_id = cast(Optional[str], self.db.execute(stmt).scalar_one_or_none())
        else:
            generic = insert(EventOutbox).values(**values)
            if self._dialect == "sqlite":
                generic = generic.prefix_with("OR IGNORE")
            result = self.db.execute(generic)
            if getattr(result, "rowcount", 0):
                inserted_id = values["id"]

        self.db.flush()
        if inserted_id:
            row = cast(Optional[EventOutbox], self.db.get(EventOutbox, inserted_id))
            if row is None:
                raise RuntimeError("Inserted outbox row could not be reloaded")
            return row

        existing = self.get_by_key(idempotency_key)
        if existing is None:
            raise RuntimeError("Outbox row not found after enqueue conflict")
        logger.debug("Outbox key %s already enqueued", idempotency_key)
        return existing

    def fetch_pending(
        self,
        *,
        event_types: Optional[Iterable[str]] = None,
        exclude_event_types: Optional[Iterable[str]] = None,
        limit: int = 200,
        now: Optional[datetime] = None,
    ) -> list[EventOutbox]:
        """Return due pending rows ordered by next attempt time."""
        due = now or _now_utc()
        stmt: Select[Any] = (
            select(EventOutbox)
            .where(EventOutbox.status == EventOutboxStatus.PENDING.value)
            .where(EventOutbox.next_attempt_at <= due)
        )
        if event_types is not None:
            stmt = stmt.where(EventOutbox.event_type.in_(list(event_types)))
        if exclude_event_types is not None:
            stmt = stmt.where(EventOutbox.event_type.not_in(list(exclude_event_types)))
        stmt = stmt.order_by(EventOutbox.next_attempt_at.asc(), EventOutbox.id.asc()).limit(limit)
        if self._dialect == "postgresql":
            stmt = stmt.with_for_update(skip_locked=True)
        return cast(list[EventOutbox], self.db.execute(stmt).scalars().all())

    def get_by_id(self, event_id: str, for_update: bool = False) -> Optional[EventOutbox]:
        if for_update and self._dialect == "postgresql":
            stmt = (
                select(EventOutbox)
                .where(EventOutbox.id == event_id)
                .with_for_update(skip_locked=True)
            )
            return cast(Optional[EventOutbox], self.db.execute(stmt).scalar_one_or_none())
        return cast(Optional[EventOutbox], self.db.get(EventOutbox, event_id))

    def get_by_key(self, idempotency_key: str, for_update: bool = False) -> Optional[EventOutbox]:
        stmt = select(EventOutbox).where(EventOutbox.idempotency_key == idempotency_key)
        if for_update and self._dialect == "postgresql":
            stmt = stmt.with_for_update(skip_locked=True)
        return cast(Optional[EventOutbox], self.db.execute(stmt).scalar_one_or_none())

    def count_for_aggregate(self, aggregate_id: str, event_type: Optional[str] = None) -> int:
        stmt = select(func.count(EventOutbox.id)).where(EventOutbox.aggregate_id == aggregate_id)
        if event_type is not None:
            stmt = stmt.where(EventOutbox.event_type == event_type)
        return int(self.db.execute(stmt).scalar_one())

    def mark_sent(self, event_id: str, attempt_count: int) -> None:
        now = _now_utc()
        self.db.execute(
            update(EventOutbox)
            .where(EventOutbox.id == event_id)
            .values(
                status=EventOutboxStatus.SENT.value,
                attempt_count=attempt_count,
                last_error=None,
                next_attempt_at=None,
                updated_at=now,
            )
        )
        self.db.flush()

    def mark_failed(
        self,
        event_id: str,
        *,
        attempt_count: int,
        backoff_seconds: int,
        error: str | None = None,
        terminal: bool = False,
    ) -> None:
        """Record a failed attempt; ``terminal`` parks the row as failed."""
        now = _now_utc()
        values: dict[str, Any] = {
            "attempt_count": attempt_count,
            "updated_at": now,
            "last_error": (error[:1000] if error else None),
        }
        if terminal:
            values["status"] = EventOutboxStatus.FAILED.value
            values["next_attempt_at"] = None
        else:
            values["status"] = EventOutboxStatus.PENDING.value
            values["next_attempt_at"] = now + timedelta(seconds=max(backoff_seconds, 1))

        self.db.execute(
            update(EventOutbox)
            .where(EventOutbox.id == event_id)
            .values(**values)
        )
        self.db.flush()
