# backend/talbiyah/repositories/factory.py
"""
Repository Factory for the Talbiyah platform.

Services obtain their repositories here so tests can swap any of them for
a mock by patching a single constructor.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

if TYPE_CHECKING:
    from .credit_repository import CreditRepository
    from .event_outbox_repository import EventOutboxRepository
    from .lesson_repository import LessonRepository
    from .notification_delivery_repository import NotificationDeliveryRepository


class RepositoryFactory:
    """Creates repository instances bound to a session."""

    @staticmethod
    def create_lesson_repository(db: Session) -> "LessonRepository":
        from .lesson_repository import LessonRepository

        return LessonRepository(db)

    @staticmethod
    def create_credit_repository(db: Session) -> "CreditRepository":
        from .credit_repository import CreditRepository

        return CreditRepository(db)

    @staticmethod
    def create_event_outbox_repository(db: Session) -> "EventOutboxRepository":
        from .event_outbox_repository import EventOutboxRepository

        return EventOutboxRepository(db)

    @staticmethod
    def create_notification_delivery_repository(db: Session) -> "NotificationDeliveryRepository":
        from .notification_delivery_repository import NotificationDeliveryRepository

        return NotificationDeliveryRepository(db)
