# backend/talbiyah/repositories/__init__.py
"""
Repository layer for the Talbiyah lesson service.

Usage:
    from talbiyah.repositories import RepositoryFactory

    lesson_repository = RepositoryFactory.create_lesson_repository(db)
    lesson = lesson_repository.get_by_id(lesson_id)
"""

from .base_repository import BaseRepository
from .credit_repository import CreditRepository
from .event_outbox_repository import EventOutboxRepository
from .factory import RepositoryFactory
from .lesson_repository import LessonRepository
from .notification_delivery_repository import NotificationDeliveryRepository

__all__ = [
    "BaseRepository",
    "CreditRepository",
    "EventOutboxRepository",
    "LessonRepository",
    "NotificationDeliveryRepository",
    "RepositoryFactory",
]
