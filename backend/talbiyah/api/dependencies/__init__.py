# backend/talbiyah/api/dependencies/__init__.py
"""
Central export point for all dependencies.
"""

from .database import get_db
from .services import (
    get_auto_acknowledge_service,
    get_lesson_confirmation_service,
    get_notification_service,
    get_refund_service,
)

__all__ = [
    # Database
    "get_db",
    # Services
    "get_auto_acknowledge_service",
    "get_lesson_confirmation_service",
    "get_notification_service",
    "get_refund_service",
]
