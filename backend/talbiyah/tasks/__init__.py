# backend/talbiyah/tasks/__init__.py
"""
Celery tasks package for Talbiyah.

Importing the package registers every task with the Celery app.
"""

from .celery_app import BaseTask, celery_app
from .confirmation_tasks import auto_acknowledge_stale, retry_pending_refunds
from .notification_tasks import deliver_event, dispatch_pending

__all__ = [
    "BaseTask",
    "auto_acknowledge_stale",
    "celery_app",
    "deliver_event",
    "dispatch_pending",
    "retry_pending_refunds",
]
