# backend/talbiyah/tasks/beat_schedule.py
"""
Celery Beat schedule configuration for Talbiyah.

The auto-acknowledge sweep runs every ``AUTO_ACKNOWLEDGE_SWEEP_MINUTES``;
refund retries and outbox dispatch run on short fixed intervals.
"""

from datetime import timedelta
from typing import Any, Dict

from ..core.config import settings


def get_beat_schedule() -> Dict[str, Dict[str, Any]]:
    """Return the periodic task schedule."""
    return {
        "auto-acknowledge-stale-lessons": {
            "task": "confirmations.auto_acknowledge_stale",
            "schedule": timedelta(minutes=settings.auto_acknowledge_sweep_minutes),
            "options": {"queue": "confirmations", "priority": 7},
        },
        "retry-pending-refunds": {
            "task": "confirmations.retry_pending_refunds",
            "schedule": timedelta(minutes=1),
            "options": {"queue": "confirmations", "priority": 8},
        },
        "dispatch-notification-outbox": {
            "task": "outbox.dispatch_pending",
            "schedule": timedelta(seconds=30),
            "options": {"queue": "notifications", "priority": 5},
        },
    }
