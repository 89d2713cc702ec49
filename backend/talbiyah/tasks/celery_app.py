# backend/talbiyah/tasks/celery_app.py
"""
Celery application configuration for Talbiyah.

This module sets up the Celery app with Redis as the broker and backend,
configures task serialization and timezone, and registers the beat schedule.
"""

import logging
from typing import Any, Dict, Type, cast

from celery import Celery, Task
from celery.signals import setup_logging

from ..core.config import settings
from .beat_schedule import get_beat_schedule


def _normalize_broker_url(url: str) -> str:
    # Ensure Redis URL includes database number
    if url.startswith("redis") and not any(url.endswith(f"/{i}") for i in range(16)):
        return f"{url.rstrip('/')}/0"
    return url


def create_celery_app() -> Celery:
    """
    Create and configure the Celery application.

    Returns:
        Celery: Configured Celery application instance
    """
    broker_url = _normalize_broker_url(settings.broker_url)

    celery_app = Celery(
        "talbiyah",
        broker=broker_url,
        backend=broker_url,
    )

    celery_app.conf.update(
        {
            # Task settings
            "task_serializer": "json",
            "accept_content": ["json"],
            "result_serializer": "json",
            "timezone": "UTC",
            "enable_utc": True,
            "result_expires": 3600,
            # Worker settings
            "worker_prefetch_multiplier": 4,
            "worker_max_tasks_per_child": 1000,
            # Task execution settings
            "task_soft_time_limit": 300,  # 5 minutes soft limit
            "task_time_limit": 600,  # 10 minutes hard limit
            "task_acks_late": True,
            "task_reject_on_worker_lost": True,
            # Error handling
            "task_default_retry_delay": 60,
            "task_max_retries": 3,
            "beat_schedule_filename": "celerybeat-schedule",
            "worker_hijack_root_logger": False,
            "worker_redirect_stdouts": True,
            "worker_redirect_stdouts_level": "INFO",
            "broker_transport_options": {
                "visibility_timeout": 3600,
            },
            # Run tasks inline under pytest
            "task_always_eager": settings.is_testing,
            "task_eager_propagates": settings.is_testing,
        }
    )

    celery_app.conf.imports = (
        "talbiyah.tasks.confirmation_tasks",
        "talbiyah.tasks.notification_tasks",
    )

    celery_app.conf.task_routes = {
        "confirmations.*": {"queue": "confirmations"},
        "outbox.*": {"queue": "notifications"},
    }

    celery_app.conf.beat_schedule = get_beat_schedule()

    return celery_app


# Disable Celery's default logging configuration
@setup_logging.connect  # type: ignore[misc]
def config_loggers(*args: Any, **kwargs: Any) -> None:
    """Configure logging to integrate with the application's logging setup."""
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


celery_app = create_celery_app()


class BaseTask(Task):  # type: ignore[misc]
    """Base task with failure and retry logging."""

    def on_failure(self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any) -> None:
        """Log task failures."""
        logger = logging.getLogger(__name__)
        logger.error(
            f"Task {self.name}[{task_id}] failed with exception: {exc}",
            exc_info=True,
            extra={
                "task_id": task_id,
                "task_name": self.name,
                "task_args": str(args),
                "task_kwargs": str(kwargs),
            },
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any) -> None:
        """Log task retries."""
        logger = logging.getLogger(__name__)
        logger.warning(
            f"Task {self.name}[{task_id}] retry {self.request.retries} due to: {exc}",
            extra={
                "task_id": task_id,
                "task_name": self.name,
                "retry_count": self.request.retries,
            },
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)


# Register BaseTask as default task base for the app
celery_app.Task = cast(Type[Task], BaseTask)


@celery_app.task(name="talbiyah.tasks.health_check")  # type: ignore[misc]
def health_check() -> Dict[str, str]:
    """
    Simple health check task to verify Celery is working.

    Returns:
        dict: Health check response
    """
    from datetime import datetime, timezone

    current_task = celery_app.current_task

    return {
        "status": "healthy",
        "worker": current_task.request.hostname if current_task else "unknown",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
