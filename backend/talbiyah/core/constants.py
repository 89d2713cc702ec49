"""Application-wide constants for the Talbiyah lesson service."""

from __future__ import annotations

import os

BRAND_NAME = "Talbiyah"

API_TITLE = f"{BRAND_NAME} Lessons API"
API_DESCRIPTION = "Lesson confirmation workflow: teacher acknowledgment, decline and auto-acknowledge"
API_VERSION = "1.0.0"

# Text constraints
MAX_DECLINE_REASON_LENGTH = 500
MAX_TEACHER_MESSAGE_LENGTH = 1000
MAX_SUGGESTED_TIMES = 10

# Outbox event types
EVENT_LESSON_ACKNOWLEDGED = "lesson.acknowledged"
EVENT_LESSON_DECLINED = "lesson.declined"
EVENT_LESSON_AUTO_ACKNOWLEDGED = "lesson.auto_acknowledged"
EVENT_LESSON_REFUND_REQUESTED = "lesson.refund_requested"
EVENT_LESSON_REFUND_COMPLETED = "lesson.refund_completed"

# Frontend URLs
DEFAULT_DEV_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]


def _split_env(name: str) -> list[str]:
    value = os.getenv(name, "")
    return [origin.strip() for origin in value.split(",") if origin.strip()]


ALLOWED_ORIGINS = _split_env("ALLOWED_ORIGINS") or _split_env("CORS_ALLOW_ORIGINS") or DEFAULT_DEV_ORIGINS
