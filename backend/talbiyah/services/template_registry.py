"""
Template registry for strongly-typed access to Jinja templates.

Use with TemplateService to avoid stringly-typed paths.
"""

from enum import Enum

from ..core.constants import (
    EVENT_LESSON_ACKNOWLEDGED,
    EVENT_LESSON_AUTO_ACKNOWLEDGED,
    EVENT_LESSON_DECLINED,
    EVENT_LESSON_REFUND_COMPLETED,
)


class TemplateRegistry(str, Enum):
    LESSON_ACKNOWLEDGED = "email/lesson_acknowledged.html"
    LESSON_DECLINED = "email/lesson_declined.html"
    LESSON_AUTO_ACKNOWLEDGED = "email/lesson_auto_acknowledged.html"
    LESSON_REFUND_COMPLETED = "email/lesson_refund_completed.html"


EVENT_TEMPLATES: dict[str, TemplateRegistry] = {
    EVENT_LESSON_ACKNOWLEDGED: TemplateRegistry.LESSON_ACKNOWLEDGED,
    EVENT_LESSON_DECLINED: TemplateRegistry.LESSON_DECLINED,
    EVENT_LESSON_AUTO_ACKNOWLEDGED: TemplateRegistry.LESSON_AUTO_ACKNOWLEDGED,
    EVENT_LESSON_REFUND_COMPLETED: TemplateRegistry.LESSON_REFUND_COMPLETED,
}


def email_subject(event_type: str, payload: dict) -> str:
    """Subject line for a lesson notification email."""
    student = payload.get("student_name") or "your child"
    when = payload.get("scheduled_time_display") or "the scheduled time"
    if event_type == EVENT_LESSON_DECLINED:
        return f"Lesson for {student} on {when} was declined"
    if event_type == EVENT_LESSON_REFUND_COMPLETED:
        return f"Credits returned for {student}'s cancelled lesson"
    return f"Lesson confirmed: {student} on {when}"
