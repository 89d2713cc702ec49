"""
Database models for the Talbiyah lesson service.

- Accounts: teachers, paying parents, learners, subjects
- Lessons and their confirmation state
- Credit ledger (balances and transactions)
- Transactional outbox and notification delivery records
"""

from .credit import CreditTransaction, CreditTransactionType, UserCredits
from .event_outbox import EventOutbox, EventOutboxStatus, NotificationDelivery
from .lesson import ConfirmationStatus, Lesson, LessonStatus
from .user import Learner, Subject, User

__all__ = [
    "ConfirmationStatus",
    "CreditTransaction",
    "CreditTransactionType",
    "EventOutbox",
    "EventOutboxStatus",
    "Learner",
    "Lesson",
    "LessonStatus",
    "NotificationDelivery",
    "Subject",
    "User",
    "UserCredits",
]
