# backend/tests/conftest.py
"""
Pytest configuration for the Talbiyah lesson service.

Tests run against an in-memory SQLite database shared by every session
(StaticPool), so services and Celery tasks that open their own sessions see
the same data as the test. Every table is emptied after each test.
"""

import os
import sys

# CRITICAL: Set testing mode BEFORE any talbiyah imports!
os.environ["IS_TESTING"] = "true"
os.environ["TEST_DATABASE_URL"] = "sqlite://"
os.environ["EMAIL_PROVIDER"] = "console"
os.environ.pop("INTERNAL_API_TOKEN", None)

# Mock Resend globally so no test can send a real email
import unittest.mock

global_resend_mock = unittest.mock.patch("resend.Emails.send")
mocked_send = global_resend_mock.start()
mocked_send.return_value = {"id": "test-email-id"}

# Add the backend directory to Python path so imports work
backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if backend_dir not in sys.path:
    sys.path.insert(0, backend_dir)

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Optional

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.orm import Session

from talbiyah.api.dependencies.database import get_db
from talbiyah.api.dependencies.services import (
    get_auto_acknowledge_service,
    get_lesson_confirmation_service,
)
from talbiyah.core.config import settings
from talbiyah.database import Base, SessionLocal, engine
from talbiyah.main import app
from talbiyah.models import Learner, Lesson, Subject, User, UserCredits
from talbiyah.models.lesson import ConfirmationStatus, LessonStatus
from talbiyah.services.auto_acknowledge_service import AutoAcknowledgeService
from talbiyah.services.lesson_confirmation_service import LessonConfirmationService

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _validate_test_database_url(database_url: str) -> None:
    """Refuse to run against anything that looks like a production database."""
    if settings.is_production_database(database_url):
        raise RuntimeError(
            f"Refusing to run tests against production database URL: {database_url[:30]}..."
        )


_validate_test_database_url(settings.database_url)


@pytest.fixture(scope="session", autouse=True)
def _schema():
    """Create every table once for the test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


def _truncate_all() -> None:
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def db() -> Session:
    """Session for the test; every table is emptied afterwards."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        _truncate_all()


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Frozen clock injected into services."""
    return lambda: NOW


# ============================================================================
# Factories
# ============================================================================


@pytest.fixture
def teacher(db: Session) -> User:
    user = User(email="ustadha.maryam@example.com", first_name="Maryam", last_name="Siddiqui")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def parent(db: Session) -> User:
    user = User(email="parent.yusuf@example.com", first_name="Yusuf", last_name="Rahman")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def learner(db: Session, parent: User) -> Learner:
    child = Learner(name="Aisha Rahman", parent_id=parent.id)
    db.add(child)
    db.commit()
    return child


@pytest.fixture
def subject(db: Session) -> Subject:
    quran = Subject(name="Quran Recitation")
    db.add(quran)
    db.commit()
    return quran


@pytest.fixture
def parent_credits(db: Session, parent: User) -> UserCredits:
    balance = UserCredits(user_id=parent.id, credits_remaining=Decimal("10"))
    db.add(balance)
    db.commit()
    return balance


@pytest.fixture
def make_lesson(db: Session, teacher: User, learner: Learner, subject: Subject):
    """Create a lesson; defaults to booked + pending, requested an hour ago, starting in two days."""

    def _make(
        *,
        requested_at: Optional[datetime] = None,
        scheduled_time: Optional[datetime] = None,
        status: str = LessonStatus.BOOKED.value,
        confirmation_status: str = ConfirmationStatus.PENDING.value,
        credits_paid: Optional[Decimal] = None,
        **overrides: Any,
    ) -> Lesson:
        lesson = Lesson(
            teacher_id=teacher.id,
            learner_id=learner.id,
            subject_id=subject.id,
            scheduled_time=scheduled_time or NOW + timedelta(days=2),
            duration_minutes=overrides.pop("duration_minutes", 45),
            status=status,
            confirmation_status=confirmation_status,
            confirmation_requested_at=requested_at or NOW - timedelta(hours=1),
            credits_paid=credits_paid,
            **overrides,
        )
        db.add(lesson)
        db.commit()
        return lesson

    return _make


@pytest.fixture
def pending_lesson(make_lesson) -> Lesson:
    return make_lesson()


# ============================================================================
# API client
# ============================================================================


@pytest.fixture
def client(db: Session) -> TestClient:
    """TestClient whose requests share the test session and the frozen clock."""

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_lesson_confirmation_service] = lambda: LessonConfirmationService(
        db, clock=lambda: NOW
    )
    app.dependency_overrides[get_auto_acknowledge_service] = lambda: AutoAcknowledgeService(
        db, clock=lambda: NOW
    )
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
