# backend/talbiyah/models/user.py
"""
Account models referenced by the lesson confirmation workflow.

Users cover both teachers and the paying parents of learners. Learners are
the students attending lessons; every learner belongs to a parent ``User``
who pays for bookings and receives credit refunds.
"""

from typing import Any, Optional

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class User(Base):
    """
    Teacher or payer account.

    Attributes:
        id: ULID primary key
        email: Contact address used for notifications
        first_name: Given name
        last_name: Family name
    """

    __tablename__ = "users"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    learners = relationship("Learner", back_populates="parent")
    credits = relationship("UserCredits", back_populates="user", uselist=False)

    def __repr__(self) -> str:
        return f"<User {self.id}: {self.email}>"

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class Learner(Base):
    """Student attending lessons, owned by a paying parent account."""

    __tablename__ = "learners"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    name = Column(String(200), nullable=False)
    parent_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    parent = relationship("User", back_populates="learners")

    def __repr__(self) -> str:
        return f"<Learner {self.id}: {self.name} (parent={self.parent_id})>"

    @property
    def payer_id(self) -> Optional[Any]:
        """The account that pays for this learner's lessons."""
        return self.parent_id


class Subject(Base):
    """Taught subject (Quran, Arabic, Islamic studies...)."""

    __tablename__ = "subjects"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    name = Column(String(200), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<Subject {self.id}: {self.name}>"
