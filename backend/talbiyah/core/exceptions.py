# backend/talbiyah/core/exceptions.py
"""
Domain-specific exceptions for the Talbiyah lesson service.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def _http(self, status_code: int) -> HTTPException:
        return HTTPException(
            status_code=status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )

    def to_http_exception(self) -> HTTPException:
        """Default conversion to HTTPException (override in subclasses)."""
        return self._http(status.HTTP_500_INTERNAL_SERVER_ERROR)


class ValidationException(DomainException):
    """Raised when business validation fails."""

    def to_http_exception(self) -> HTTPException:
        return self._http(status.HTTP_400_BAD_REQUEST)


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    def to_http_exception(self) -> HTTPException:
        return self._http(status.HTTP_404_NOT_FOUND)


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    def to_http_exception(self) -> HTTPException:
        return self._http(status.HTTP_409_CONFLICT)


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    def to_http_exception(self) -> HTTPException:
        return self._http(HTTP_422_UNPROCESSABLE)


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific lesson confirmation exceptions


class LessonNotFoundException(NotFoundException):
    """Raised when a lesson id does not resolve."""

    def __init__(self, lesson_id: str):
        super().__init__(
            message=f"Lesson {lesson_id} not found",
            code="LESSON_NOT_FOUND",
            details={"lesson_id": lesson_id},
        )


class InvalidStateTransitionException(ConflictException):
    """Raised when a lesson is no longer pending (or no longer booked)."""

    def __init__(
        self,
        lesson_id: str,
        *,
        attempted: str,
        confirmation_status: Optional[str] = None,
        status: Optional[str] = None,
        message: Optional[str] = None,
    ):
        super().__init__(
            message=message
            or f"Lesson {lesson_id} cannot be {attempted}: it has already been resolved",
            code="INVALID_STATE_TRANSITION",
            details={
                "lesson_id": lesson_id,
                "attempted": attempted,
                "confirmation_status": confirmation_status,
                "status": status,
            },
        )


class MissingDeclineReasonException(ValidationException):
    """Raised when a decline is submitted without a reason."""

    def __init__(self, lesson_id: Optional[str] = None):
        super().__init__(
            message="A reason is required to decline a lesson",
            code="MISSING_DECLINE_REASON",
            details={"lesson_id": lesson_id} if lesson_id else {},
        )


class CompensationFailedException(ServiceException):
    """Raised when the credit refund for a declined lesson could not be applied."""

    def __init__(self, lesson_id: str, payer_id: Optional[str], reason: str):
        super().__init__(
            message=f"Credit refund for lesson {lesson_id} failed: {reason}",
            code="COMPENSATION_FAILED",
            details={"lesson_id": lesson_id, "payer_id": payer_id},
        )


class NotificationFailedException(ServiceException):
    """Raised when a learner notification could not be queued or delivered."""

    def __init__(self, event_type: str, lesson_id: str, reason: str):
        super().__init__(
            message=f"Notification {event_type} for lesson {lesson_id} failed: {reason}",
            code="NOTIFICATION_FAILED",
            details={"event_type": event_type, "lesson_id": lesson_id},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
