# backend/talbiyah/services/email.py
"""
Email Service for the Talbiyah platform.

Sends through the Resend API when ``EMAIL_PROVIDER=resend``; the ``console``
provider only logs, which is what development and the test-suite use.
"""

import logging
import re
from typing import Any, Dict, Optional, Union

import resend
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import ServiceException
from .base import BaseService

logger = logging.getLogger(__name__)


def html_to_text(html_content: str) -> str:
    """Plain-text alternative for an HTML body."""
    text = re.sub(r"<[^>]+>", "", html_content)
    return re.sub(r"\s+", " ", text).strip()


class EmailService(BaseService):
    """Service for sending emails using Resend."""

    def __init__(self, db: Optional[Session] = None):
        super().__init__(db)  # type: ignore[arg-type]
        api_key = settings.resend_api_key.get_secret_value() if settings.resend_api_key else ""
        if not api_key:
            raise ServiceException("Resend API key not configured")
        resend.api_key = api_key
        self.from_email = settings.from_email

    @BaseService.measure_operation("send_email")
    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send an email using Resend.

        Returns:
            The Resend API response

        Raises:
            ServiceException: If the provider rejects the message
        """
        email_data = {
            "from": self.from_email,
            "to": to_email,
            "subject": subject,
            "html": html_content,
            # Always include text version for deliverability
            "text": text_content or html_to_text(html_content),
        }
        try:
            response = resend.Emails.send(email_data)  # type: ignore[arg-type]
        except Exception as e:
            self.logger.error(f"Failed to send email to {to_email}: {str(e)}")
            self.log_operation("email_failed", to_email=to_email, subject=subject, error=str(e))
            raise ServiceException(f"Email sending failed: {str(e)}")

        self.log_operation("email_sent", to_email=to_email, subject=subject)
        return dict(response) if response else {}


class ConsoleEmailService(BaseService):
    """Logs emails instead of sending them."""

    def __init__(self, db: Optional[Session] = None):
        super().__init__(db)  # type: ignore[arg-type]
        self.from_email = settings.from_email
        self.sent: list[Dict[str, Any]] = []

    @BaseService.measure_operation("send_email")
    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
    ) -> Dict[str, Any]:
        message = {
            "from": self.from_email,
            "to": to_email,
            "subject": subject,
            "text": text_content or html_to_text(html_content),
        }
        self.sent.append(message)
        self.logger.info("[console email] to=%s subject=%s", to_email, subject)
        return {"id": f"console-{len(self.sent)}"}


def create_email_service(db: Optional[Session] = None) -> Union[EmailService, ConsoleEmailService]:
    """Email backend selected by ``settings.email_provider``."""
    if settings.email_provider == "resend":
        return EmailService(db)
    return ConsoleEmailService(db)
