# backend/casaora/services/email.py
"""
Email Service for the Casaora platform.

Sends transactional email through the Resend API.
"""

import logging
import re
from typing import Any, Dict, Optional

import resend

from ..core.config import settings
from ..core.exceptions import ServiceException

logger = logging.getLogger(__name__)


class EmailService:
    """Service for sending emails using Resend API."""

    def __init__(self) -> None:
        self.from_email = settings.email_from_address
        self.from_name = settings.email_from_name
        self.logger = logging.getLogger(self.__class__.__name__)

    @staticmethod
    def is_configured() -> bool:
        return bool(settings.resend_api_key)

    def _html_to_text(self, html_content: str) -> str:
        """Convert HTML content to plain text for better deliverability"""
        text = re.sub(r"<[^>]+>", "", html_content)
        text = re.sub(r"\s+", " ", text)
        return text.strip()

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send an email using Resend.

        Raises:
            ServiceException: If the API key is missing or sending fails
        """
        if not self.is_configured():
            raise ServiceException("Resend API key not configured")

        resend.api_key = settings.resend_api_key
        email_data: Dict[str, Any] = {
            "from": f"{self.from_name} <{self.from_email}>",
            "to": [to_email],
            "subject": subject,
            "html": html_content,
            # Always include a text version for deliverability
            "text": text_content or self._html_to_text(html_content),
        }

        try:
            response = resend.Emails.send(email_data)
        except Exception as e:
            error_msg = str(e) or "Unknown error"
            self.logger.error(
                f"Failed to send email to {to_email}: {error_msg}",
                extra={"subject": subject, "error_type": type(e).__name__},
            )
            raise ServiceException(f"Email sending failed: {error_msg}") from e

        self.logger.info(f"Email sent successfully to {to_email} - Subject: {subject}")
        return dict(response) if response else {}
