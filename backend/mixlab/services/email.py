# backend/mixlab/services/email.py
"""
Email Service for the MixLab booking backend.

Sends transactional email through the Resend API. Booking confirmations carry
the check-in QR code inline.
"""

import logging
import re
from typing import Any, Dict, Optional

import resend

from ..core.config import settings
from ..core.constants import BRAND_NAME
from ..core.exceptions import ServiceException
from .email_templates import BOOKING_CONFIRMATION, render_template

logger = logging.getLogger(__name__)


def booking_confirmation_subject(booking_id: str) -> str:
    return f"Booking Confirmed - {booking_id} | {BRAND_NAME}"


class EmailService:
    """Service for sending emails using Resend API."""

    def __init__(self, api_key: Optional[str] = None, from_email: Optional[str] = None):
        api_key = api_key or settings.resend_api_key
        if not api_key:
            raise ServiceException("Resend API key not configured")
        resend.api_key = api_key
        self.from_email = from_email or settings.email_from_address
        self.logger = logging.getLogger(self.__class__.__name__)

    def _html_to_text(self, html_content: str) -> str:
        """Convert HTML content to plain text for better deliverability"""
        text = re.sub(r"<[^>]+>", "", html_content)
        return re.sub(r"\s+", " ", text).strip()

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send a generic email using Resend.

        Raises:
            ServiceException: If email sending fails
        """
        email_data = {
            "from": self.from_email,
            "to": to_email,
            "subject": subject,
            "html": html_content,
            "text": text_content or self._html_to_text(html_content),
        }
        try:
            response = resend.Emails.send(email_data)
        except Exception as e:
            self.logger.error(f"Failed to send email to {to_email}: {str(e)}")
            raise ServiceException(f"Email sending failed: {str(e)}")

        self.logger.info(f"Email sent successfully to {to_email} - Subject: {subject}")
        return dict(response) if response else {}

    def send_booking_confirmation(self, booking: Dict[str, Any], qr_data_url: str) -> bool:
        """
        Send the booking confirmation with the check-in QR code.

        Args:
            booking: Reservation as returned by ``Reservation.to_dict``
            qr_data_url: QR code PNG data URL

        Returns:
            False when the booking has no email address
        """
        to_email = booking.get("email")
        if not to_email:
            self.logger.warning("No email provided for booking confirmation")
            return False

        html_content = render_template(
            BOOKING_CONFIRMATION, {"booking": booking, "qr_data_url": qr_data_url}
        )
        self.send_email(
            to_email=to_email,
            subject=booking_confirmation_subject(booking["booking_id"]),
            html_content=html_content,
            text_content=(
                f"Your {BRAND_NAME} booking {booking['booking_id']} on "
                f"{booking.get('booking_date')} at {booking.get('start_time')} is confirmed."
            ),
        )
        return True
