import logging
from typing import Any, Dict

from .email import booking_confirmation_subject
from .email_templates import BOOKING_CONFIRMATION, render_template

logger = logging.getLogger(__name__)


class ConsoleEmailService:
    """Email service used when no provider is configured; logs instead of sending."""

    def __init__(self, *_: Any, **__: Any) -> None:
        self.sent: list[Dict[str, Any]] = []

    def send_email(self, to_email: str, subject: str, html_content: str, **_: Any) -> Dict[str, Any]:
        logger.info("[EMAIL] to=%s subject=%s (%d bytes)", to_email, subject, len(html_content))
        self.sent.append({"to": to_email, "subject": subject, "html": html_content})
        return {"id": f"console-{len(self.sent)}"}

    def send_booking_confirmation(self, booking: Dict[str, Any], qr_data_url: str) -> bool:
        to_email = booking.get("email")
        if not to_email:
            return False
        html_content = render_template(
            BOOKING_CONFIRMATION, {"booking": booking, "qr_data_url": qr_data_url}
        )
        self.send_email(to_email, booking_confirmation_subject(booking["booking_id"]), html_content)
        return True
