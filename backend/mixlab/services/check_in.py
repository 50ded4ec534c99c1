# backend/mixlab/services/check_in.py
"""
Check-in artifacts for studio reservations.

Each reservation gets a QR code (PNG data URL) encoding the booking payload
plus a check-in token. The token is an HMAC of the booking id under the
application secret, so front-desk scanning can verify a code without a
database lookup of a stored secret.
"""

import base64
from dataclasses import dataclass
import hashlib
import hmac
import io
import json
import logging
from typing import Any, Dict, Optional

from pydantic import SecretStr
import qrcode

from ..core.config import settings

logger = logging.getLogger(__name__)


class ArtifactGenerationError(Exception):
    """Raised when the check-in QR code could not be produced."""


@dataclass(frozen=True)
class CheckInArtifact:
    token: str
    data_url: str


def check_in_token(booking_id: str, secret: Optional[SecretStr] = None) -> str:
    key = (secret or settings.secret_key).get_secret_value().encode("utf-8")
    return hmac.new(key, f"check-in:{booking_id}".encode("utf-8"), hashlib.sha256).hexdigest()


def verify_check_in_token(booking_id: str, token: str, secret: Optional[SecretStr] = None) -> bool:
    return hmac.compare_digest(check_in_token(booking_id, secret), token or "")


class CheckInArtifactGenerator:
    """Renders the check-in QR code for a reservation."""

    def __init__(self, secret: Optional[SecretStr] = None):
        self.secret = secret

    def generate(self, payload: Dict[str, Any], correlation_id: str) -> CheckInArtifact:
        """
        Build the QR code for ``payload``.

        Args:
            payload: Booking fields to embed (booking_id, name, date, time, hours)
            correlation_id: Booking id the token is bound to

        Raises:
            ArtifactGenerationError: If encoding or rendering fails
        """
        token = check_in_token(correlation_id, self.secret)
        content = json.dumps({**payload, "token": token}, default=str, sort_keys=True)
        try:
            img = qrcode.make(content)
            buf = io.BytesIO()
            img.save(buf, format="PNG")
        except Exception as exc:
            logger.error(f"QR generation failed for {correlation_id}: {str(exc)}")
            raise ArtifactGenerationError(str(exc)) from exc

        data_url = "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("utf-8")
        return CheckInArtifact(token=token, data_url=data_url)


def check_in_payload(reservation: Any) -> Dict[str, Any]:
    """Booking fields embedded in the QR code."""
    return {
        "booking_id": reservation.booking_id,
        "name": reservation.name,
        "date": reservation.booking_date.isoformat(),
        "time": reservation.start_time.strftime("%H:%M"),
        "hours": reservation.duration_hours,
    }


def attach_check_in_artifact(
    generator: CheckInArtifactGenerator, reservation: Any
) -> Optional[CheckInArtifact]:
    """
    Generate and store the check-in artifact on ``reservation``.

    Failures are logged and reported as None; the reservation stays valid
    without a QR code and one is generated on the next attempt.
    """
    try:
        artifact = generator.generate(check_in_payload(reservation), reservation.booking_id)
    except ArtifactGenerationError as exc:
        logger.error(
            "Check-in artifact unavailable",
            extra={"booking_id": reservation.booking_id, "error": str(exc)},
        )
        return None
    reservation.check_in_token = artifact.token
    reservation.check_in_qr = artifact.data_url
    return artifact
