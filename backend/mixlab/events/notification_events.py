"""Booking notification events."""
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional


@dataclass
class BookingConfirmationRequested:
    """Fired when a confirmation email with the check-in QR code should go out."""

    booking: Dict[str, Any]
    qr_data_url: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class UserNotification:
    """Real-time message for one account (``user:{id}`` channel)."""

    account_id: str
    type: str
    message: str
    link: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AdminNotification:
    """Real-time message for the admin dashboard (``admins`` channel)."""

    type: str
    message: str
    link: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
