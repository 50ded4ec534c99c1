# backend/mixlab/models/reservation.py
"""
Reservation model for the MixLab studio.

A reservation is a self-contained record of one booked studio interval:
date, start/end time, duration, the priced service, payment state and
check-in state. The booking id is the external correlation key shared with
the payment provider and encoded into the check-in QR code.
"""

from datetime import datetime, timezone
import logging
from typing import Any, Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import ExcludeConstraint
import ulid

from ..core.config import settings
from ..core.enums import CheckInStatus, PaymentStatus
from ..database import Base

logger = logging.getLogger(__name__)

IS_SQLITE = settings.is_sqlite

HOLDING_ROWS_PREDICATE = (
    "payment_status IN ('pending', 'paid', 'cash') AND check_in_status <> 'cancelled'"
)


class Reservation(Base):
    """
    Booked studio time with payment and check-in state.

    ``starts_at``/``ends_at`` duplicate the date and times as timestamps so
    PostgreSQL can enforce non-overlap of holding rows with an exclusion
    constraint.
    """

    __tablename__ = "reservations"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id = Column(String(40), nullable=False, unique=True, index=True)

    # Ownership (guest bookings leave this empty)
    owner_account_id = Column(String(64), nullable=True, index=True)

    # Contact details
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    contact = Column(String(64), nullable=True)
    home_address = Column(Text, nullable=True)
    birthday = Column(Date, nullable=True)
    members = Column(Integer, nullable=False, default=1)

    # Reserved interval
    service_kind = Column(String(32), nullable=False)
    booking_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    duration_hours = Column(Integer, nullable=False)
    starts_at = Column(DateTime, nullable=False)
    ends_at = Column(DateTime, nullable=False)

    # Pricing and payment
    amount = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(String(16), nullable=False)
    payment_status = Column(String(16), nullable=False, default=PaymentStatus.PENDING.value)
    reference_number = Column(String(128), nullable=True)
    provider_invoice_id = Column(String(128), nullable=True, index=True)
    provider_payment_id = Column(String(128), nullable=True)
    payment_url = Column(Text, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    # Check-in
    check_in_status = Column(
        String(16), nullable=False, default=CheckInStatus.NOT_ARRIVED.value
    )
    check_in_token = Column(String(128), nullable=True)
    check_in_qr = Column(Text, nullable=True)
    checked_in_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    _table_constraints: list[Any] = [
        CheckConstraint(
            "payment_status IN ('pending', 'paid', 'failed', 'cancelled', 'cash')",
            name="ck_reservations_payment_status",
        ),
        CheckConstraint(
            "check_in_status IN ('not_arrived', 'checked_in', 'cancelled')",
            name="ck_reservations_check_in_status",
        ),
        CheckConstraint("payment_method IN ('cash', 'card', 'wallet')", name="ck_reservations_method"),
        CheckConstraint("duration_hours > 0", name="check_duration_positive"),
        CheckConstraint("amount >= 0", name="check_amount_non_negative"),
    ]

    if not IS_SQLITE:
        _table_constraints.append(
            ExcludeConstraint(
                (func.tsrange(starts_at, ends_at, text("'[)'")), "&&"),
                name="reservations_no_overlap",
                using="gist",
                where=text(HOLDING_ROWS_PREDICATE),
            )
        )

    __table_args__ = tuple(_table_constraints)

    def __repr__(self) -> str:
        return (
            f"<Reservation {self.booking_id}: date={self.booking_date}, "
            f"time={self.start_time}-{self.end_time}, payment={self.payment_status}, "
            f"check_in={self.check_in_status}>"
        )

    @property
    def holds_slot(self) -> bool:
        """True when this reservation blocks its interval for other bookings."""
        return (
            self.payment_status
            in (PaymentStatus.PENDING.value, PaymentStatus.PAID.value, PaymentStatus.CASH.value)
            and self.check_in_status != CheckInStatus.CANCELLED.value
        )

    @property
    def has_check_in_artifact(self) -> bool:
        return bool(self.check_in_qr)

    def mark_paid(
        self,
        provider_payment_id: Optional[str] = None,
        reference_number: Optional[str] = None,
    ) -> None:
        self.payment_status = PaymentStatus.PAID.value
        if provider_payment_id:
            self.provider_payment_id = provider_payment_id
        if reference_number:
            self.reference_number = reference_number
        if self.paid_at is None:
            self.paid_at = datetime.now(timezone.utc)
        logger.info(f"Reservation {self.booking_id} marked as paid")

    def cancel(self) -> None:
        """Cancel check-in; an unpaid pending payment is cancelled with it."""
        self.check_in_status = CheckInStatus.CANCELLED.value
        self.cancelled_at = datetime.now(timezone.utc)
        if self.payment_status == PaymentStatus.PENDING.value:
            self.payment_status = PaymentStatus.CANCELLED.value
        logger.info(f"Reservation {self.booking_id} cancelled")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "booking_id": self.booking_id,
            "owner_account_id": self.owner_account_id,
            "name": self.name,
            "email": self.email,
            "contact": self.contact,
            "home_address": self.home_address,
            "birthday": self.birthday.isoformat() if self.birthday else None,
            "members": self.members,
            "service_kind": self.service_kind,
            "booking_date": self.booking_date.isoformat() if self.booking_date else None,
            "start_time": self.start_time.strftime("%H:%M") if self.start_time else None,
            "end_time": self.end_time.strftime("%H:%M") if self.end_time else None,
            "duration_hours": self.duration_hours,
            "amount": float(self.amount) if self.amount is not None else None,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "check_in_status": self.check_in_status,
            "reference_number": self.reference_number,
            "provider_invoice_id": self.provider_invoice_id,
            "provider_payment_id": self.provider_payment_id,
            "payment_url": self.payment_url,
            "check_in_qr": self.check_in_qr,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "checked_in_at": self.checked_in_at.isoformat() if self.checked_in_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


Index(
    "ix_reservations_holding_by_date",
    Reservation.booking_date,
    Reservation.start_time,
    postgresql_where=text(HOLDING_ROWS_PREDICATE),
)
