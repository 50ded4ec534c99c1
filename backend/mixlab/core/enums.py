# backend/mixlab/core/enums.py
"""
Core enums for the MixLab booking backend.

Stored values are the lowercase strings persisted in the reservations table
and exchanged with clients.
"""

from enum import Enum


class ServiceKind(str, Enum):
    """Studio services; each kind maps to an hourly rate."""

    MUSIC_LESSON = "music_lesson"
    RECORDING = "recording"
    REHEARSAL = "rehearsal"
    DANCE = "dance"
    ARRANGEMENT = "arrangement"
    VOICEOVER = "voiceover"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    WALLET = "wallet"


class PaymentStatus(str, Enum):
    """
    Payment lifecycle.

    pending -> paid | failed | cancelled. Cash bookings start in CASH, which
    holds the slot the same way PAID does.
    """

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"
    CASH = "cash"


class CheckInStatus(str, Enum):
    NOT_ARRIVED = "not_arrived"
    CHECKED_IN = "checked_in"
    CANCELLED = "cancelled"


class InvoiceStatus(str, Enum):
    """Invoice statuses reported by the payment provider."""

    PENDING = "PENDING"
    PAID = "PAID"
    SETTLED = "SETTLED"
    EXPIRED = "EXPIRED"
    FAILED = "FAILED"


# Statuses that occupy a time slot for conflict purposes.
HOLDING_PAYMENT_STATUSES = (
    PaymentStatus.PENDING.value,
    PaymentStatus.PAID.value,
    PaymentStatus.CASH.value,
)

# Provider methods offered on the hosted invoice page per payment method.
PROVIDER_PAYMENT_METHODS = {
    PaymentMethod.CARD: ["CREDIT_CARD", "DEBIT_CARD"],
    PaymentMethod.WALLET: ["GCASH"],
}
