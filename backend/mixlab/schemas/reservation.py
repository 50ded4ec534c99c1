# backend/mixlab/schemas/reservation.py
"""
Reservation schemas for the MixLab booking backend.

Request bodies accept the snake_case field names as well as the camelCase
names the booking page posts (``bookingDate``, ``paymentMethod``...).
Presence and range rules for the booking fields are enforced by
BookingService so every rejection carries the same error shape.
"""

from datetime import date, time
import re
from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer, field_validator

from ._strict_base import StrictModel, StrictRequestModel

# Field named ``date`` below would shadow the type inside the class body
DateFilter = date

DATE_ONLY_REGEX = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_REGEX = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def _ensure_date_only(value: object, field_name: str) -> object:
    if isinstance(value, str):
        candidate = value.strip()
        if not candidate:
            return None
        if not DATE_ONLY_REGEX.fullmatch(candidate):
            raise ValueError(f"{field_name} must be a YYYY-MM-DD date-only string")
        return candidate
    return value


def parse_time_value(value: object) -> object:
    """Accept ``HH:MM`` or ``HH:MM:SS`` strings."""
    if isinstance(value, str):
        candidate = value.strip()
        if not candidate:
            return None
        match = TIME_REGEX.fullmatch(candidate)
        if not match:
            raise ValueError(f"Invalid time format: {value}. Expected HH:MM format.")
        hour, minute = int(match.group(1)), int(match.group(2))
        return time(hour, minute)
    return value


class BookingCreate(StrictRequestModel):
    """Booking request as submitted from the booking page."""

    name: Optional[str] = Field(None, max_length=255)
    birthday: Optional[date] = None
    email: Optional[str] = Field(None, max_length=255)
    contact: Optional[str] = Field(None, max_length=64)
    home_address: Optional[str] = Field(
        None, validation_alias=AliasChoices("home_address", "homeAddress")
    )
    service_kind: Optional[str] = Field(
        None, validation_alias=AliasChoices("service_kind", "serviceType", "service_type")
    )
    booking_date: Optional[date] = Field(
        None, validation_alias=AliasChoices("booking_date", "bookingDate", "date")
    )
    start_time: Optional[time] = Field(
        None, validation_alias=AliasChoices("start_time", "bookingTime", "booking_time", "time")
    )
    duration_hours: Optional[int] = Field(
        None, validation_alias=AliasChoices("duration_hours", "hours", "duration")
    )
    members: Optional[int] = Field(None, ge=1)
    payment_method: Optional[str] = Field(
        None, validation_alias=AliasChoices("payment_method", "paymentMethod")
    )

    @field_validator("booking_date", "birthday", mode="before")
    @classmethod
    def _enforce_date_only(cls, v: object) -> object:
        return _ensure_date_only(v, "date")

    @field_validator("start_time", mode="before")
    @classmethod
    def _parse_time(cls, v: object) -> object:
        return parse_time_value(v)

    @field_validator("name", "email", "contact", "home_address", "service_kind", "payment_method")
    @classmethod
    def _strip_text(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        return v or None


class ReservationResponse(BaseModel):
    """Reservation as returned to clients and the admin dashboard."""

    model_config = ConfigDict(from_attributes=True)

    booking_id: str
    owner_account_id: Optional[str] = None
    name: str
    email: Optional[str] = None
    contact: Optional[str] = None
    home_address: Optional[str] = None
    birthday: Optional[date] = None
    members: int = 1
    service_kind: str
    booking_date: date
    start_time: time
    end_time: time
    duration_hours: int
    amount: float
    payment_method: str
    payment_status: str
    check_in_status: str
    reference_number: Optional[str] = None
    provider_invoice_id: Optional[str] = None
    payment_url: Optional[str] = None
    check_in_qr: Optional[str] = None

    @field_serializer("start_time", "end_time")
    def _serialize_hhmm(self, value: time) -> str:
        return value.strftime("%H:%M")


class BookingCreateData(StrictModel):
    booking: ReservationResponse
    qr_code: Optional[str] = None
    payment_url: Optional[str] = None


class BookingCreateResponse(StrictModel):
    success: bool = True
    message: str = "Booking created successfully"
    data: BookingCreateData


class ReservationEnvelope(StrictModel):
    success: bool = True
    data: ReservationResponse


class ReservationListResponse(StrictModel):
    success: bool = True
    date: Optional[DateFilter] = None
    data: List[ReservationResponse]
    total: int
    page: int
    per_page: int
    total_pages: int


class AvailableSlotsData(StrictModel):
    date: date
    hours: int
    available_slots: List[str]


class AvailableSlotsResponse(StrictModel):
    success: bool = True
    data: AvailableSlotsData


class HourlySlot(StrictModel):
    time: str
    booked: bool
    booking_id: Optional[str] = None


class HourlySlotViewResponse(StrictModel):
    success: bool = True
    date: date
    slots: List[HourlySlot]


class PaymentStatusUpdate(StrictRequestModel):
    """Manual payment status update (redirect pages and front desk)."""

    booking_id: str = Field(..., validation_alias=AliasChoices("booking_id", "bookingId"))
    payment_status: Literal["pending", "paid", "failed", "cancelled", "cash"] = Field(
        ..., validation_alias=AliasChoices("payment_status", "paymentStatus")
    )
    provider_payment_id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices(
            "provider_payment_id", "xenditPaymentId", "xendit_payment_id"
        ),
    )


class AdminReschedule(StrictRequestModel):
    booking_date: date = Field(..., validation_alias=AliasChoices("booking_date", "bookingDate", "date"))
    start_time: time = Field(..., validation_alias=AliasChoices("start_time", "bookingTime", "time"))

    @field_validator("booking_date", mode="before")
    @classmethod
    def _enforce_date_only(cls, v: object) -> object:
        return _ensure_date_only(v, "date")

    @field_validator("start_time", mode="before")
    @classmethod
    def _parse_time(cls, v: object) -> object:
        return parse_time_value(v)


class CheckInRequest(StrictRequestModel):
    """Payload scanned from a check-in QR code."""

    booking_id: str = Field(..., validation_alias=AliasChoices("booking_id", "bookingId"))
    token: str = Field(..., min_length=1)

