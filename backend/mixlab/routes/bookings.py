# backend/mixlab/routes/bookings.py
"""
Booking routes.

Endpoints:
    POST /create - Create a reservation (cash or hosted invoice)
    GET /available-slots - Start times for a date and duration
    POST /update-payment - Manual payment status update
    GET /{booking_id} - Reservation details
"""

import asyncio
from datetime import date
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, Query

from ..api.dependencies import get_availability_service, get_booking_service, get_payment_reconciler
from ..auth import ADMIN_ROLE, get_optional_credential, verify_credential_claims
from ..core.enums import PaymentStatus
from ..core.exceptions import DomainException, ForbiddenException, UnauthorizedException
from ..core.timeutils import format_hhmm
from ..schemas.reservation import (
    AvailableSlotsData,
    AvailableSlotsResponse,
    BookingCreate,
    BookingCreateData,
    BookingCreateResponse,
    PaymentStatusUpdate,
    ReservationEnvelope,
    ReservationResponse,
)
from ..services.availability_service import AvailabilityService
from ..services.booking_service import BookingService
from ..services.payment_reconciler import PaymentReconciler

logger = logging.getLogger(__name__)

router = APIRouter(tags=["bookings"])

# Statuses that mean money was collected; only staff may set them by hand
STAFF_ONLY_STATUSES = (PaymentStatus.PAID.value, PaymentStatus.CASH.value)


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    raise exc.to_http_exception()


@router.post("/create", response_model=BookingCreateResponse)
async def create_booking(
    booking_data: BookingCreate,
    credential: Optional[str] = Depends(get_optional_credential),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingCreateResponse:
    """Create a booking; non-cash bookings return the hosted payment URL."""
    try:
        result = await asyncio.to_thread(booking_service.create_booking, booking_data, credential)
    except DomainException as e:
        handle_domain_exception(e)

    return BookingCreateResponse(
        data=BookingCreateData(
            booking=ReservationResponse.model_validate(result.reservation),
            qr_code=result.qr_code,
            payment_url=result.payment_url,
        )
    )


@router.get("/available-slots", response_model=AvailableSlotsResponse)
async def get_available_slots(
    booking_date: date = Query(..., alias="date"),
    duration: Optional[int] = Query(None, description="Session length in hours"),
    hours: Optional[int] = Query(None, description="Alias of duration"),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> AvailableSlotsResponse:
    duration_hours = duration if duration is not None else hours if hours is not None else 1
    try:
        slots = await asyncio.to_thread(
            availability_service.available_slots, booking_date, duration_hours
        )
    except DomainException as e:
        handle_domain_exception(e)

    return AvailableSlotsResponse(
        data=AvailableSlotsData(
            date=booking_date,
            hours=duration_hours,
            available_slots=[format_hhmm(slot) for slot in slots],
        )
    )


@router.post("/update-payment", response_model=ReservationEnvelope)
async def update_payment_status(
    update: PaymentStatusUpdate,
    credential: Optional[str] = Depends(get_optional_credential),
    reconciler: PaymentReconciler = Depends(get_payment_reconciler),
) -> ReservationEnvelope:
    """
    Manually set a payment status.

    Payment result pages may report ``failed`` or ``cancelled``; marking a
    booking ``paid`` or ``cash`` requires an admin credential.
    """
    try:
        if update.payment_status in STAFF_ONLY_STATUSES:
            claims = verify_credential_claims(credential)
            if claims is None:
                raise UnauthorizedException("Not authenticated", code="NOT_AUTHENTICATED")
            if claims.get("role") != ADMIN_ROLE:
                raise ForbiddenException("Admin access required", code="ADMIN_REQUIRED")

        reservation = await asyncio.to_thread(
            reconciler.apply_manual_status,
            update.booking_id,
            update.payment_status,
            update.provider_payment_id,
        )
    except DomainException as e:
        handle_domain_exception(e)

    return ReservationEnvelope(data=ReservationResponse.model_validate(reservation))


@router.get("/{booking_id}", response_model=ReservationEnvelope)
async def get_booking(
    booking_id: str,
    booking_service: BookingService = Depends(get_booking_service),
) -> ReservationEnvelope:
    try:
        reservation = await asyncio.to_thread(booking_service.get_booking, booking_id)
    except DomainException as e:
        handle_domain_exception(e)

    return ReservationEnvelope(data=ReservationResponse.model_validate(reservation))
