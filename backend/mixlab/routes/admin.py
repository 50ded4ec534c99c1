# backend/mixlab/routes/admin.py
"""
Admin booking dashboard routes.

Endpoints (all require an admin credential):
    GET /bookings - Reservations filtered by date, service, payment and check-in status (paginated)
    GET /bookings/slots - Hourly occupancy grid for a date
    POST /bookings/check-in - Check a guest in from the QR payload
    PATCH /bookings/{booking_id} - Reschedule
    POST /bookings/{booking_id}/cancel - Cancel and free the slot
"""

import asyncio
from datetime import date
import logging
from typing import Any, Dict, NoReturn, Optional

from fastapi import APIRouter, Depends, Query

from ..api.dependencies import get_admin_booking_service, get_availability_service
from ..auth import require_admin
from ..core.enums import CheckInStatus, PaymentStatus
from ..core.exceptions import DomainException
from ..schemas.reservation import (
    AdminReschedule,
    CheckInRequest,
    HourlySlot,
    HourlySlotViewResponse,
    ReservationEnvelope,
    ReservationListResponse,
    ReservationResponse,
)
from ..services.admin_booking_service import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    AdminBookingService,
)
from ..services.availability_service import AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin-bookings"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    raise exc.to_http_exception()


@router.get("/bookings", response_model=ReservationListResponse)
async def list_bookings(
    target_date: Optional[date] = Query(None, alias="date"),
    service_kind: Optional[str] = Query(None),
    payment_status: Optional[PaymentStatus] = Query(None),
    check_in_status: Optional[CheckInStatus] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    _admin: Dict[str, Any] = Depends(require_admin),
    service: AdminBookingService = Depends(get_admin_booking_service),
) -> ReservationListResponse:
    """Reservations for the dashboard, optionally filtered, one page at a time."""
    try:
        return await asyncio.to_thread(
            service.list_bookings,
            booking_date=target_date,
            service_kind=service_kind,
            payment_status=payment_status.value if payment_status else None,
            check_in_status=check_in_status.value if check_in_status else None,
            page=page,
            per_page=per_page,
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/bookings/slots", response_model=HourlySlotViewResponse)
async def hourly_slots(
    target_date: date = Query(..., alias="date"),
    _admin: Dict[str, Any] = Depends(require_admin),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> HourlySlotViewResponse:
    try:
        slots = await asyncio.to_thread(availability_service.hourly_slot_view, target_date)
    except DomainException as e:
        handle_domain_exception(e)

    return HourlySlotViewResponse(
        date=target_date, slots=[HourlySlot(**slot) for slot in slots]
    )


@router.post("/bookings/check-in", response_model=ReservationEnvelope)
async def check_in(
    request: CheckInRequest,
    admin: Dict[str, Any] = Depends(require_admin),
    service: AdminBookingService = Depends(get_admin_booking_service),
) -> ReservationEnvelope:
    try:
        reservation = await asyncio.to_thread(service.check_in, request.booking_id, request.token)
    except DomainException as e:
        handle_domain_exception(e)

    logger.info(f"Booking {request.booking_id} checked in by {admin.get('id') or admin.get('sub')}")
    return ReservationEnvelope(data=ReservationResponse.model_validate(reservation))


@router.patch("/bookings/{booking_id}", response_model=ReservationEnvelope)
async def reschedule_booking(
    booking_id: str,
    update: AdminReschedule,
    _admin: Dict[str, Any] = Depends(require_admin),
    service: AdminBookingService = Depends(get_admin_booking_service),
) -> ReservationEnvelope:
    """Move a booking to a new date and start time, keeping its duration."""
    try:
        reservation = await asyncio.to_thread(
            service.reschedule, booking_id, update.booking_date, update.start_time
        )
    except DomainException as e:
        handle_domain_exception(e)

    return ReservationEnvelope(data=ReservationResponse.model_validate(reservation))


@router.post("/bookings/{booking_id}/cancel", response_model=ReservationEnvelope)
async def cancel_booking(
    booking_id: str,
    _admin: Dict[str, Any] = Depends(require_admin),
    service: AdminBookingService = Depends(get_admin_booking_service),
) -> ReservationEnvelope:
    try:
        reservation = await asyncio.to_thread(service.cancel, booking_id)
    except DomainException as e:
        handle_domain_exception(e)

    return ReservationEnvelope(data=ReservationResponse.model_validate(reservation))
