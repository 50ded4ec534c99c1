# backend/mixlab/services/admin_booking_service.py
"""Front-desk and dashboard operations on existing reservations."""

from datetime import date, datetime, time, timezone
import logging
import math
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.booking_lock import date_lock
from ..core.enums import CheckInStatus, PaymentStatus
from ..core.exceptions import (
    BookingConflictException,
    NotFoundException,
    RepositoryException,
    ServiceException,
    ValidationException,
)
from ..core.timeutils import combine, format_hhmm
from ..events.notification_events import AdminNotification, UserNotification
from ..models.reservation import Reservation
from ..repositories import RepositoryFactory
from ..repositories.reservation_repository import ReservationRepository
from ..schemas.reservation import ReservationListResponse, ReservationResponse
from .base import BaseService
from .booking_service import ensure_within_studio_hours, is_conflict_error
from .check_in import CheckInArtifactGenerator, attach_check_in_artifact, verify_check_in_token
from .conflict_checker import ConflictChecker
from .notification_service import NotificationSink

logger = logging.getLogger(__name__)

CHECK_IN_PAYMENT_STATUSES = (PaymentStatus.PAID.value, PaymentStatus.CASH.value)
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class AdminBookingService(BaseService):
    def __init__(
        self,
        db: Session,
        notifications: NotificationSink,
        conflict_checker: Optional[ConflictChecker] = None,
        artifact_generator: Optional[CheckInArtifactGenerator] = None,
        repository: Optional[ReservationRepository] = None,
    ):
        super().__init__(db)
        self.notifications = notifications
        self.conflict_checker = conflict_checker or ConflictChecker(db)
        self.artifact_generator = artifact_generator or CheckInArtifactGenerator()
        self.repository = repository or RepositoryFactory.create_reservation_repository(db)

    def _get_or_404(self, booking_id: str) -> Reservation:
        reservation = self.repository.get_by_booking_id(booking_id)
        if reservation is None:
            raise NotFoundException("Booking not found", code="BOOKING_NOT_FOUND")
        return reservation

    @BaseService.measure_operation("list_for_date")
    def list_for_date(self, target_date: date) -> List[Reservation]:
        try:
            return self.repository.list_for_date(target_date)
        except RepositoryException as exc:
            raise ServiceException("Failed to list bookings") from exc

    @BaseService.measure_operation("list_bookings")
    def list_bookings(
        self,
        *,
        booking_date: Optional[date] = None,
        service_kind: Optional[str] = None,
        payment_status: Optional[str] = None,
        check_in_status: Optional[str] = None,
        page: int = 1,
        per_page: int = DEFAULT_PAGE_SIZE,
    ) -> ReservationListResponse:
        """Filtered, paginated dashboard listing."""
        if page < 1 or not 1 <= per_page <= MAX_PAGE_SIZE:
            raise ValidationException(
                f"page must be >= 1 and per_page between 1 and {MAX_PAGE_SIZE}",
                code="INVALID_PAGINATION",
            )
        try:
            reservations, total = self.repository.list_admin_bookings(
                booking_date=booking_date,
                service_kind=service_kind,
                payment_status=payment_status,
                check_in_status=check_in_status,
                page=page,
                per_page=per_page,
            )
        except RepositoryException as exc:
            raise ServiceException("Failed to list bookings") from exc

        return ReservationListResponse(
            date=booking_date,
            data=[ReservationResponse.model_validate(r) for r in reservations],
            total=total,
            page=page,
            per_page=per_page,
            total_pages=max(1, math.ceil(total / per_page)),
        )

    @BaseService.measure_operation("reschedule")
    def reschedule(self, booking_id: str, new_date: date, new_start: time) -> Reservation:
        """
        Move a reservation, keeping its duration and amount.

        The reservation itself is excluded from the conflict check so it can
        shift within its own interval.
        """
        reservation = self._get_or_404(booking_id)
        if not reservation.holds_slot:
            raise ValidationException(
                "Only active bookings can be rescheduled", code="BOOKING_NOT_ACTIVE"
            )

        duration = reservation.duration_hours
        new_end = ensure_within_studio_hours(new_start, duration)
        old_when = f"{reservation.booking_date.isoformat()} at {format_hhmm(reservation.start_time)}"

        try:
            with date_lock(self.db, reservation.booking_date, new_date):
                with self.transaction():
                    if self.conflict_checker.has_conflict(
                        new_date, new_start, duration, excluding=booking_id
                    ):
                        raise BookingConflictException()
                    self.repository.update_entity(
                        reservation,
                        booking_date=new_date,
                        start_time=new_start,
                        end_time=new_end,
                        starts_at=combine(new_date, new_start),
                        ends_at=combine(new_date, new_start, duration),
                    )
                    # The QR payload carries the date and time
                    if attach_check_in_artifact(self.artifact_generator, reservation):
                        self.repository.flush()
        except (RepositoryException, ServiceException) as exc:
            if is_conflict_error(exc):
                raise BookingConflictException() from exc
            raise

        new_when = f"{new_date.isoformat()} at {format_hhmm(new_start)}"
        self.log_operation("booking_rescheduled", booking_id=booking_id, new_date=new_date.isoformat())
        if reservation.owner_account_id:
            self.notifications.publish(
                UserNotification(
                    account_id=reservation.owner_account_id,
                    type="booking",
                    message=f"Your booking {booking_id} was moved from {old_when} to {new_when}",
                    link=f"/bookings/{booking_id}",
                )
            )
        self.notifications.publish(
            AdminNotification(
                type="booking",
                message=f"Booking {booking_id} rescheduled to {new_when}",
                link="/admin/bookings",
            )
        )
        return reservation

    @BaseService.measure_operation("cancel")
    def cancel(self, booking_id: str) -> Reservation:
        """Cancel a reservation and free its slot. Cancelling twice is a no-op."""
        reservation = self._get_or_404(booking_id)
        if reservation.check_in_status == CheckInStatus.CANCELLED.value:
            return reservation
        if reservation.check_in_status == CheckInStatus.CHECKED_IN.value:
            raise ValidationException(
                "Checked-in bookings cannot be cancelled", code="BOOKING_ALREADY_CHECKED_IN"
            )

        with self.transaction():
            reservation.cancel()
            self.repository.flush()

        self.log_operation("booking_cancelled", booking_id=booking_id)
        if reservation.owner_account_id:
            self.notifications.publish(
                UserNotification(
                    account_id=reservation.owner_account_id,
                    type="booking",
                    message=f"Your booking {booking_id} has been cancelled",
                    link=f"/bookings/{booking_id}",
                )
            )
        self.notifications.publish(
            AdminNotification(
                type="booking", message=f"Booking {booking_id} cancelled", link="/admin/bookings"
            )
        )
        return reservation

    @BaseService.measure_operation("check_in")
    def check_in(self, booking_id: str, token: str) -> Reservation:
        """Mark a guest as arrived after verifying the QR token."""
        reservation = self._get_or_404(booking_id)
        if not verify_check_in_token(booking_id, token):
            raise ValidationException("Invalid check-in code", code="INVALID_CHECK_IN_TOKEN")
        if reservation.check_in_status == CheckInStatus.CHECKED_IN.value:
            return reservation
        if reservation.check_in_status == CheckInStatus.CANCELLED.value:
            raise ValidationException("Booking has been cancelled", code="BOOKING_CANCELLED")
        if reservation.payment_status not in CHECK_IN_PAYMENT_STATUSES:
            raise ValidationException(
                "Payment has not been completed for this booking", code="PAYMENT_INCOMPLETE"
            )

        with self.transaction():
            reservation.check_in_status = CheckInStatus.CHECKED_IN.value
            reservation.checked_in_at = datetime.now(timezone.utc)
            self.repository.flush()

        self.log_operation("booking_checked_in", booking_id=booking_id)
        return reservation
