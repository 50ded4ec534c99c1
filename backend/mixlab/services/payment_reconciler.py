# backend/mixlab/services/payment_reconciler.py
"""
Payment Status Reconciler for the MixLab booking backend.

Applies provider invoice outcomes to reservations:

    PAID (any state)          -> paid; QR generated if missing; email only
                                 when the QR was generated by this call
    PAID (slot rebooked)      -> paid, check-in cancelled; staff alerted
    EXPIRED / FAILED (pending) -> failed
    EXPIRED / FAILED (other)   -> unchanged

Transitions are idempotent so webhook retries and manual verification can
race without duplicating side effects.
"""

from dataclasses import dataclass
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.booking_lock import date_lock
from ..core.constants import CASH_REFERENCE_PREFIX
from ..core.enums import CheckInStatus, InvoiceStatus, PaymentStatus
from ..core.exceptions import NotFoundException, ValidationException
from ..core.timeutils import format_hhmm
from ..events.notification_events import (
    AdminNotification,
    BookingConfirmationRequested,
    UserNotification,
)
from ..integrations.xendit_client import XenditClient
from ..models.reservation import Reservation
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from ..repositories.reservation_repository import ReservationRepository
from ..schemas.webhook import InvoiceCallback
from .base import BaseService
from .check_in import CheckInArtifact, CheckInArtifactGenerator, attach_check_in_artifact
from .conflict_checker import ConflictChecker
from .notification_service import NotificationSink

logger = logging.getLogger(__name__)

PAID_STATUSES = {InvoiceStatus.PAID.value, InvoiceStatus.SETTLED.value}
FAILED_STATUSES = {InvoiceStatus.EXPIRED.value, InvoiceStatus.FAILED.value}


@dataclass
class PaidOutcome:
    reservation: Reservation
    slot_taken: bool


class PaymentReconciler(BaseService):
    def __init__(
        self,
        db: Session,
        payment_client: XenditClient,
        notifications: NotificationSink,
        artifact_generator: Optional[CheckInArtifactGenerator] = None,
        conflict_checker: Optional[ConflictChecker] = None,
        repository: Optional[ReservationRepository] = None,
    ):
        super().__init__(db)
        self.payment_client = payment_client
        self.notifications = notifications
        self.artifact_generator = artifact_generator or CheckInArtifactGenerator()
        self.conflict_checker = conflict_checker or ConflictChecker(db)
        self.repository = repository or RepositoryFactory.create_reservation_repository(db)

    # Transitions

    def apply_paid(
        self,
        booking_id: str,
        provider_payment_id: Optional[str] = None,
        invoice_id: Optional[str] = None,
    ) -> Optional[Reservation]:
        """Move a reservation to paid. Returns None for unknown booking ids."""
        outcome = self._apply_paid(booking_id, provider_payment_id, invoice_id)
        return outcome.reservation if outcome else None

    def _apply_paid(
        self,
        booking_id: str,
        provider_payment_id: Optional[str],
        invoice_id: Optional[str],
    ) -> Optional[PaidOutcome]:
        """
        Record a payment under the reservation's date lock.

        A failed or cancelled payment whose slot was rebooked in the meantime
        is still recorded as paid, but the reservation gives the slot up
        (check-in cancelled) and staff are alerted to refund or reschedule.
        """
        current = self.repository.get_by_booking_id(booking_id)
        if current is None:
            return None

        created: Optional[CheckInArtifact] = None
        slot_taken = False
        with date_lock(self.db, current.booking_date):
            with self.transaction():
                reservation = self.repository.get_by_booking_id(booking_id, for_update=True)
                if reservation is None:
                    return None
                previous_status = reservation.payment_status
                reclaims_slot = (
                    not reservation.holds_slot
                    and reservation.check_in_status != CheckInStatus.CANCELLED.value
                )
                if reclaims_slot:
                    slot_taken = self.conflict_checker.has_conflict(
                        reservation.booking_date,
                        reservation.start_time,
                        reservation.duration_hours,
                        excluding=booking_id,
                    )

                reservation.mark_paid(provider_payment_id=provider_payment_id, reference_number=invoice_id)
                if slot_taken:
                    reservation.cancel()
                elif not reservation.has_check_in_artifact:
                    created = attach_check_in_artifact(self.artifact_generator, reservation)
                self.repository.flush()

        if slot_taken:
            self.logger.error(
                f"Payment received for {booking_id} after its slot was rebooked",
                extra={"booking_id": booking_id, "previous_status": previous_status},
            )
            prometheus_metrics.record_late_payment_conflict(previous_status)
            self._publish_slot_taken(reservation)
            return PaidOutcome(reservation=reservation, slot_taken=True)

        if created is not None and reservation.email:
            self.notifications.publish(
                BookingConfirmationRequested(booking=reservation.to_dict(), qr_data_url=created.data_url)
            )
        if previous_status != PaymentStatus.PAID.value:
            self._publish_paid(reservation)
        return PaidOutcome(reservation=reservation, slot_taken=False)

    def apply_failed(self, booking_id: str) -> Optional[Reservation]:
        """Fail a pending reservation; other states are left as they are."""
        with self.transaction():
            reservation = self.repository.get_by_booking_id(booking_id, for_update=True)
            if reservation is None:
                return None
            if reservation.payment_status == PaymentStatus.PENDING.value:
                reservation.payment_status = PaymentStatus.FAILED.value
                self.repository.flush()
                self.logger.info(f"Payment failed for booking {booking_id}")
            else:
                self.logger.info(
                    f"Ignoring failure for booking {booking_id} in state {reservation.payment_status}"
                )
        return reservation

    def _publish_paid(self, reservation: Reservation) -> None:
        if reservation.owner_account_id:
            self.notifications.publish(
                UserNotification(
                    account_id=reservation.owner_account_id,
                    type="payment",
                    message=f"Payment received for booking {reservation.booking_id}",
                    link=f"/bookings/{reservation.booking_id}",
                    data={"booking_id": reservation.booking_id},
                )
            )
        self.notifications.publish(
            AdminNotification(
                type="payment",
                message=f"Payment received: {reservation.booking_id} ({reservation.name})",
                link="/admin/bookings",
                data={"booking_id": reservation.booking_id},
            )
        )

    def _publish_slot_taken(self, reservation: Reservation) -> None:
        when = f"{reservation.booking_date.isoformat()} at {format_hhmm(reservation.start_time)}"
        if reservation.owner_account_id:
            self.notifications.publish(
                UserNotification(
                    account_id=reservation.owner_account_id,
                    type="payment",
                    message=(
                        f"Payment received for booking {reservation.booking_id}, but {when} "
                        "is no longer available. The studio will contact you."
                    ),
                    link=f"/bookings/{reservation.booking_id}",
                    data={"booking_id": reservation.booking_id},
                )
            )
        self.notifications.publish(
            AdminNotification(
                type="payment_conflict",
                message=(
                    f"Late payment for {reservation.booking_id} ({reservation.name}): "
                    f"{when} was rebooked. Refund or reschedule needed."
                ),
                link="/admin/bookings",
                data={"booking_id": reservation.booking_id, "double_booking": True},
            )
        )

    # Entry points

    @BaseService.measure_operation("handle_callback")
    def handle_callback(self, payload: InvoiceCallback) -> str:
        """
        Apply a provider webhook event.

        Never raises: the provider must always receive an acknowledgement, so
        errors are logged and reported through the returned result label.
        """
        status = (payload.status or "").upper()
        booking_id = payload.external_id
        result = "ignored"
        try:
            if not booking_id and payload.id:
                # Callbacks without external_id are matched on the invoice id
                by_invoice = self.repository.get_by_invoice_id(payload.id)
                booking_id = by_invoice.booking_id if by_invoice else None
            if not booking_id:
                self.logger.warning("Webhook event without external_id", extra={"status": status})
            elif status in PAID_STATUSES:
                outcome = self._apply_paid(booking_id, payload.payment_id, payload.id)
                if outcome is None:
                    result = "unknown_booking"
                else:
                    result = "slot_conflict" if outcome.slot_taken else "applied"
            elif status in FAILED_STATUSES:
                reservation = self.apply_failed(booking_id)
                result = "applied" if reservation else "unknown_booking"
            else:
                self.logger.info(f"Unhandled webhook event: {status or '<none>'}")

            if result == "unknown_booking":
                self.logger.warning(f"Booking not found for payment event: {booking_id}")
        except Exception:
            self.logger.exception(f"Error handling payment webhook for {booking_id}")
            result = "error"

        prometheus_metrics.record_webhook_event(status, result)
        self.log_operation("payment_webhook", booking_id=booking_id, status=status, result=result)
        return result

    @BaseService.measure_operation("verify_now")
    def verify_now(self, booking_id: str) -> Reservation:
        """
        Pull the live invoice status and reconcile.

        Provider errors are logged and the stored reservation returned as is.
        """
        reservation = self._get_or_404(booking_id)
        if not reservation.provider_invoice_id:
            return reservation

        try:
            invoice: Dict[str, Any] = self.payment_client.get_invoice(reservation.provider_invoice_id)
        except Exception as exc:
            self.logger.warning(
                f"Invoice lookup failed for {booking_id}: {str(exc)}",
                extra={"booking_id": booking_id},
            )
            return reservation

        status = str(invoice.get("status") or "").upper()
        if status in PAID_STATUSES:
            return (
                self.apply_paid(booking_id, invoice.get("payment_id"), invoice.get("id"))
                or reservation
            )
        if status in FAILED_STATUSES:
            return self.apply_failed(booking_id) or reservation
        return reservation

    @BaseService.measure_operation("apply_manual_status")
    def apply_manual_status(
        self,
        booking_id: str,
        payment_status: str,
        provider_payment_id: Optional[str] = None,
    ) -> Reservation:
        """
        Set a payment status by hand.

        ``paid`` runs the same transition as a PAID webhook. ``failed`` and
        ``cancelled`` (and ``cash`` at the front desk) only leave ``pending``.
        Setting the current status again is a no-op.
        """
        reservation = self._get_or_404(booking_id)
        if reservation.payment_status == payment_status:
            return reservation

        if payment_status == PaymentStatus.PAID.value:
            return self.apply_paid(booking_id, provider_payment_id) or reservation

        if reservation.payment_status != PaymentStatus.PENDING.value or payment_status not in (
            PaymentStatus.FAILED.value,
            PaymentStatus.CANCELLED.value,
            PaymentStatus.CASH.value,
        ):
            raise ValidationException(
                f"Cannot change payment status from {reservation.payment_status} to {payment_status}",
                code="INVALID_STATUS_TRANSITION",
            )

        invoice_id = reservation.provider_invoice_id
        with self.transaction():
            reservation.payment_status = payment_status
            if payment_status == PaymentStatus.CASH.value:
                reservation.reference_number = f"{CASH_REFERENCE_PREFIX}-{booking_id}"
            self.repository.flush()

        if invoice_id:
            # The invoice must not be payable once the booking stopped waiting on it
            try:
                self.payment_client.expire_invoice(invoice_id)
            except Exception as exc:
                self.logger.warning(f"Could not expire invoice {invoice_id}: {str(exc)}")

        self.log_operation("payment_status_set", booking_id=booking_id, payment_status=payment_status)
        return reservation

    def _get_or_404(self, booking_id: str) -> Reservation:
        reservation = self.repository.get_by_booking_id(booking_id)
        if reservation is None:
            raise NotFoundException("Booking not found", code="BOOKING_NOT_FOUND")
        return reservation
