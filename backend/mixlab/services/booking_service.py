# backend/mixlab/services/booking_service.py
"""
Booking Service for the MixLab booking backend.

Orchestrates reservation creation:

1. validate the request and the studio window
2. pre-check conflicts
3. resolve the owner from the bearer credential (invalid -> guest)
4. price the session
5. allocate the booking id
6. create the provider invoice for non-cash payments
7. persist under the date lock with an in-transaction conflict re-check
8. attach the check-in QR code
9. commit
10. publish notifications (best effort)

The provider call happens before the date lock is taken so a slow provider
never holds other bookings for the same date. An invoice whose booking loses
the race is expired on a best-effort basis.
"""

from dataclasses import dataclass
from datetime import date, time
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..auth import verify_credential
from ..core.booking_lock import date_lock
from ..core.config import settings
from ..core.constants import CASH_REFERENCE_PREFIX
from ..core.enums import PROVIDER_PAYMENT_METHODS, PaymentMethod, PaymentStatus
from ..core.exceptions import (
    BookingConflictException,
    NotFoundException,
    RepositoryException,
    ServiceException,
    UpstreamPaymentException,
    ValidationException,
)
from ..core.timeutils import MINUTES_PER_HOUR, combine, format_hhmm, from_minutes, interval_minutes
from ..core.ulid_helper import generate_booking_id
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
from ..schemas.reservation import BookingCreate
from .base import BaseService
from .check_in import CheckInArtifact, CheckInArtifactGenerator, attach_check_in_artifact
from .conflict_checker import ConflictChecker
from .notification_service import NotificationSink
from .pricing_service import PricingService

logger = logging.getLogger(__name__)

DEFAULT_PAYER_EMAIL = "guest@mixlab.com"

CONFLICT_CONSTRAINT_MARKERS = ("reservations_no_overlap", "exclusion constraint", "deadlock detected")

# Accepted spellings from the booking page
PAYMENT_METHOD_ALIASES = {
    "cash": PaymentMethod.CASH,
    "card": PaymentMethod.CARD,
    "credit_card": PaymentMethod.CARD,
    "wallet": PaymentMethod.WALLET,
    "gcash": PaymentMethod.WALLET,
}


@dataclass
class BookingResult:
    reservation: Reservation
    payment_url: Optional[str]
    qr_code: Optional[str]


def parse_payment_method(value: Optional[str]) -> PaymentMethod:
    method = PAYMENT_METHOD_ALIASES.get((value or "").strip().lower())
    if method is None:
        raise ValidationException(
            f"Unsupported payment method: {value}",
            code="INVALID_PAYMENT_METHOD",
            details={"allowed": [m.value for m in PaymentMethod]},
        )
    return method


def validate_duration(duration_hours: int) -> None:
    if duration_hours < settings.min_booking_hours or duration_hours > settings.max_booking_hours:
        raise ValidationException(
            f"Hours must be between {settings.min_booking_hours} and {settings.max_booking_hours}",
            code="INVALID_DURATION",
        )


def ensure_within_studio_hours(start_time: time, duration_hours: int) -> time:
    """
    Reject sessions starting outside opening hours or running past closing.

    Returns:
        The session end time
    """
    start_min, end_min = interval_minutes(start_time, duration_hours)
    open_min = settings.studio_open_hour * MINUTES_PER_HOUR
    close_min = settings.studio_close_hour * MINUTES_PER_HOUR
    if start_min < open_min or start_min >= close_min or end_min > close_min:
        raise ValidationException(
            f"Bookings must fall within studio hours "
            f"({settings.studio_open_hour:02d}:00-{settings.studio_close_hour:02d}:00)",
            code="OUTSIDE_STUDIO_HOURS",
            details={"start_time": format_hhmm(start_time), "hours": duration_hours},
        )
    return from_minutes(end_min)


def is_conflict_error(exc: BaseException) -> bool:
    """True when a storage error is the overlap constraint (or a lock deadlock)."""
    seen: List[BaseException] = []
    current: Optional[BaseException] = exc
    while current is not None and current not in seen:
        seen.append(current)
        text = str(current).lower()
        if any(marker in text for marker in CONFLICT_CONSTRAINT_MARKERS):
            return True
        current = current.__cause__
    return False


class BookingService(BaseService):
    """
    Service layer for creating and reading reservations.

    Collaborators are injected so tests and deployments can swap the payment
    provider, notification fan-out, rate table and artifact generator.
    """

    def __init__(
        self,
        db: Session,
        payment_client: XenditClient,
        notifications: NotificationSink,
        pricing: Optional[PricingService] = None,
        conflict_checker: Optional[ConflictChecker] = None,
        artifact_generator: Optional[CheckInArtifactGenerator] = None,
        credential_verifier: Callable[[Optional[str]], Optional[str]] = verify_credential,
        repository: Optional[ReservationRepository] = None,
    ):
        super().__init__(db)
        self.payment_client = payment_client
        self.notifications = notifications
        self.pricing = pricing or PricingService()
        self.conflict_checker = conflict_checker or ConflictChecker(db)
        self.artifact_generator = artifact_generator or CheckInArtifactGenerator()
        self.credential_verifier = credential_verifier
        self.repository = repository or RepositoryFactory.create_reservation_repository(db)

    # Validation

    def _validate_request(self, data: BookingCreate) -> Tuple[PaymentMethod, date, time, int, time]:
        missing = [
            field_name
            for field_name in ("name", "booking_date", "start_time", "duration_hours", "payment_method")
            if getattr(data, field_name) in (None, "")
        ]
        if missing:
            raise ValidationException(
                "Missing required fields",
                code="MISSING_FIELDS",
                details={"missing": missing},
            )

        duration_hours = int(data.duration_hours)  # type: ignore[arg-type]
        validate_duration(duration_hours)
        method = parse_payment_method(data.payment_method)
        booking_date: date = data.booking_date  # type: ignore[assignment]
        start_time: time = data.start_time  # type: ignore[assignment]
        end_time = ensure_within_studio_hours(start_time, duration_hours)
        return method, booking_date, start_time, duration_hours, end_time

    # Provider

    def _create_invoice(
        self,
        booking_id: str,
        amount: Any,
        method: PaymentMethod,
        service_kind: str,
        duration_hours: int,
        email: Optional[str],
    ) -> Dict[str, Any]:
        try:
            invoice = self.payment_client.create_invoice(
                external_id=booking_id,
                amount=float(amount),
                payer_email=email or DEFAULT_PAYER_EMAIL,
                description=f"MixLab Studio Booking - {service_kind}",
                payment_methods=PROVIDER_PAYMENT_METHODS.get(method),
                metadata={
                    "booking_id": booking_id,
                    "service_kind": service_kind,
                    "hours": duration_hours,
                },
            )
        except Exception as exc:
            self.logger.error(
                f"Invoice creation failed for {booking_id}: {str(exc)}",
                extra={"booking_id": booking_id},
            )
            raise UpstreamPaymentException(details={"provider_error": str(exc)}) from exc

        if not invoice.get("id"):
            raise UpstreamPaymentException(details={"provider_error": "Invoice response missing id"})
        return invoice

    def abandon_invoice(self, invoice_id: Optional[str], booking_id: str) -> None:
        """Expire an invoice whose booking was not persisted; failures are logged."""
        if not invoice_id:
            return
        try:
            self.payment_client.expire_invoice(invoice_id)
            self.logger.info(f"Expired abandoned invoice {invoice_id} for {booking_id}")
        except Exception as exc:
            self.logger.warning(
                f"Could not expire abandoned invoice {invoice_id}: {str(exc)}",
                extra={"booking_id": booking_id, "invoice_id": invoice_id},
            )

    # Orchestration

    @BaseService.measure_operation("create_booking")
    def create_booking(self, data: BookingCreate, credential: Optional[str] = None) -> BookingResult:
        """
        Create a reservation and, for non-cash payments, its provider invoice.

        Args:
            data: Booking request
            credential: Optional bearer token; an invalid token books as guest

        Returns:
            BookingResult with the committed reservation, the hosted payment
            URL (non-cash only) and the QR data URL when one was generated

        Raises:
            ValidationException: Missing/invalid fields or outside studio hours
            BookingConflictException: The interval overlaps a held slot
            UpstreamPaymentException: The provider refused the invoice
            ServiceException: Storage failure
        """
        requested = PAYMENT_METHOD_ALIASES.get((data.payment_method or "").strip().lower())
        method_label = requested.value if requested else "unknown"
        try:
            method, booking_date, start_time, duration_hours, end_time = self._validate_request(data)
        except ValidationException:
            prometheus_metrics.record_booking_outcome("invalid", method_label)
            raise

        conflicts = self.conflict_checker.find_conflicts(booking_date, start_time, duration_hours)
        if conflicts:
            prometheus_metrics.record_booking_outcome("conflict", method.value)
            raise BookingConflictException(details={"conflicts": conflicts})

        owner_account_id = self.credential_verifier(credential) if credential else None
        service_kind = self.pricing.resolve_kind(data.service_kind)
        amount = self.pricing.quote(service_kind, duration_hours)
        booking_id = generate_booking_id()

        invoice_id: Optional[str] = None
        payment_url: Optional[str] = None
        if method == PaymentMethod.CASH:
            payment_status = PaymentStatus.CASH.value
            reference_number = f"{CASH_REFERENCE_PREFIX}-{booking_id}"
        else:
            try:
                invoice = self._create_invoice(
                    booking_id, amount, method, service_kind, duration_hours, data.email
                )
            except UpstreamPaymentException:
                prometheus_metrics.record_booking_outcome("provider_error", method.value)
                raise
            payment_status = PaymentStatus.PENDING.value
            invoice_id = invoice["id"]
            reference_number = invoice.get("external_id") or booking_id
            payment_url = invoice.get("invoice_url")

        artifact: Optional[CheckInArtifact] = None
        try:
            with date_lock(self.db, booking_date):
                with self.transaction():
                    if self.conflict_checker.has_conflict(booking_date, start_time, duration_hours):
                        raise BookingConflictException()

                    reservation = self.repository.create(
                        booking_id=booking_id,
                        owner_account_id=owner_account_id,
                        name=data.name,
                        email=data.email,
                        contact=data.contact,
                        home_address=data.home_address,
                        birthday=data.birthday,
                        members=data.members or 1,
                        service_kind=service_kind,
                        booking_date=booking_date,
                        start_time=start_time,
                        end_time=end_time,
                        duration_hours=duration_hours,
                        starts_at=combine(booking_date, start_time),
                        ends_at=combine(booking_date, start_time, duration_hours),
                        amount=amount,
                        payment_method=method.value,
                        payment_status=payment_status,
                        reference_number=reference_number,
                        provider_invoice_id=invoice_id,
                        payment_url=payment_url,
                    )

                    artifact = attach_check_in_artifact(self.artifact_generator, reservation)
                    if artifact is not None:
                        self.repository.flush()
        except BookingConflictException:
            prometheus_metrics.record_booking_outcome("conflict", method.value)
            self.abandon_invoice(invoice_id, booking_id)
            raise
        except (RepositoryException, ServiceException) as exc:
            self.abandon_invoice(invoice_id, booking_id)
            if is_conflict_error(exc):
                prometheus_metrics.record_booking_outcome("conflict", method.value)
                raise BookingConflictException() from exc
            prometheus_metrics.record_booking_outcome("storage_error", method.value)
            if isinstance(exc, ServiceException):
                raise
            raise ServiceException("Failed to save booking", code="BOOKING_PERSIST_FAILED") from exc
        except Exception:
            self.abandon_invoice(invoice_id, booking_id)
            prometheus_metrics.record_booking_outcome("storage_error", method.value)
            raise

        prometheus_metrics.record_booking_outcome("created", method.value)
        self.log_operation(
            "booking_created",
            booking_id=booking_id,
            payment_method=method.value,
            payment_status=payment_status,
            guest=owner_account_id is None,
        )

        self._publish_created(reservation, artifact)
        return BookingResult(
            reservation=reservation,
            payment_url=payment_url,
            qr_code=artifact.data_url if artifact else None,
        )

    def _publish_created(self, reservation: Reservation, artifact: Optional[CheckInArtifact]) -> None:
        when = f"{reservation.booking_date.isoformat()} at {format_hhmm(reservation.start_time)}"
        if reservation.email and artifact is not None:
            self.notifications.publish(
                BookingConfirmationRequested(booking=reservation.to_dict(), qr_data_url=artifact.data_url)
            )
        if reservation.owner_account_id:
            self.notifications.publish(
                UserNotification(
                    account_id=reservation.owner_account_id,
                    type="booking",
                    message=f"Your booking {reservation.booking_id} for {when} has been created",
                    link=f"/bookings/{reservation.booking_id}",
                    data={"booking_id": reservation.booking_id},
                )
            )
        self.notifications.publish(
            AdminNotification(
                type="booking",
                message=f"New booking: {reservation.name} - {when}",
                link="/admin/bookings",
                data={
                    "booking_id": reservation.booking_id,
                    "payment_status": reservation.payment_status,
                },
            )
        )

    # Reads

    @BaseService.measure_operation("get_booking")
    def get_booking(self, booking_id: str) -> Reservation:
        try:
            reservation = self.repository.get_by_booking_id(booking_id)
        except RepositoryException as exc:
            raise ServiceException("Failed to load booking") from exc
        if reservation is None:
            raise NotFoundException("Booking not found", code="BOOKING_NOT_FOUND")
        return reservation
