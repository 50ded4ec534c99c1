"""Invoice outcome reconciliation (webhook, manual verify, manual status)."""

from datetime import date
from unittest.mock import patch

import pytest

from mixlab.core.exceptions import NotFoundException, ValidationException
from mixlab.events.notification_events import (
    AdminNotification,
    BookingConfirmationRequested,
    UserNotification,
)
from mixlab.models.reservation import Reservation
from mixlab.monitoring.prometheus_metrics import (
    late_payment_slot_conflicts_total,
    payment_webhook_events_total,
)
from mixlab.schemas.webhook import InvoiceCallback

BOOKING_DATE = date(2030, 5, 17)


@pytest.fixture
def pending_booking(booking_service, booking_request, published):
    reservation = booking_service.create_booking(booking_request(payment_method="card")).reservation
    published.clear()
    return reservation


def _callback(reservation, status, **extra):
    return InvoiceCallback(
        id=reservation.provider_invoice_id,
        external_id=reservation.booking_id,
        status=status,
        **extra,
    )


class TestPaidTransition:
    def test_paid_webhook_marks_paid(self, reconciler, pending_booking, published):
        result = reconciler.handle_callback(_callback(pending_booking, "PAID", payment_id="pay_1"))

        assert result == "applied"
        assert pending_booking.payment_status == "paid"
        assert pending_booking.provider_payment_id == "pay_1"
        assert pending_booking.reference_number == pending_booking.provider_invoice_id
        assert pending_booking.paid_at is not None
        assert [type(e) for e in published] == [AdminNotification]

    def test_replayed_paid_is_idempotent(self, reconciler, pending_booking, published):
        qr_before = pending_booking.check_in_qr
        reconciler.handle_callback(_callback(pending_booking, "PAID", payment_id="pay_1"))
        paid_at = pending_booking.paid_at

        with patch.object(reconciler.artifact_generator, "generate") as generate:
            assert reconciler.handle_callback(_callback(pending_booking, "PAID", payment_id="pay_1")) == "applied"
        generate.assert_not_called()

        assert pending_booking.payment_status == "paid"
        assert pending_booking.check_in_qr == qr_before
        assert pending_booking.paid_at == paid_at
        # the replay publishes nothing new
        assert len(published) == 1

    def test_settled_counts_as_paid(self, reconciler, pending_booking):
        assert reconciler.handle_callback(_callback(pending_booking, "SETTLED")) == "applied"
        assert pending_booking.payment_status == "paid"

    def test_paid_without_artifact_generates_and_emails(
        self, db, reconciler, pending_booking, published, console_email
    ):
        pending_booking.check_in_qr = None
        pending_booking.check_in_token = None
        db.commit()

        reconciler.handle_callback(_callback(pending_booking, "PAID"))

        assert pending_booking.check_in_qr
        assert isinstance(published[0], BookingConfirmationRequested)
        assert console_email.sent[0]["to"] == "dana@example.com"

    def test_paid_with_existing_artifact_sends_no_email(self, reconciler, pending_booking, published):
        reconciler.handle_callback(_callback(pending_booking, "PAID"))
        assert not any(isinstance(e, BookingConfirmationRequested) for e in published)

    def test_owner_is_notified(self, booking_service, booking_request, reconciler, published, user_headers):
        token = user_headers["Authorization"].split(" ", 1)[1]
        reservation = booking_service.create_booking(
            booking_request(payment_method="card"), credential=token
        ).reservation
        published.clear()

        reconciler.handle_callback(_callback(reservation, "PAID"))

        (user_event,) = [e for e in published if isinstance(e, UserNotification)]
        assert user_event.account_id == "acct-42"
        assert user_event.data == {"booking_id": reservation.booking_id}


class TestFailureTransition:
    @pytest.mark.parametrize("status", ["EXPIRED", "FAILED", "expired"])
    def test_pending_becomes_failed(self, reconciler, pending_booking, status):
        assert reconciler.handle_callback(_callback(pending_booking, status)) == "applied"
        assert pending_booking.payment_status == "failed"

    def test_expired_after_paid_is_ignored(self, reconciler, pending_booking):
        reconciler.handle_callback(_callback(pending_booking, "PAID"))
        reconciler.handle_callback(_callback(pending_booking, "EXPIRED"))
        assert pending_booking.payment_status == "paid"

    def test_failed_booking_frees_the_slot(
        self, reconciler, pending_booking, booking_service, booking_request
    ):
        reconciler.handle_callback(_callback(pending_booking, "EXPIRED"))
        retry = booking_service.create_booking(booking_request())
        assert retry.reservation.start_time == pending_booking.start_time


class TestLatePayment:
    def test_paid_after_expiry_reclaims_a_free_slot(self, reconciler, pending_booking, published):
        reconciler.handle_callback(_callback(pending_booking, "EXPIRED"))

        assert reconciler.handle_callback(_callback(pending_booking, "PAID")) == "applied"

        assert pending_booking.payment_status == "paid"
        assert pending_booking.check_in_status == "not_arrived"
        assert pending_booking.holds_slot

    def test_paid_after_slot_was_rebooked_keeps_one_holder(
        self, db, reconciler, pending_booking, booking_service, booking_request, published
    ):
        reconciler.handle_callback(_callback(pending_booking, "EXPIRED"))
        rebooked = booking_service.create_booking(booking_request()).reservation
        published.clear()
        before = late_payment_slot_conflicts_total.labels(previous_status="failed")._value.get()

        result = reconciler.handle_callback(_callback(pending_booking, "PAID", payment_id="pay_late"))

        assert result == "slot_conflict"
        # the payment is recorded but the slot stays with the new booking
        assert pending_booking.payment_status == "paid"
        assert pending_booking.provider_payment_id == "pay_late"
        assert pending_booking.check_in_status == "cancelled"
        assert not pending_booking.holds_slot
        assert rebooked.holds_slot
        holders = [
            r.booking_id
            for r in db.query(Reservation).filter(Reservation.booking_date == BOOKING_DATE)
            if r.holds_slot
        ]
        assert holders == [rebooked.booking_id]

        (alert,) = [e for e in published if isinstance(e, AdminNotification)]
        assert alert.type == "payment_conflict"
        assert alert.data == {"booking_id": pending_booking.booking_id, "double_booking": True}
        assert not any(isinstance(e, BookingConfirmationRequested) for e in published)
        after = late_payment_slot_conflicts_total.labels(previous_status="failed")._value.get()
        assert after == before + 1

    def test_manual_paid_on_rebooked_slot_is_flagged(
        self, reconciler, pending_booking, booking_service, booking_request, published
    ):
        reconciler.apply_manual_status(pending_booking.booking_id, "failed")
        booking_service.create_booking(booking_request())
        published.clear()

        reservation = reconciler.apply_manual_status(pending_booking.booking_id, "paid")

        assert reservation.payment_status == "paid"
        assert reservation.check_in_status == "cancelled"
        assert [e.type for e in published if isinstance(e, AdminNotification)] == ["payment_conflict"]


class TestCallbackHandling:
    def test_unknown_booking_is_acknowledged(self, reconciler):
        payload = InvoiceCallback(id="inv_x", external_id="MIX-UNKNOWN", status="PAID")
        assert reconciler.handle_callback(payload) == "unknown_booking"

    def test_unhandled_status_is_ignored(self, reconciler, pending_booking):
        assert reconciler.handle_callback(_callback(pending_booking, "PENDING")) == "ignored"
        assert pending_booking.payment_status == "pending"

    def test_missing_external_id_is_ignored(self, reconciler):
        assert reconciler.handle_callback(InvoiceCallback(status="PAID")) == "ignored"

    def test_missing_external_id_falls_back_to_invoice_id(self, reconciler, pending_booking):
        payload = InvoiceCallback(id=pending_booking.provider_invoice_id, status="PAID")
        assert reconciler.handle_callback(payload) == "applied"
        assert pending_booking.payment_status == "paid"

    def test_internal_errors_are_swallowed_and_counted(self, reconciler, pending_booking):
        before = payment_webhook_events_total.labels(status="PAID", result="error")._value.get()
        with patch.object(reconciler, "_apply_paid", side_effect=RuntimeError("db gone")):
            assert reconciler.handle_callback(_callback(pending_booking, "PAID")) == "error"
        after = payment_webhook_events_total.labels(status="PAID", result="error")._value.get()
        assert after == before + 1


class TestVerifyNow:
    def test_pulls_paid_status(self, reconciler, pending_booking, fake_provider):
        fake_provider.set_status(pending_booking.provider_invoice_id, "PAID", payment_id="pay_9")

        reservation = reconciler.verify_now(pending_booking.booking_id)

        assert reservation.payment_status == "paid"
        assert reservation.provider_payment_id == "pay_9"

    def test_pulls_expired_status(self, reconciler, pending_booking, fake_provider):
        fake_provider.set_status(pending_booking.provider_invoice_id, "EXPIRED")
        assert reconciler.verify_now(pending_booking.booking_id).payment_status == "failed"

    def test_provider_error_returns_reservation_unchanged(self, reconciler, pending_booking, fake_provider):
        fake_provider.fail_get = True
        assert reconciler.verify_now(pending_booking.booking_id).payment_status == "pending"

    def test_cash_booking_has_nothing_to_verify(
        self, reconciler, booking_service, booking_request, fake_provider
    ):
        reservation = booking_service.create_booking(booking_request()).reservation
        assert reconciler.verify_now(reservation.booking_id).payment_status == "cash"
        assert fake_provider.calls_for("get_invoice") == []

    def test_unknown_booking(self, reconciler):
        with pytest.raises(NotFoundException):
            reconciler.verify_now("MIX-UNKNOWN")


class TestManualStatus:
    def test_paid_runs_paid_transition(self, reconciler, pending_booking, published):
        reservation = reconciler.apply_manual_status(pending_booking.booking_id, "paid", "pay_manual")
        assert reservation.payment_status == "paid"
        assert reservation.provider_payment_id == "pay_manual"
        assert any(isinstance(e, AdminNotification) for e in published)

    @pytest.mark.parametrize("status", ["failed", "cancelled"])
    def test_pending_to_terminal_expires_invoice(self, reconciler, pending_booking, fake_provider, status):
        reservation = reconciler.apply_manual_status(pending_booking.booking_id, status)
        assert reservation.payment_status == status
        assert fake_provider.invoices[pending_booking.provider_invoice_id]["status"] == "EXPIRED"

    def test_cash_at_front_desk(self, reconciler, pending_booking):
        reservation = reconciler.apply_manual_status(pending_booking.booking_id, "cash")
        assert reservation.payment_status == "cash"
        assert reservation.reference_number == f"CASH-{pending_booking.booking_id}"

    def test_same_status_is_noop(self, reconciler, pending_booking, fake_provider):
        reconciler.apply_manual_status(pending_booking.booking_id, "pending")
        assert fake_provider.calls_for("expire_invoice") == []

    def test_cannot_fail_a_paid_booking(self, reconciler, pending_booking):
        reconciler.apply_manual_status(pending_booking.booking_id, "paid")
        with pytest.raises(ValidationException) as exc_info:
            reconciler.apply_manual_status(pending_booking.booking_id, "failed")
        assert exc_info.value.code == "INVALID_STATUS_TRANSITION"

    def test_cannot_reopen_to_pending(self, reconciler, pending_booking):
        reconciler.apply_manual_status(pending_booking.booking_id, "failed")
        with pytest.raises(ValidationException):
            reconciler.apply_manual_status(pending_booking.booking_id, "pending")
