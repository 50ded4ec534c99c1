# backend/mixlab/routes/webhooks.py
"""
Payment provider webhook endpoints.

Invoice callbacks are authenticated with the shared callback token the
provider sends in the ``x-callback-token`` header. Once authenticated, every
request is acknowledged with 200 so the provider does not retry events that
were already recorded; processing problems are logged instead.
"""

import asyncio
import hmac
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, Header, Request
from pydantic import ValidationError

from ..api.dependencies import get_payment_reconciler
from ..core.config import settings
from ..core.constants import WEBHOOK_TOKEN_HEADER
from ..core.exceptions import DomainException, UnauthorizedException
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..schemas.reservation import ReservationEnvelope, ReservationResponse
from ..schemas.webhook import InvoiceCallback, WebhookAck
from ..services.payment_reconciler import PaymentReconciler

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payment-webhooks"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    raise exc.to_http_exception()


def callback_token_matches(received: Optional[str]) -> bool:
    """Constant-time comparison against the configured token; rejects all when unset."""
    expected = settings.xendit_webhook_token.get_secret_value()
    if not expected or not received:
        return False
    return hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8"))


@router.post("/payment-provider", response_model=WebhookAck)
async def handle_invoice_callback(
    request: Request,
    callback_token: Optional[str] = Header(None, alias=WEBHOOK_TOKEN_HEADER),
    reconciler: PaymentReconciler = Depends(get_payment_reconciler),
) -> WebhookAck:
    """
    Handle invoice status callbacks.

    PAID/SETTLED events mark the booking paid and issue its check-in QR;
    EXPIRED/FAILED events fail bookings that are still pending.
    """
    if not callback_token_matches(callback_token):
        logger.warning("Rejected payment webhook with missing or invalid callback token")
        prometheus_metrics.record_webhook_event("unknown", "unauthorized")
        handle_domain_exception(
            UnauthorizedException("Invalid callback token", code="INVALID_CALLBACK_TOKEN")
        )

    try:
        payload = InvoiceCallback.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        logger.warning(f"Unreadable payment webhook body: {str(e)}")
        prometheus_metrics.record_webhook_event("unknown", "malformed")
        return WebhookAck()

    logger.info(f"Processing payment webhook: {payload.status} for {payload.external_id}")
    try:
        await asyncio.to_thread(reconciler.handle_callback, payload)
    except Exception:
        logger.exception("Payment webhook processing failed")
    return WebhookAck()


@router.get("/verify/{booking_id}", response_model=ReservationEnvelope)
async def verify_payment(
    booking_id: str,
    reconciler: PaymentReconciler = Depends(get_payment_reconciler),
) -> ReservationEnvelope:
    """Pull the live invoice status for a booking and reconcile it."""
    try:
        reservation = await asyncio.to_thread(reconciler.verify_now, booking_id)
    except DomainException as e:
        handle_domain_exception(e)

    return ReservationEnvelope(data=ReservationResponse.model_validate(reservation))
