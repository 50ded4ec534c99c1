"""Payment provider callbacks and manual verification."""

from unittest.mock import patch

import pytest

from mixlab.services.payment_reconciler import PaymentReconciler

WEBHOOK_URL = "/api/webhooks/payment-provider"


@pytest.fixture
def pending(client):
    payload = {
        "name": "Dana Reyes",
        "email": "dana@example.com",
        "serviceType": "recording",
        "date": "2030-05-17",
        "time": "10:00",
        "hours": 2,
        "paymentMethod": "card",
    }
    return client.post("/api/bookings/create", json=payload).json()["data"]["booking"]


def _event(booking, status, **extra):
    return {
        "id": booking["provider_invoice_id"],
        "external_id": booking["booking_id"],
        "status": status,
        "amount": booking["amount"],
        **extra,
    }


class TestAuthentication:
    def test_missing_token_is_401(self, client, pending):
        response = client.post(WEBHOOK_URL, json=_event(pending, "PAID"))
        assert response.status_code == 401

    def test_wrong_token_is_401(self, client, pending):
        response = client.post(
            WEBHOOK_URL, json=_event(pending, "PAID"), headers={"x-callback-token": "guess"}
        )
        assert response.status_code == 401
        assert client.get(f"/api/bookings/{pending['booking_id']}").json()["data"]["payment_status"] == "pending"

    def test_unconfigured_token_rejects_everything(self, client, pending, webhook_headers):
        with patch("mixlab.routes.webhooks.settings") as mock_settings:
            mock_settings.xendit_webhook_token.get_secret_value.return_value = ""
            response = client.post(WEBHOOK_URL, json=_event(pending, "PAID"), headers=webhook_headers)
        assert response.status_code == 401


class TestCallbacks:
    def test_paid_event(self, client, pending, webhook_headers):
        response = client.post(
            WEBHOOK_URL, json=_event(pending, "PAID", payment_id="pay_1"), headers=webhook_headers
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}
        booking = client.get(f"/api/bookings/{pending['booking_id']}").json()["data"]
        assert booking["payment_status"] == "paid"

    def test_expired_event(self, client, pending, webhook_headers):
        client.post(WEBHOOK_URL, json=_event(pending, "EXPIRED"), headers=webhook_headers)
        booking = client.get(f"/api/bookings/{pending['booking_id']}").json()["data"]
        assert booking["payment_status"] == "failed"

    def test_unknown_booking_is_acknowledged(self, client, webhook_headers):
        response = client.post(
            WEBHOOK_URL,
            json={"id": "inv_x", "external_id": "MIX-UNKNOWN", "status": "PAID"},
            headers=webhook_headers,
        )
        assert response.status_code == 200
        assert response.json() == {"received": True}

    def test_malformed_body_is_acknowledged(self, client, webhook_headers):
        response = client.post(
            WEBHOOK_URL,
            content=b"not json",
            headers={**webhook_headers, "content-type": "application/json"},
        )
        assert response.status_code == 200

    def test_internal_error_is_acknowledged(self, client, pending, webhook_headers):
        with patch.object(PaymentReconciler, "apply_paid", side_effect=RuntimeError("db gone")):
            response = client.post(WEBHOOK_URL, json=_event(pending, "PAID"), headers=webhook_headers)
        assert response.status_code == 200
        assert response.json() == {"received": True}


class TestVerify:
    def test_verify_pulls_provider_status(self, client, pending, fake_provider):
        fake_provider.set_status(pending["provider_invoice_id"], "PAID", payment_id="pay_2")

        response = client.get(f"{WEBHOOK_URL}/verify/{pending['booking_id']}")

        assert response.status_code == 200
        assert response.json()["data"]["payment_status"] == "paid"

    def test_verify_unknown_booking_is_404(self, client):
        assert client.get(f"{WEBHOOK_URL}/verify/MIX-UNKNOWN").status_code == 404
