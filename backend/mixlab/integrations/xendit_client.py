"""Minimal Xendit API client for hosted payment invoices."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, cast
from uuid import uuid4

import httpx
from pydantic import SecretStr

logger = logging.getLogger(__name__)


class XenditError(RuntimeError):
    """Raised when the Xendit API responds with an error or cannot be reached."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        *,
        error_code: str | None = None,
        error_body: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.error_body = error_body


class XenditClient:
    """Thin client for the Xendit invoice API."""

    def __init__(
        self,
        *,
        secret_key: str | SecretStr,
        base_url: str = "https://api.xendit.co",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        currency: str = "PHP",
        invoice_duration_seconds: int = 86400,
        success_redirect_url: str | None = None,
        failure_redirect_url: str | None = None,
    ) -> None:
        secret_value = (
            secret_key.get_secret_value() if isinstance(secret_key, SecretStr) else secret_key
        )
        if not secret_value:
            raise ValueError("Xendit secret key must be provided")

        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self.currency = currency
        self.invoice_duration_seconds = invoice_duration_seconds
        self.success_redirect_url = success_redirect_url
        self.failure_redirect_url = failure_redirect_url
        # Xendit uses HTTP Basic auth with the secret key as username and a blank password.
        self._auth = httpx.BasicAuth(secret_value, "")

    def create_invoice(
        self,
        *,
        external_id: str,
        amount: float,
        payer_email: str,
        description: str,
        payment_methods: Optional[List[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Create a hosted invoice keyed by ``external_id``."""

        body: Dict[str, Any] = {
            "external_id": external_id,
            "amount": amount,
            "payer_email": payer_email,
            "description": description,
            "invoice_duration": self.invoice_duration_seconds,
            "currency": self.currency,
            "success_redirect_url": self.success_redirect_url,
            "failure_redirect_url": self.failure_redirect_url,
            "payment_methods": payment_methods,
            "metadata": metadata or {},
        }
        body = {key: value for key, value in body.items() if value is not None}
        return self.request("POST", "/v2/invoices", json_body=body)

    def get_invoice(self, invoice_id: str) -> Dict[str, Any]:
        """Fetch the live state of an invoice."""

        if not invoice_id:
            raise ValueError("invoice_id must be provided")
        return self.request("GET", f"/v2/invoices/{invoice_id}")

    def expire_invoice(self, invoice_id: str) -> Dict[str, Any]:
        """Expire an unpaid invoice so it can no longer be paid."""

        if not invoice_id:
            raise ValueError("invoice_id must be provided")
        return self.request("POST", f"/invoices/{invoice_id}/expire!")

    def request(
        self,
        method: str,
        path: str,
        *,
        json_body: Dict[str, Any] | None = None,
        params: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        """Perform a raw Xendit API request and return the parsed JSON payload."""

        url = f"{self._base_url}{path}"
        with httpx.Client(
            timeout=self._timeout,
            transport=self._transport,
            auth=self._auth,
            headers={"Accept": "application/json"},
        ) as client:
            try:
                response = client.request(method, url, json=json_body, params=params)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                error_payload: Any | None = None
                error_code: str | None = None
                try:
                    error_payload = exc.response.json()
                    if isinstance(error_payload, dict):
                        error_code = error_payload.get("error_code")
                except json.JSONDecodeError:
                    error_payload = exc.response.text

                logger.error(
                    "Xendit API error %s for %s %s: %s",
                    status,
                    method,
                    path,
                    exc.response.text[:500],
                )
                message = (
                    error_payload.get("message")
                    if isinstance(error_payload, dict) and error_payload.get("message")
                    else f"Xendit API responded with status {status}"
                )
                raise XenditError(
                    message=message,
                    status_code=status,
                    error_code=error_code,
                    error_body=error_payload,
                ) from exc
            except httpx.RequestError as exc:
                logger.error("Xendit request failure for %s %s: %s", method, path, str(exc))
                raise XenditError("Failed to reach Xendit API") from exc

        try:
            return cast(Dict[str, Any], response.json())
        except json.JSONDecodeError as exc:
            logger.error("Invalid JSON from Xendit for %s %s: %s", method, path, response.text)
            raise XenditError("Received malformed JSON from Xendit") from exc


class FakeXenditClient(XenditClient):
    """In-memory stand-in for Xendit used for local development and tests."""

    def __init__(self, *, base_checkout_url: str = "https://checkout.xendit.test/web") -> None:
        super().__init__(secret_key="fake-xendit-key")
        self._logger = logging.getLogger(self.__class__.__name__)
        self.base_checkout_url = base_checkout_url
        self.invoices: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Dict[str, Any]] = []
        self.fail_create: bool = False
        self.fail_get: bool = False

    def create_invoice(
        self,
        *,
        external_id: str,
        amount: float,
        payer_email: str,
        description: str,
        payment_methods: Optional[List[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        self.calls.append(
            {
                "op": "create_invoice",
                "external_id": external_id,
                "amount": amount,
                "payer_email": payer_email,
                "description": description,
                "payment_methods": payment_methods,
                "metadata": metadata or {},
            }
        )
        if self.fail_create:
            raise XenditError("Fake invoice creation failure", status_code=400)

        invoice_id = f"inv_fake_{uuid4().hex[:24]}"
        invoice = {
            "id": invoice_id,
            "external_id": external_id,
            "amount": amount,
            "status": "PENDING",
            "invoice_url": f"{self.base_checkout_url}/{invoice_id}",
            "payment_methods": payment_methods or [],
        }
        self.invoices[invoice_id] = invoice
        self._logger.debug("Fake invoice created", extra={"invoice_id": invoice_id})
        return dict(invoice)

    def get_invoice(self, invoice_id: str) -> Dict[str, Any]:
        self.calls.append({"op": "get_invoice", "invoice_id": invoice_id})
        if self.fail_get:
            raise XenditError("Fake invoice lookup failure", status_code=503)
        invoice = self.invoices.get(invoice_id)
        if invoice is None:
            raise XenditError("Invoice not found", status_code=404, error_code="INVOICE_NOT_FOUND_ERROR")
        return dict(invoice)

    def expire_invoice(self, invoice_id: str) -> Dict[str, Any]:
        self.calls.append({"op": "expire_invoice", "invoice_id": invoice_id})
        invoice = self.invoices.get(invoice_id)
        if invoice is None:
            raise XenditError("Invoice not found", status_code=404, error_code="INVOICE_NOT_FOUND_ERROR")
        invoice["status"] = "EXPIRED"
        return dict(invoice)

    def set_status(self, invoice_id: str, status: str, **extra: Any) -> None:
        """Move a fake invoice to a new status, as the hosted page would."""
        self.invoices[invoice_id].update({"status": status, **extra})

    def calls_for(self, op: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["op"] == op]
