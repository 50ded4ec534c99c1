"""Payment provider webhook payloads."""

from typing import Optional

from pydantic import BaseModel, ConfigDict


class InvoiceCallback(BaseModel):
    """
    Invoice callback body sent by the payment provider.

    Providers add fields over time, so unknown keys are ignored rather than
    rejected.
    """

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    external_id: Optional[str] = None
    status: Optional[str] = None
    payment_id: Optional[str] = None
    paid_amount: Optional[float] = None
    payment_method: Optional[str] = None


class WebhookAck(BaseModel):
    received: bool = True
