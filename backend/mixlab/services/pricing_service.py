# backend/mixlab/services/pricing_service.py
"""
Pricing for studio services.

The hourly rate table is injected (settings by default) so tests and
deployments can swap rates without touching the booking flow.
"""

from decimal import Decimal
import logging
from typing import Mapping, Optional

from ..core.config import settings

logger = logging.getLogger(__name__)


class PricingService:
    """Computes ``rate(service_kind) * duration_hours``."""

    def __init__(
        self,
        rates: Optional[Mapping[str, int]] = None,
        default_kind: Optional[str] = None,
    ):
        self.rates = dict(rates if rates is not None else settings.service_rates)
        self.default_kind = default_kind or settings.default_service_kind
        if self.default_kind not in self.rates:
            raise ValueError(f"Default service kind '{self.default_kind}' has no rate")

    def resolve_kind(self, service_kind: Optional[str]) -> str:
        """Unknown or missing kinds fall back to the default kind."""
        if service_kind and service_kind in self.rates:
            return service_kind
        if service_kind:
            logger.info(
                "Unknown service kind %r; pricing as %s", service_kind, self.default_kind
            )
        return self.default_kind

    def hourly_rate(self, service_kind: Optional[str]) -> int:
        return self.rates[self.resolve_kind(service_kind)]

    def quote(self, service_kind: Optional[str], duration_hours: int) -> Decimal:
        return Decimal(self.hourly_rate(service_kind) * int(duration_hours))
