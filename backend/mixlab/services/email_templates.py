# backend/mixlab/services/email_templates.py
"""Jinja2 rendering for transactional emails."""

from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader

from ..core.config import settings
from ..core.constants import BRAND_NAME

TEMPLATE_DIR = Path(__file__).parent.parent / "templates"

BOOKING_CONFIRMATION = "email/booking_confirmation.html"


def _currency(value: Any, code: str = "PHP") -> str:
    return f"{code} {float(value or 0):,.2f}"


def _service_label(value: Optional[str]) -> str:
    return (value or "").replace("_", " ").title()


_env = Environment(
    loader=FileSystemLoader(TEMPLATE_DIR),
    autoescape=True,
    trim_blocks=True,
    lstrip_blocks=True,
)
_env.filters["currency"] = _currency
_env.filters["service_label"] = _service_label


def render_template(name: str, context: Dict[str, Any]) -> str:
    common = {"brand_name": BRAND_NAME, "currency_code": settings.currency}
    return _env.get_template(name).render(**common, **context)
