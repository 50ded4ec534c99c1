# backend/mixlab/core/config.py
import logging
import os
from pathlib import Path
from typing import Dict, Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .enums import ServiceKind

logger = logging.getLogger(__name__)


# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.info(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


DEFAULT_SERVICE_RATES: Dict[str, int] = {
    ServiceKind.MUSIC_LESSON.value: 500,
    ServiceKind.RECORDING.value: 1500,
    ServiceKind.REHEARSAL.value: 800,
    ServiceKind.DANCE.value: 600,
    ServiceKind.ARRANGEMENT.value: 2000,
    ServiceKind.VOICEOVER.value: 1000,
}


class Settings(BaseSettings):
    environment: str = Field(default="development", description="Deployment environment")
    secret_key: SecretStr = Field(
        default=SecretStr("change-me-in-production"),
        description="Secret used to verify access tokens and sign check-in tokens",
    )
    jwt_algorithm: str = Field(default="HS256")

    database_url: str = Field(
        default="sqlite:///./mixlab.db",
        description="SQLAlchemy database URL (PostgreSQL in production)",
    )
    frontend_url: str = Field(default="http://localhost:3000")

    # Studio operating window
    studio_open_hour: int = Field(default=9, ge=0, le=23)
    studio_close_hour: int = Field(default=21, ge=1, le=23)
    slot_step_minutes: int = Field(default=30, gt=0, le=60)
    min_booking_hours: int = Field(default=1, ge=1)
    max_booking_hours: int = Field(default=8, ge=1)

    # Pricing
    service_rates: Dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_SERVICE_RATES),
        description="Hourly rate per service kind",
    )
    default_service_kind: str = Field(default=ServiceKind.REHEARSAL.value)

    conflict_check_fail_closed: bool = Field(
        default=True,
        description="Reject bookings when the conflict check cannot read the reservation store",
    )

    # Payment provider (Xendit invoices)
    xendit_secret_key: SecretStr = Field(default=SecretStr(""))
    xendit_api_base: str = Field(default="https://api.xendit.co")
    xendit_webhook_token: SecretStr = Field(default=SecretStr(""))
    payment_provider_fake: bool = Field(
        default=False,
        description="Use the in-memory provider instead of calling Xendit",
    )
    payment_expiry_hours: int = Field(default=24, ge=1)
    currency: str = Field(default="PHP")

    # Email
    email_provider: Literal["console", "resend"] = Field(default="console")
    resend_api_key: Optional[str] = Field(default=None)
    email_from_address: str = Field(default="MixLab Studio <bookings@mixlab.studio>")

    # Real-time notifications
    broadcast_url: Optional[str] = Field(
        default=None,
        description="Broadcaster backend URL (redis://... or memory://); disabled when unset",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("database_url")
    @classmethod
    def _normalize_postgres_scheme(cls, value: str) -> str:
        if value.startswith("postgres://"):
            return value.replace("postgres://", "postgresql://", 1)
        return value

    @model_validator(mode="after")
    def _validate_window(self) -> "Settings":
        if self.studio_close_hour <= self.studio_open_hour:
            raise ValueError("studio_close_hour must be after studio_open_hour")
        if self.max_booking_hours < self.min_booking_hours:
            raise ValueError("max_booking_hours must be >= min_booking_hours")
        if self.default_service_kind not in self.service_rates:
            raise ValueError("default_service_kind must have an entry in service_rates")
        return self

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def use_fake_payment_provider(self) -> bool:
        return self.payment_provider_fake or not self.xendit_secret_key.get_secret_value()


settings = Settings()
