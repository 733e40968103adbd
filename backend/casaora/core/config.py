# backend/casaora/core/config.py
import logging
import os
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import BRAND_NAME

logger = logging.getLogger(__name__)


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


def secret_or_plain(value: Any) -> str:
    """Return the plain string behind a SecretStr (or the value itself)."""
    if value is None:
        return ""
    if hasattr(value, "get_secret_value"):
        return str(value.get_secret_value())
    return str(value)


class Settings(BaseSettings):
    """Runtime configuration for the check-out and webhook services."""

    app_name: str = Field(default=f"{BRAND_NAME} API", description="Service display name")
    environment: str = Field(default="development", description="Deployment environment")
    is_testing: bool = Field(default=False, description="Set by the test suite")

    # Database
    database_url: str = Field(
        default="sqlite:///./casaora.db",
        description="SQLAlchemy database URL",
    )
    database_pool_size: int = Field(default=5, description="Persistent pooled connections")
    database_max_overflow: int = Field(default=5, description="Extra connections under load")

    # Stripe Configuration
    stripe_secret_key: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe secret key for backend API calls",
    )
    stripe_webhook_secret: SecretStr = Field(
        default=SecretStr(""),
        description="Shared secret used to sign Stripe webhook deliveries",
    )
    stripe_max_network_retries: int = Field(
        default=1, description="Transport-level retries performed by the Stripe SDK"
    )
    stripe_request_timeout_seconds: int = Field(
        default=8, description="Overall timeout for a single Stripe API request"
    )
    webhook_tolerance_seconds: int = Field(
        default=300,
        description="Maximum age (or clock skew) of a signed webhook before it is rejected",
    )

    # Check-out workflow
    checkout_gps_max_distance_meters: float = Field(
        default=150.0, description="Radius around the service address treated as on-site"
    )
    checkout_persist_max_attempts: int = Field(
        default=3, description="Total attempts for the post-capture booking update"
    )
    checkout_persist_base_delay_ms: int = Field(
        default=100, description="First backoff delay for the post-capture booking update"
    )
    default_currency: str = Field(default="COP", description="ISO currency for new bookings")

    # Rebook nudge experiment
    rebook_nudge_enabled: bool = Field(
        default=False, description="Assign completed bookings to a rebook nudge variant"
    )
    rebook_nudge_variants: str = Field(
        default="control,reminder_7d,discount_10",
        description="Comma-separated experiment variants; the first one is the control",
    )

    # Email (Resend)
    resend_api_key: Optional[str] = Field(default=None, description="Resend API key")
    email_from_address: str = Field(
        default="notificaciones@casaora.co", description="Sender address for emails"
    )
    email_from_name: str = Field(default=BRAND_NAME, description="Sender display name")

    # Web push (VAPID)
    vapid_public_key: str = Field(default="", description="VAPID public key for web push")
    vapid_private_key: SecretStr = Field(
        default=SecretStr(""), description="VAPID private key for web push"
    )
    vapid_claims_email: str = Field(
        default="mailto:soporte@casaora.co", description="VAPID subject claim"
    )

    frontend_url: str = Field(default="http://localhost:3000", description="Public web origin")

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("checkout_persist_max_attempts")
    @classmethod
    def _at_least_one_attempt(cls, value: int) -> int:
        if value < 1:
            raise ValueError("checkout_persist_max_attempts must be at least 1")
        return value

    @field_validator("default_currency", mode="before")
    @classmethod
    def _normalize_currency(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @property
    def rebook_nudge_variant_list(self) -> list[str]:
        """Configured experiment variants in declaration order."""
        return [token.strip() for token in self.rebook_nudge_variants.split(",") if token.strip()]

    @property
    def stripe_configured(self) -> bool:
        return bool(secret_or_plain(self.stripe_secret_key).strip())


settings = Settings()
