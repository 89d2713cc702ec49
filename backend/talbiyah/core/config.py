# backend/talbiyah/core/config.py
from decimal import Decimal
import logging
import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import BRAND_NAME


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.info(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


PRODUCTION_DATABASE_INDICATORS = [
    "supabase.com",
    "supabase.co",
    "amazonaws.com",
    "neon.tech",
    "render.com",
]


class Settings(BaseSettings):
    environment: str = Field(default="development", description="Deployment environment name")
    is_testing: bool = False

    # Database
    database_url_raw: str = Field(
        default="postgresql://localhost:5432/talbiyah",
        validation_alias=AliasChoices("DATABASE_URL", "database_url"),
        description="Primary database URL",
    )
    test_database_url: str = Field(
        default="sqlite://",
        validation_alias=AliasChoices("TEST_DATABASE_URL", "test_database_url"),
        description="Database used by the test-suite",
    )
    production_database_indicators: list[str] = Field(
        default_factory=lambda: list(PRODUCTION_DATABASE_INDICATORS)
    )

    # Celery / Redis
    redis_url: str = Field(default="redis://localhost:6379", description="Redis URL")
    celery_broker_url: Optional[str] = Field(
        default=None, description="Explicit Celery broker (defaults to redis_url)"
    )

    # Confirmation workflow policy
    confirmation_window_hours: int = Field(
        default=24,
        ge=1,
        description="Hours a teacher has to respond before a lesson is auto-acknowledged",
    )
    auto_acknowledge_sweep_minutes: int = Field(
        default=60, ge=1, description="Interval between auto-acknowledge sweeps"
    )
    decline_refund_credits: Decimal = Field(
        default=Decimal("1"),
        gt=0,
        description="Credits refunded on decline when the lesson has no recorded credit cost",
    )
    room_opens_hours_before: int = Field(
        default=6, ge=0, description="Hours before start that the virtual room opens"
    )
    urgent_after_hours: int = Field(
        default=20, ge=0, description="Pending requests older than this are flagged urgent"
    )

    # Email
    email_provider: Literal["console", "resend"] = Field(
        default="console",
        description="Email delivery backend",
    )
    resend_api_key: Optional[SecretStr] = Field(default=None, description="Resend API key")
    from_email: str = Field(
        default=f"{BRAND_NAME} <hello@talbiyah.ai>", description="Default sender address"
    )
    internal_api_token: Optional[SecretStr] = Field(
        default=None,
        description="Shared secret required on /internal endpoints when set (X-Internal-Token)",
    )
    frontend_url: str = Field(default="http://localhost:5173", description="Public web app URL")
    display_timezone: str = Field(
        default="Europe/London", description="Timezone used when formatting lesson times in emails"
    )

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("environment")
    @classmethod
    def _normalize_environment(cls, value: str) -> str:
        return (value or "development").strip().lower()

    @field_validator("test_database_url")
    @classmethod
    def validate_test_database(cls, value: str) -> str:
        """Ensure the test database is not a production database."""
        lowered = (value or "").lower()
        for indicator in PRODUCTION_DATABASE_INDICATORS:
            if indicator in lowered:
                raise ValueError(
                    f"Test database URL contains production indicator '{indicator}'. "
                    f"Tests must not use production databases!"
                )
        return value

    def get_database_url(self) -> str:
        """Get the appropriate database URL based on context."""
        if self.is_testing or is_running_tests():
            return self.test_database_url
        url = self.database_url_raw
        # Heroku/Render style URLs
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql://", 1)
        return url

    def is_production_database(self, url: str | None = None) -> bool:
        """Check if a database URL appears to be a production database."""
        check_url = url or self.database_url_raw or ""
        return any(
            indicator in check_url.lower() for indicator in self.production_database_indicators
        )

    @property
    def database_url(self) -> str:
        return self.get_database_url()

    @property
    def broker_url(self) -> str:
        return self.celery_broker_url or self.redis_url


settings = Settings()
