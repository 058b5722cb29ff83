"""
Exchange Configuration
Settings for the national health-insurance exchange connection.
Source: https://docs.pydantic.dev/latest/concepts/pydantic_settings/
Verified: 2026-10-18
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.core.enums import DemoScenario, IntegrationMode


class ExchangeSettings(BaseSettings):
    """
    Exchange connection settings.

    All values are read from EXCHANGE_* environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="EXCHANGE_",
    )

    # =========================================================================
    # Integration Mode
    # =========================================================================
    INTEGRATION_MODE: IntegrationMode = Field(
        default=IntegrationMode.DEMO,
        description="demo (simulated exchange) or live (HTTP exchange)",
    )

    # =========================================================================
    # Transport
    # =========================================================================
    BASE_URL: str = Field(
        default="http://176.105.150.83",
        description="Exchange base URL",
    )
    PROCESS_MESSAGE_PATH: str = Field(
        default="/$process-message",
        description="Message processing endpoint path",
    )
    TIMEOUT_SECONDS: float = Field(
        default=60.0,
        gt=0,
        description="Per-request HTTP timeout",
    )
    COMMAND_TIMEOUT_SECONDS: float = Field(
        default=90.0,
        gt=0,
        description="Upper bound for any exchange call made by a lifecycle command",
    )

    # =========================================================================
    # Identities
    # =========================================================================
    PROVIDER_LICENSE: str = Field(default="1010613708", description="Sender provider license")
    PROVIDER_DOMAIN: str = Field(default="PR-FHIR", description="Provider FHIR domain")
    DEFAULT_INSURER_LICENSE: str = Field(default="INS-FHIR", description="Fallback insurer license")
    EXCHANGE_LICENSE: str = Field(default="NPHIES", description="Exchange license for poll messages")
    DEFAULT_CURRENCY: str = Field(default="SAR", min_length=3, max_length=3)

    # =========================================================================
    # Polling
    # =========================================================================
    POLL_MESSAGE_COUNT: int = Field(default=50, ge=1, le=200)

    # =========================================================================
    # Demo Exchange
    # =========================================================================
    DEMO_SCENARIO: DemoScenario = Field(default=DemoScenario.QUEUE)
    DEMO_POLLS_UNTIL_READY: int = Field(default=1, ge=0)

    @field_validator("BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Endpoint paths are appended to the base URL."""
        return v.rstrip("/")

    @field_validator("DEFAULT_CURRENCY")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    @property
    def process_message_url(self) -> str:
        return f"{self.BASE_URL}{self.PROCESS_MESSAGE_PATH}"

    @property
    def is_demo_mode(self) -> bool:
        """Check if running against the simulated exchange."""
        return self.INTEGRATION_MODE == IntegrationMode.DEMO

    @property
    def is_live_mode(self) -> bool:
        """Check if running against the real exchange."""
        return self.INTEGRATION_MODE == IntegrationMode.LIVE


@lru_cache
def get_exchange_settings() -> ExchangeSettings:
    """Get cached exchange settings instance."""
    return ExchangeSettings()
