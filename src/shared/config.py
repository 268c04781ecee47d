"""Service configuration loaded from the environment (and ``.env`` if present)."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MPESA_HOSTS = {
    "sandbox": "https://sandbox.safaricom.co.ke",
    "production": "https://api.safaricom.co.ke",
}

CALLBACK_PATH = "/payments/mpesa/callback"


class Settings(BaseSettings):
    """Typed settings; every field maps to an upper-case environment variable."""

    # Application
    environment: str = "development"
    log_level: str | None = None
    # Rotating log files go here; empty disables file logging
    log_dir: str | None = "logs"

    # M-Pesa (Daraja) credentials
    mpesa_consumer_key: str | None = None
    mpesa_consumer_secret: str | None = None
    mpesa_shortcode: str | None = None
    mpesa_passkey: str | None = None
    mpesa_environment: Literal["sandbox", "production"] = "sandbox"

    # Callback routing
    mpesa_callback_url: str | None = None
    callback_base_url: str = "http://localhost:8000"

    # Provider request shaping
    mpesa_timeout_seconds: float = Field(default=30.0, gt=0)
    mpesa_country_code: str = "254"
    mpesa_transaction_type: str = "CustomerPayBillOnline"
    mpesa_transaction_desc: str = "Storefront purchase"

    # Which gateway adapter backs get_gateway(): "fake" or "mpesa"
    payment_gateway: Literal["fake", "mpesa"] = "fake"

    # Dispatch origin (goods leave from here)
    pickup_lat: float = -1.296583
    pickup_lng: float = 36.8735

    # Courier tracking
    courier_location_interval_seconds: float = Field(default=5.0, gt=0)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def mpesa_base_url(self) -> str:
        """Sandbox and production differ only by host."""
        return MPESA_HOSTS[self.mpesa_environment]

    @property
    def callback_url(self) -> str:
        if self.mpesa_callback_url:
            return self.mpesa_callback_url
        return self.callback_base_url.rstrip("/") + CALLBACK_PATH

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the process-wide Settings instance, loading it on first use."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def set_settings_for_test(**overrides) -> Settings:
    """For testing only: replace the Settings instance with explicit values."""
    global _settings
    _settings = Settings(**overrides)
    return _settings


def reset_settings() -> None:
    global _settings
    _settings = None
