"""Tests for settings resolution, log level selection and error-to-status mapping."""

import pytest

from shared.api import error_body, status_for
from shared.config import Settings, set_settings_for_test
from shared.exceptions import (
    ConcurrentModification,
    NotFound,
    UpstreamAuthFailure,
    UpstreamRejected,
    UpstreamTimeout,
    ValidationError,
)
from shared.logging import get_log_level


class TestSettings:
    def test_callback_url_from_base(self):
        settings = Settings(callback_base_url="https://shop.example.com/")
        assert settings.callback_url == "https://shop.example.com/payments/mpesa/callback"

    def test_explicit_callback_url(self):
        settings = Settings(mpesa_callback_url="https://hooks.example.com/mpesa")
        assert settings.callback_url == "https://hooks.example.com/mpesa"

    def test_hosts_by_environment(self):
        assert Settings().mpesa_base_url == "https://sandbox.safaricom.co.ke"
        assert Settings(mpesa_environment="production").mpesa_base_url == "https://api.safaricom.co.ke"

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("PICKUP_LAT", "-1.3")
        monkeypatch.setenv("PAYMENT_GATEWAY", "mpesa")
        settings = Settings()
        assert settings.pickup_lat == -1.3
        assert settings.payment_gateway == "mpesa"


class TestLogLevel:
    def test_environment_default(self):
        set_settings_for_test(environment="production", log_dir="")
        assert get_log_level() == "INFO"

    def test_explicit_level_wins(self):
        set_settings_for_test(environment="production", log_dir="", log_level="debug")
        assert get_log_level() == "DEBUG"


class TestErrorMapping:
    @pytest.mark.parametrize(
        "error, status",
        [
            (ValidationError({"phone": ["bad"]}), 400),
            (NotFound("missing"), 404),
            (ConcurrentModification("stale"), 409),
            (UpstreamTimeout("slow"), 504),
            (UpstreamAuthFailure("denied", status_code=401), 401),
            (UpstreamRejected("rejected", status_code=None), 502),
        ],
    )
    def test_status(self, error, status):
        assert status_for(error) == status

    def test_validation_body_carries_field_messages(self):
        body = error_body(ValidationError({"phone": ["Phone number is required"]}))
        assert body["details"] == {"phone": ["Phone number is required"]}
        assert "phone" in body["error"]
