"""Tests for gateway port/adapter integration."""

import pytest

from payments.gateway import get_gateway, reset_gateway, set_gateway
from payments.gateway.fake_adapter import FakeGateway
from payments.gateway.mpesa_adapter import MpesaGateway
from payments.gateway.port import AccessToken, StkPushResult
from shared.config import set_settings_for_test
from shared.exceptions import UpstreamRejected, ValidationError


class TestFakeGateway:
    def test_default_push_succeeds(self):
        gateway = FakeGateway()
        result = gateway.initiate_payment("0712345678", 4800, "ORD000000001")
        assert isinstance(result, StkPushResult)
        assert result.checkout_request_id.startswith("ws_CO_")
        assert result.response_code == "0"

    def test_configured_push_fails(self):
        gateway = FakeGateway()
        gateway.configure(should_succeed=False, failure_reason="Invalid Access Token")
        with pytest.raises(UpstreamRejected) as exc:
            gateway.initiate_payment("0712345678", 4800, "ORD000000001")
        assert exc.value.status_code == 400
        assert exc.value.details["errorMessage"] == "Invalid Access Token"

    def test_validates_before_recording_call(self):
        gateway = FakeGateway()
        with pytest.raises(ValidationError):
            gateway.initiate_payment("12", 0, "")
        assert gateway.calls == []

    def test_call_logging(self):
        gateway = FakeGateway()
        gateway.initiate_payment("+254 712 345 678", "99.5", "ORD1234567890XYZ")
        assert len(gateway.calls) == 1
        call = gateway.calls[0]
        assert call["method"] == "initiate_payment"
        assert call["phone"] == "254712345678"
        assert call["amount"] == 100
        assert call["reference"] == "ORD123456789"
        assert call["description"] == "Storefront purchase"

    def test_access_token(self):
        token = FakeGateway().get_access_token()
        assert isinstance(token, AccessToken)
        assert token.expires_in == 3599


class TestGatewayFactory:
    def test_get_gateway_returns_fake_by_default(self):
        reset_gateway()
        assert isinstance(get_gateway(), FakeGateway)

    def test_get_gateway_is_cached(self):
        assert get_gateway() is get_gateway()

    def test_set_gateway_overrides(self):
        custom = FakeGateway()
        set_gateway(custom)
        assert get_gateway() is custom

    def test_mpesa_selected_by_settings(self):
        set_settings_for_test(environment="test", payment_gateway="mpesa")
        reset_gateway()
        assert isinstance(get_gateway(), MpesaGateway)

    def test_fake_uses_configured_description(self):
        set_settings_for_test(environment="test", mpesa_transaction_desc="Footwear order")
        reset_gateway()
        gateway = get_gateway()
        gateway.initiate_payment("0712345678", 10, "ORD1")
        assert gateway.calls[0]["description"] == "Footwear order"
