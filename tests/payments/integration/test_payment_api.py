"""Integration tests for the push-payment API endpoints."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from payments.api.routes import payment_router
from payments.gateway import set_gateway
from payments.gateway.fake_adapter import FakeGateway
from payments.gateway.mpesa_adapter import MpesaGateway
from shared.api import register_exception_handlers
from shared.config import get_settings, set_settings_for_test
from shared.exceptions import UpstreamTimeout


@pytest.fixture()
def client():
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(payment_router)
    return TestClient(app)


def _stk_body(**overrides):
    body = {
        "phoneNumber": "0712345678",
        "amount": 4800,
        "accountReference": "ORD000000001",
        "transactionDesc": "Storefront purchase - ORD000000001",
    }
    body.update(overrides)
    return body


class TestStkPushAPI:
    def test_push_returns_checkout_request_id(self, client, fake_gateway):
        response = client.post("/payments/stk-push", json=_stk_body())
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["checkoutRequestID"].startswith("ws_CO_")
        assert data["responseCode"] == "0"
        assert fake_gateway.calls[0]["amount"] == 4800

    def test_missing_fields_return_400(self, client, fake_gateway):
        response = client.post("/payments/stk-push", json={"amount": 10})
        assert response.status_code == 400
        data = response.json()
        assert "error" in data
        assert set(data["details"]) == {"phoneNumber", "accountReference"}
        assert fake_gateway.calls == []

    def test_invalid_phone_returns_400(self, client):
        response = client.post("/payments/stk-push", json=_stk_body(phoneNumber="12"))
        assert response.status_code == 400
        assert "phone" in response.json()["details"]

    def test_provider_rejection_is_relayed(self, client, fake_gateway):
        fake_gateway.configure(should_succeed=False, failure_reason="Invalid Access Token")
        response = client.post("/payments/stk-push", json=_stk_body())
        assert response.status_code == 400
        assert response.json()["details"]["errorMessage"] == "Invalid Access Token"

    def test_timeout_returns_504(self, client, mocker):
        gateway = FakeGateway()
        mocker.patch.object(gateway, "initiate_payment", side_effect=UpstreamTimeout("M-Pesa did not respond"))
        set_gateway(gateway)
        response = client.post("/payments/stk-push", json=_stk_body())
        assert response.status_code == 504
        assert response.json()["error"] == "M-Pesa did not respond"

    def test_missing_credentials_return_500(self, client):
        set_gateway(MpesaGateway(get_settings()))
        response = client.post("/payments/stk-push", json=_stk_body())
        assert response.status_code == 500
        assert response.json()["error"] == "M-Pesa shortcode or passkey not configured"


class TestTokenAPI:
    def test_get_token(self, client):
        response = client.get("/payments/token")
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["access_token"].startswith("fake_token_")
        assert data["expires_in"] == 3599

    def test_post_token(self, client):
        assert client.post("/payments/token").status_code == 200


class TestC2BAPI:
    def test_validation_accepts(self, client):
        response = client.post("/payments/c2b/validation", json={"TransID": "QKJ1", "TransAmount": "10"})
        assert response.status_code == 200
        assert response.json() == {"ResultCode": 0, "ResultDesc": "Accepted"}

    def test_confirmation_acknowledges(self, client):
        response = client.post("/payments/c2b/confirmation", content=b"not json")
        assert response.status_code == 200
        assert response.json()["ResultCode"] == 0


class TestConfigureGatewayAPI:
    def test_configure_fake_gateway(self, client, fake_gateway):
        response = client.post(
            "/payments/gateway/configure",
            json={"should_succeed": False, "failure_reason": "Insufficient balance"},
        )
        assert response.status_code == 200
        assert response.json() == {
            "gateway": "FakeGateway",
            "should_succeed": False,
            "failure_reason": "Insufficient balance",
        }
        assert fake_gateway.should_succeed is False

    def test_forbidden_in_production(self, client):
        set_settings_for_test(environment="production", log_dir="")
        response = client.post("/payments/gateway/configure", json={"should_succeed": False})
        assert response.status_code == 403

    def test_rejected_for_real_gateway(self, client):
        set_gateway(MpesaGateway(get_settings()))
        response = client.post("/payments/gateway/configure", json={"should_succeed": False})
        assert response.status_code == 400
