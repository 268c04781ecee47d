"""Pydantic request/response schemas for the Payments API.

These are external contracts. Field names follow what storefront clients and
the provider already send, hence the camelCase.
"""

from pydantic import BaseModel


# ---------------------------------------------------------------------------
# STK push
# ---------------------------------------------------------------------------
class StkPushRequest(BaseModel):
    """All fields optional here; the route reports every missing one at once."""

    phoneNumber: str | None = None
    amount: int | float | str | None = None
    accountReference: str | None = None
    transactionDesc: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "phoneNumber": "0712345678",
                    "amount": 4800,
                    "accountReference": "ORD3F9A1C2B7",
                    "transactionDesc": "Storefront purchase - ORD3F9A1C2B7",
                }
            ]
        }
    }


class StkPushResponse(BaseModel):
    success: bool = True
    checkoutRequestID: str
    merchantRequestID: str | None = None
    customerMessage: str | None = None
    responseCode: str | None = None
    responseDescription: str | None = None


class TokenResponse(BaseModel):
    success: bool = True
    access_token: str
    expires_in: int


# ---------------------------------------------------------------------------
# Provider callbacks
# ---------------------------------------------------------------------------
class ProviderAck(BaseModel):
    """The only response the provider ever gets from us."""

    ResultCode: int = 0
    ResultDesc: str = "Accepted"


# ---------------------------------------------------------------------------
# Fake gateway control
# ---------------------------------------------------------------------------
class ConfigureGatewayRequest(BaseModel):
    should_succeed: bool = True
    failure_reason: str = "Invalid Access Token"


class GatewayConfigResponse(BaseModel):
    gateway: str
    should_succeed: bool
    failure_reason: str
