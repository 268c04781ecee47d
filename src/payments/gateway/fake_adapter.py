"""Configurable fake push-payment gateway for development and testing.

This adapter simulates the provider without any external calls. It validates
requests exactly like the real adapter (so bad input fails the same way), and
can be configured at runtime to accept or reject, making it useful for:
- Manual API testing via /payments/gateway/configure
- Automated tests with predictable outcomes
- Development without real provider credentials

The callback never arrives on its own; tests and manual runs post it to the
webhook endpoint, using ``callback_payload()`` to build a realistic body.
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

from payments.gateway import payloads
from payments.gateway.port import AccessToken, PaymentGateway, StkPushResult
from shared.exceptions import UpstreamRejected


class FakeGateway(PaymentGateway):
    """Configurable fake push-payment gateway."""

    def __init__(self, country_code: str = "254", default_description: str = "Storefront purchase") -> None:
        self.country_code = country_code
        self.default_description = default_description
        self.should_succeed: bool = True
        self.failure_reason: str = "Invalid Access Token"
        self.calls: list[dict] = []

    def configure(self, should_succeed: bool, failure_reason: str = "Invalid Access Token") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def get_access_token(self) -> AccessToken:
        self.calls.append({"method": "get_access_token"})
        return AccessToken(value=f"fake_token_{uuid4().hex[:12]}", expires_in=3599)

    def initiate_payment(
        self,
        phone: str,
        amount: int | float | Decimal | str,
        reference: str,
        description: str | None = None,
    ) -> StkPushResult:
        request = payloads.build_payment_request(
            phone,
            amount,
            reference,
            description,
            country_code=self.country_code,
            default_description=self.default_description,
        )
        call = {
            "method": "initiate_payment",
            "phone": request.phone,
            "amount": request.amount,
            "reference": request.reference,
            "description": request.description,
        }
        self.calls.append(call)

        if not self.should_succeed:
            raise UpstreamRejected(
                "STK Push failed",
                details={"errorCode": "404.001.03", "errorMessage": self.failure_reason},
                status_code=400,
            )

        return StkPushResult(
            checkout_request_id=f"ws_CO_{uuid4().hex[:20]}",
            merchant_request_id=f"fake-{uuid4().hex[:8]}",
            customer_message="Success. Request accepted for processing",
            response_code="0",
            response_description="Success. Request accepted for processing",
        )


def callback_payload(
    checkout_request_id: str,
    result_code: int = 0,
    result_desc: str | None = None,
    amount: int | None = None,
    receipt_number: str = "QFAKE12345",
    phone: str = "254712345678",
    paid_at: datetime | None = None,
) -> dict:
    """Build a provider-shaped STK callback body."""
    callback = {
        "MerchantRequestID": f"fake-{uuid4().hex[:8]}",
        "CheckoutRequestID": checkout_request_id,
        "ResultCode": result_code,
        "ResultDesc": result_desc
        or ("The service request is processed successfully." if result_code == 0 else "Request cancelled by user"),
    }
    if result_code == 0:
        items = [
            {"Name": "MpesaReceiptNumber", "Value": receipt_number},
            {"Name": "Balance"},
            {"Name": "TransactionDate", "Value": int((paid_at or datetime.now(UTC)).strftime("%Y%m%d%H%M%S"))},
            {"Name": "PhoneNumber", "Value": int(phone)},
        ]
        if amount is not None:
            items.insert(0, {"Name": "Amount", "Value": amount})
        callback["CallbackMetadata"] = {"Item": items}
    return {"Body": {"stkCallback": callback}}
