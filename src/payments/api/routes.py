"""FastAPI routes for the Payments context: push payments and provider callbacks."""

import json

import structlog
from fastapi import APIRouter, Request

from ordering.order.lifecycle import get_lifecycle
from payments.api.schemas import (
    ConfigureGatewayRequest,
    GatewayConfigResponse,
    ProviderAck,
    StkPushRequest,
    StkPushResponse,
    TokenResponse,
)
from payments.callback import Malformed, parse_callback
from payments.gateway import get_gateway
from payments.gateway.fake_adapter import FakeGateway
from shared.config import get_settings
from shared.exceptions import PermissionDenied, ValidationError

logger = structlog.get_logger(__name__)

REQUIRED_STK_FIELDS = ("phoneNumber", "amount", "accountReference")

payment_router = APIRouter(prefix="/payments", tags=["payments"])


# ---------------------------------------------------------------------------
# Outbound: requests to the provider
# ---------------------------------------------------------------------------
@payment_router.post("/stk-push", response_model=StkPushResponse)
def stk_push(body: StkPushRequest) -> StkPushResponse:
    """Prompt the customer's phone for payment."""
    missing = [name for name in REQUIRED_STK_FIELDS if getattr(body, name) in (None, "")]
    if missing:
        raise ValidationError({name: ["Field required"] for name in missing})

    result = get_gateway().initiate_payment(
        phone=body.phoneNumber,
        amount=body.amount,
        reference=body.accountReference,
        description=body.transactionDesc,
    )
    return StkPushResponse(
        checkoutRequestID=result.checkout_request_id,
        merchantRequestID=result.merchant_request_id,
        customerMessage=result.customer_message,
        responseCode=result.response_code,
        responseDescription=result.response_description,
    )


@payment_router.api_route("/token", methods=["GET", "POST"], response_model=TokenResponse)
def access_token() -> TokenResponse:
    """Fetch a provider access token (diagnostics)."""
    token = get_gateway().get_access_token()
    return TokenResponse(access_token=token.value, expires_in=token.expires_in)


# ---------------------------------------------------------------------------
# Inbound: provider callbacks. These always acknowledge.
# ---------------------------------------------------------------------------
@payment_router.post("/mpesa/callback", response_model=ProviderAck)
async def mpesa_callback(request: Request) -> ProviderAck:
    """Reconcile an STK push outcome with its order."""
    try:
        raw = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raw = None

    parsed = parse_callback(raw)
    if isinstance(parsed, Malformed):
        logger.warning(
            "mpesa_callback_malformed",
            reason=parsed.reason,
            checkout_request_id=parsed.checkout_request_id,
        )
        return ProviderAck(ResultDesc="Callback received successfully")

    logger.info(
        "mpesa_callback_received",
        checkout_request_id=parsed.checkout_request_id,
        result_code=parsed.result_code,
        result_desc=parsed.result_description,
    )
    try:
        get_lifecycle().apply_payment_result(parsed.checkout_request_id, parsed)
    except Exception:
        # The provider must always get its acknowledgement
        logger.exception("mpesa_callback_failed", checkout_request_id=parsed.checkout_request_id)
    return ProviderAck(ResultDesc="Callback received successfully")


@payment_router.post("/c2b/validation", response_model=ProviderAck)
async def c2b_validation(request: Request) -> ProviderAck:
    """Accept every paybill payment."""
    logger.info("c2b_validation_received", payload=await _payload(request))
    return ProviderAck(ResultDesc="Accepted")


@payment_router.post("/c2b/confirmation", response_model=ProviderAck)
async def c2b_confirmation(request: Request) -> ProviderAck:
    logger.info("c2b_confirmation_received", payload=await _payload(request))
    return ProviderAck(ResultDesc="Confirmation received successfully")


async def _payload(request: Request):
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return (await request.body()).decode(errors="replace")


# ---------------------------------------------------------------------------
# Fake gateway control
# ---------------------------------------------------------------------------
@payment_router.post("/gateway/configure", response_model=GatewayConfigResponse)
async def configure_gateway(body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only).

    Lets manual testers toggle whether push requests are accepted.
    """
    if get_settings().is_production:
        raise PermissionDenied("Gateway configuration not available in production")

    gateway = get_gateway()
    if not isinstance(gateway, FakeGateway):
        raise ValidationError({"gateway": ["Gateway configuration only available for FakeGateway"]})

    gateway.configure(
        should_succeed=body.should_succeed,
        failure_reason=body.failure_reason,
    )
    return GatewayConfigResponse(
        gateway=type(gateway).__name__,
        should_succeed=gateway.should_succeed,
        failure_reason=gateway.failure_reason,
    )
