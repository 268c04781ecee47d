"""M-Pesa Daraja gateway adapter.

Talks to the provider over HTTPS:
- OAuth client-credentials token (HTTP Basic with consumer key/secret)
- STK push (``/mpesa/stkpush/v1/processrequest``) with a bearer token

Every outbound call carries the configured timeout. Nothing here is retried;
the provider retries its own callbacks.
"""

import time
from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal

import httpx
import structlog

from payments.gateway import payloads
from payments.gateway.port import AccessToken, PaymentGateway, StkPushResult
from shared.config import Settings
from shared.exceptions import (
    CredentialsMissing,
    UpstreamAuthFailure,
    UpstreamRejected,
    UpstreamTimeout,
    UpstreamUnavailable,
)

logger = structlog.get_logger(__name__)

TOKEN_PATH = "/oauth/v1/generate"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"

DEFAULT_TOKEN_TTL = 3599
# Refresh a little before the provider says the token expires
TOKEN_EXPIRY_MARGIN = 60


def _body(response: httpx.Response):
    """The provider's raw payload: JSON when it parses, text otherwise."""
    try:
        return response.json()
    except ValueError:
        return response.text


class MpesaGateway(PaymentGateway):
    """Production push-payment adapter for the Daraja API."""

    def __init__(
        self,
        settings: Settings,
        client: httpx.Client | None = None,
        clock: Callable[[], datetime] | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self.client = client or httpx.Client(
            base_url=settings.mpesa_base_url,
            timeout=settings.mpesa_timeout_seconds,
        )
        self._clock = clock or (lambda: datetime.now(UTC))
        self._monotonic = monotonic
        self._token: AccessToken | None = None
        self._token_expires_at: float = 0.0

    # -------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------
    def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = self.settings.mpesa_base_url + path
        try:
            return self.client.request(method, url, timeout=self.settings.mpesa_timeout_seconds, **kwargs)
        except httpx.TimeoutException as exc:
            logger.error("mpesa_timeout", path=path, timeout=self.settings.mpesa_timeout_seconds)
            raise UpstreamTimeout(
                f"M-Pesa did not respond within {self.settings.mpesa_timeout_seconds}s",
                details=str(exc),
            ) from exc
        except httpx.TransportError as exc:
            logger.error("mpesa_unreachable", path=path, error=str(exc))
            raise UpstreamUnavailable("M-Pesa could not be reached", details=str(exc)) from exc

    # -------------------------------------------------------------------
    # OAuth
    # -------------------------------------------------------------------
    def get_access_token(self) -> AccessToken:
        if self._token is not None and self._monotonic() < self._token_expires_at:
            return self._token

        key = self.settings.mpesa_consumer_key
        secret = self.settings.mpesa_consumer_secret
        if not key or not secret:
            raise CredentialsMissing("M-Pesa credentials not configured")

        response = self._send(
            "GET",
            TOKEN_PATH,
            params={"grant_type": "client_credentials"},
            auth=httpx.BasicAuth(key, secret),
        )
        if not response.is_success:
            details = _body(response)
            logger.error("mpesa_oauth_failed", status=response.status_code, details=details)
            raise UpstreamAuthFailure(
                "Failed to get access token",
                details=details,
                status_code=response.status_code,
            )

        data = _body(response)
        if not isinstance(data, dict) or not data.get("access_token"):
            raise UpstreamAuthFailure(
                "Token response did not contain an access token",
                details=data,
                status_code=response.status_code,
            )

        try:
            expires_in = int(data.get("expires_in") or DEFAULT_TOKEN_TTL)
        except (TypeError, ValueError):
            expires_in = DEFAULT_TOKEN_TTL

        self._token = AccessToken(value=data["access_token"], expires_in=expires_in)
        self._token_expires_at = self._monotonic() + max(0, expires_in - TOKEN_EXPIRY_MARGIN)
        return self._token

    def invalidate_token(self) -> None:
        self._token = None
        self._token_expires_at = 0.0

    # -------------------------------------------------------------------
    # STK push
    # -------------------------------------------------------------------
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
            country_code=self.settings.mpesa_country_code,
            default_description=self.settings.mpesa_transaction_desc,
        )

        short_code = self.settings.mpesa_shortcode
        pass_key = self.settings.mpesa_passkey
        if not short_code or not pass_key:
            raise CredentialsMissing("M-Pesa shortcode or passkey not configured")

        token = self.get_access_token()

        stamp = payloads.timestamp(self._clock())
        payload = {
            "BusinessShortCode": short_code,
            "Password": payloads.password(short_code, pass_key, stamp),
            "Timestamp": stamp,
            "TransactionType": self.settings.mpesa_transaction_type,
            "Amount": request.amount,
            "PartyA": request.phone,
            "PartyB": short_code,
            "PhoneNumber": request.phone,
            "CallBackURL": self.settings.callback_url,
            "AccountReference": request.reference,
            "TransactionDesc": request.description,
        }

        response = self._send(
            "POST",
            STK_PUSH_PATH,
            json=payload,
            headers={"Authorization": f"Bearer {token.value}"},
        )
        data = _body(response)

        if not response.is_success:
            logger.error("stk_push_rejected", status=response.status_code, details=data)
            if response.status_code == 401:
                self.invalidate_token()
            raise UpstreamRejected("STK Push failed", details=data, status_code=response.status_code)

        if not isinstance(data, dict) or str(data.get("ResponseCode", "")) != "0" or not data.get("CheckoutRequestID"):
            logger.error("stk_push_not_accepted", status=response.status_code, details=data)
            raise UpstreamRejected("STK Push was not accepted", details=data, status_code=response.status_code)

        logger.info(
            "stk_push_accepted",
            checkout_request_id=data["CheckoutRequestID"],
            reference=request.reference,
            amount=request.amount,
        )
        return StkPushResult(
            checkout_request_id=data["CheckoutRequestID"],
            merchant_request_id=data.get("MerchantRequestID"),
            customer_message=data.get("CustomerMessage"),
            response_code=str(data.get("ResponseCode")),
            response_description=data.get("ResponseDescription"),
        )
