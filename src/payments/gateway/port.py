"""Payment gateway port (abstract interface).

Defines the contract every push-payment adapter implements, so the checkout
flow can run against the FakeGateway in development and tests and against
the M-Pesa Daraja API in production without changing any calling code.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class AccessToken:
    """A short-lived bearer token issued by the provider."""

    value: str
    expires_in: int


@dataclass(frozen=True)
class StkPushResult:
    """Provider acknowledgement of an accepted push-payment request."""

    checkout_request_id: str
    merchant_request_id: str | None = None
    customer_message: str | None = None
    response_code: str | None = None
    response_description: str | None = None


class PaymentGateway(ABC):
    """Abstract push-payment gateway interface."""

    @abstractmethod
    def get_access_token(self) -> AccessToken:
        """Exchange configured credentials for a bearer token."""
        ...

    @abstractmethod
    def initiate_payment(
        self,
        phone: str,
        amount: int | float | Decimal | str,
        reference: str,
        description: str | None = None,
    ) -> StkPushResult:
        """Ask the provider to prompt the customer's phone for payment.

        The outcome arrives later through the callback webhook.
        """
        ...
