"""Checkout: turn a cart into a placed order with a payment request in flight.

    quote → request push payment for the quoted total → persist PLACED order

The order is only written once the provider has accepted the push request, so
a rejected or unreachable provider leaves nothing behind. The outcome of the
payment arrives later through the webhook.
"""

from collections.abc import Iterable
from uuid import uuid4

import structlog

from delivery.geo import Coordinates
from ordering.order.lifecycle import OrderLifecycle, get_lifecycle
from ordering.order.order import Customer, DeliveryDetails, LineItem, Order, PaymentDetails
from ordering.order.pricing import OrderQuote, quote_order, validate_customer
from payments.gateway import get_gateway
from payments.gateway.payloads import REFERENCE_MAX_LENGTH
from payments.gateway.port import PaymentGateway, StkPushResult
from shared.config import get_settings

logger = structlog.get_logger(__name__)

REFERENCE_PREFIX = "ORD"


def new_account_reference() -> str:
    """A merchant reference that fits the provider's 12-character limit."""
    return (REFERENCE_PREFIX + uuid4().hex.upper())[:REFERENCE_MAX_LENGTH]


class Checkout:
    def __init__(
        self,
        lifecycle: OrderLifecycle | None = None,
        gateway: PaymentGateway | None = None,
    ) -> None:
        self._lifecycle = lifecycle
        self._gateway = gateway

    @property
    def lifecycle(self) -> OrderLifecycle:
        return self._lifecycle or get_lifecycle()

    @property
    def gateway(self) -> PaymentGateway:
        return self._gateway or get_gateway()

    def quote(
        self,
        cart: Iterable[LineItem],
        delivery: DeliveryDetails,
        origin: Coordinates | None = None,
    ) -> OrderQuote:
        return quote_order(cart, delivery, origin=origin)

    def place_order(
        self,
        cart: Iterable[LineItem],
        customer: Customer,
        delivery: DeliveryDetails,
        origin: Coordinates | None = None,
    ) -> tuple[Order, StkPushResult]:
        """Request payment for the cart and record the order.

        Cart, delivery and customer are validated before the provider is
        contacted. Provider errors propagate unchanged and no order is created.
        """
        items = tuple(cart)
        priced = self.quote(items, delivery, origin=origin)
        customer = validate_customer(customer)

        reference = new_account_reference()
        description = f"{get_settings().mpesa_transaction_desc} - {reference}"
        push = self.gateway.initiate_payment(
            phone=customer.phone,
            amount=priced.total,
            reference=reference,
            description=description,
        )
        logger.info(
            "checkout_payment_requested",
            account_reference=reference,
            checkout_request_id=push.checkout_request_id,
            total=priced.total,
        )

        order = self.lifecycle.create_order(
            items,
            customer,
            delivery,
            PaymentDetails(account_reference=reference, payment_reference=push.checkout_request_id),
            origin=origin,
        )
        return order, push
