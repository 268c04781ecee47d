"""Order aggregate, the core of the ordering context.

An Order is created once payment has been requested, then moves through a
small state machine driven by the payment webhook, the dispatcher and the
courier:

    PLACED → CONFIRMED → DISPATCHED → IN_TRANSIT → DELIVERED
    CANCELLED (from any non-terminal state)

Paid orders normally go through CONFIRMED, but a dispatcher may hand a PLACED
order to a courier directly (cash-on-delivery style flows).

The aggregate only mutates itself. Persisting, locking and notifying
subscribers is the job of ``ordering.order.lifecycle`` and the order store.
"""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from delivery.geo import Coordinates
from shared.exceptions import InvalidTransition


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PLACED = "placed"
    CONFIRMED = "confirmed"
    DISPATCHED = "dispatched"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class DeliveryMode(Enum):
    DELIVERY = "delivery"
    COLLECT = "collect"


# State machine transition map
_VALID_TRANSITIONS = {
    OrderStatus.PLACED: {OrderStatus.CONFIRMED, OrderStatus.DISPATCHED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.DISPATCHED, OrderStatus.CANCELLED},
    OrderStatus.DISPATCHED: {OrderStatus.IN_TRANSIT, OrderStatus.CANCELLED},
    OrderStatus.IN_TRANSIT: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}

TERMINAL_STATES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

# A courier may only be attached while the order is with (or was with) one
COURIER_STATES = frozenset({OrderStatus.DISPATCHED, OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED})


def _now() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
class LineItem(BaseModel):
    """A product line captured at checkout. Immutable once on an order."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    product_name: str
    quantity: int
    unit_price: int
    size: str | None = None
    color: str | None = None

    @property
    def line_total(self) -> int:
        return self.quantity * self.unit_price


class Customer(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    phone: str
    email: str | None = None


class DeliveryDetails(BaseModel):
    """Where the goods go. ``collect`` orders are picked up at the shop."""

    model_config = ConfigDict(frozen=True)

    mode: DeliveryMode = DeliveryMode.DELIVERY
    address: str | None = None
    coordinates: Coordinates | None = None


class PaymentDetails(BaseModel):
    """What checkout learned when the push payment was requested."""

    model_config = ConfigDict(frozen=True)

    method: str = "mpesa"
    account_reference: str
    payment_reference: str


class PaymentReceipt(BaseModel):
    """The provider's reported outcome, embedded on the order."""

    model_config = ConfigDict(frozen=True)

    checkout_request_id: str
    result_code: int
    result_description: str | None = None
    amount: float | None = None
    receipt_number: str | None = None
    paid_at: datetime | None = None
    payer_phone: str | None = None


# ---------------------------------------------------------------------------
# Order Aggregate
# ---------------------------------------------------------------------------
class Order(BaseModel):
    """A customer order and its delivery state.

    ``id`` and ``version`` are owned by the order store: ``id`` is minted once
    when the order is first added, ``version`` increases on every save.
    """

    id: str | None = None
    version: int = 0

    customer: Customer
    items: tuple[LineItem, ...]
    delivery: DeliveryDetails
    subtotal: int
    delivery_distance_km: float | None = None
    delivery_fee: int = 0
    total: int

    payment_method: str = "mpesa"
    account_reference: str
    payment_reference: str
    payment: PaymentReceipt | None = None

    status: OrderStatus = OrderStatus.PLACED
    cancellation_reason: str | None = None
    courier_id: str | None = None
    courier_location: Coordinates | None = None
    courier_location_updated_at: datetime | None = None

    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def _assert_can_transition(self, target_status: OrderStatus) -> None:
        """Validate that the current state allows transition to target."""
        if target_status not in _VALID_TRANSITIONS[self.status]:
            raise InvalidTransition(
                f"Cannot transition from {self.status.value} to {target_status.value}",
                details={"order_id": self.id, "status": self.status.value, "target": target_status.value},
            )

    def _move_to(self, target_status: OrderStatus) -> None:
        self.status = target_status
        self.updated_at = _now()

    # -------------------------------------------------------------------
    # Payment outcome
    # -------------------------------------------------------------------
    def confirm_payment(self, receipt: PaymentReceipt) -> None:
        """Record a successful payment."""
        if self.status != OrderStatus.PLACED:
            raise InvalidTransition(
                f"Payment can only be confirmed on a placed order, not {self.status.value}",
                details={"order_id": self.id, "status": self.status.value},
            )
        self._assert_can_transition(OrderStatus.CONFIRMED)
        self.payment = receipt
        self._move_to(OrderStatus.CONFIRMED)

    def fail_payment(self, receipt: PaymentReceipt) -> None:
        """Record a failed or abandoned payment; the order is cancelled."""
        if self.status != OrderStatus.PLACED:
            raise InvalidTransition(
                f"Payment can only fail on a placed order, not {self.status.value}",
                details={"order_id": self.id, "status": self.status.value},
            )
        self.payment = receipt
        self.cancellation_reason = receipt.result_description or f"Payment failed ({receipt.result_code})"
        self._move_to(OrderStatus.CANCELLED)

    # -------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------
    def assign_courier(self, courier_id: str) -> None:
        if self.courier_id is not None:
            raise InvalidTransition(
                "Order already has a courier",
                details={"order_id": self.id, "courier_id": self.courier_id},
            )
        self._assert_can_transition(OrderStatus.DISPATCHED)
        self.courier_id = courier_id
        self._move_to(OrderStatus.DISPATCHED)

    def begin_trip(self) -> None:
        self._assert_can_transition(OrderStatus.IN_TRANSIT)
        self._move_to(OrderStatus.IN_TRANSIT)

    def complete_delivery(self) -> None:
        self._assert_can_transition(OrderStatus.DELIVERED)
        self._move_to(OrderStatus.DELIVERED)

    def cancel(self, reason: str) -> None:
        """Cancel the order from any non-terminal state. The courier is released."""
        self._assert_can_transition(OrderStatus.CANCELLED)
        self.cancellation_reason = reason
        self.courier_id = None
        self._move_to(OrderStatus.CANCELLED)
