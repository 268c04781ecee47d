"""Order lifecycle: the only writer of order status.

Every transition is a read-modify-write under the store's per-order lock:
load the current record, let the aggregate decide whether the move is legal,
save. An illegal move raises InvalidTransition before anything is saved, so
the stored record is left exactly as it was.

Payment results reach us through the provider's webhook, which can arrive
late, more than once, or before checkout has finished persisting the order.
Duplicates and late arrivals for an order that has already left PLACED are
no-ops. Results for an unknown payment reference are parked in
``UnmatchedPaymentResults`` and applied as soon as the order is created.
"""

import threading
from collections import OrderedDict
from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog

from delivery.geo import Coordinates
from ordering.order.order import (
    Customer,
    DeliveryDetails,
    LineItem,
    Order,
    OrderStatus,
    PaymentDetails,
    PaymentReceipt,
)
from ordering.order.pricing import normalize_phone_field, quote_order, validate_customer
from ordering.store import get_store
from ordering.store.port import OrderStore
from payments.callback import ParsedResult
from shared.exceptions import PermissionDenied, ValidationError

logger = structlog.get_logger(__name__)

MAX_UNMATCHED_RESULTS = 1000


class UnmatchedPaymentResults:
    """Bounded ledger of webhook results whose order does not exist yet.

    Oldest entries are evicted first once ``max_size`` is reached.
    """

    def __init__(self, max_size: int = MAX_UNMATCHED_RESULTS) -> None:
        self.max_size = max_size
        self._results: OrderedDict[str, ParsedResult] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    def __contains__(self, checkout_request_id: str) -> bool:
        with self._lock:
            return checkout_request_id in self._results

    def park(self, checkout_request_id: str, result: ParsedResult) -> None:
        with self._lock:
            # The first result wins; the provider only retries the same outcome
            if checkout_request_id in self._results:
                return
            self._results[checkout_request_id] = result
            while len(self._results) > self.max_size:
                evicted, _ = self._results.popitem(last=False)
                logger.warning("unmatched_payment_evicted", checkout_request_id=evicted)

    def pop(self, checkout_request_id: str) -> ParsedResult | None:
        with self._lock:
            return self._results.pop(checkout_request_id, None)

    def clear(self) -> None:
        with self._lock:
            self._results.clear()


@dataclass
class CourierOrders:
    """A courier's orders split the way the courier dashboard shows them."""

    pending: list[Order] = field(default_factory=list)
    active: list[Order] = field(default_factory=list)
    completed: list[Order] = field(default_factory=list)


def _receipt_for(result: ParsedResult) -> PaymentReceipt:
    details = result.receipt
    return PaymentReceipt(
        checkout_request_id=result.checkout_request_id,
        result_code=result.result_code,
        result_description=result.result_description,
        amount=details.amount if details else None,
        receipt_number=details.receipt_number if details else None,
        paid_at=details.paid_at if details else None,
        payer_phone=details.payer_phone if details else None,
    )


class OrderLifecycle:
    def __init__(self, store: OrderStore, unmatched: UnmatchedPaymentResults | None = None) -> None:
        self.store = store
        self.unmatched = unmatched or UnmatchedPaymentResults()

    # -------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------
    def create_order(
        self,
        cart: Iterable[LineItem],
        customer: Customer,
        delivery: DeliveryDetails,
        payment: PaymentDetails,
        origin: Coordinates | None = None,
    ) -> Order:
        """Persist a new PLACED order for a cart whose payment has been requested."""
        items = tuple(cart)
        priced = quote_order(items, delivery, origin=origin)

        customer = validate_customer(customer)
        if not payment.payment_reference:
            raise ValidationError({"payment.payment_reference": ["Payment reference is required"]})

        order = Order(
            customer=customer,
            items=items,
            delivery=delivery,
            subtotal=priced.subtotal,
            delivery_distance_km=priced.distance_km,
            delivery_fee=priced.delivery_fee,
            total=priced.total,
            payment_method=payment.method,
            account_reference=payment.account_reference,
            payment_reference=payment.payment_reference,
        )
        order = self.store.add(order)
        logger.info(
            "order_placed",
            order_id=order.id,
            payment_reference=order.payment_reference,
            total=order.total,
            delivery_mode=order.delivery.mode.value,
        )

        parked = self.unmatched.pop(order.payment_reference)
        if parked is not None:
            logger.info("parked_payment_result_applied", order_id=order.id, result_code=parked.result_code)
            return self._apply_to(order.id, parked)
        return order

    # -------------------------------------------------------------------
    # Payment reconciliation
    # -------------------------------------------------------------------
    def apply_payment_result(self, gateway_request_id: str, result: ParsedResult) -> Order | None:
        """Apply a webhook outcome to the order it belongs to.

        Returns the order as it stands afterwards, or None when no order carries
        this payment reference yet (the result is parked).
        """
        order = self.store.find_by_payment_reference(gateway_request_id)
        if order is None:
            self.unmatched.park(gateway_request_id, result)
            logger.warning("payment_result_unmatched", checkout_request_id=gateway_request_id)
            # Checkout may have persisted the order while we were parking
            order = self.store.find_by_payment_reference(gateway_request_id)
            if order is None:
                return None
            result = self.unmatched.pop(gateway_request_id) or result

        return self._apply_to(order.id, result)

    def _apply_to(self, order_id: str, result: ParsedResult) -> Order:
        with self.store.lock(order_id):
            order = self.store.get(order_id)
            if order.status != OrderStatus.PLACED:
                logger.info(
                    "payment_result_ignored",
                    order_id=order_id,
                    status=order.status.value,
                    result_code=result.result_code,
                )
                return order

            receipt = _receipt_for(result)
            if result.succeeded:
                if receipt.amount is not None and receipt.amount != order.total:
                    logger.warning(
                        "payment_amount_mismatch",
                        order_id=order_id,
                        expected=order.total,
                        received=receipt.amount,
                    )
                order.confirm_payment(receipt)
                logger.info("payment_confirmed", order_id=order_id, receipt_number=receipt.receipt_number)
            else:
                order.fail_payment(receipt)
                logger.info(
                    "payment_failed",
                    order_id=order_id,
                    result_code=result.result_code,
                    reason=result.result_description,
                )
            return self.store.save(order)

    # -------------------------------------------------------------------
    # Dispatch and delivery
    # -------------------------------------------------------------------
    def assign_courier(self, order_id: str, courier_id: str) -> Order:
        with self.store.lock(order_id):
            order = self.store.get(order_id)
            order.assign_courier(courier_id)
            order = self.store.save(order)
        logger.info("courier_assigned", order_id=order_id, courier_id=courier_id)
        return order

    def begin_trip(self, order_id: str, courier_id: str | None = None) -> Order:
        with self.store.lock(order_id):
            order = self.store.get(order_id)
            order.begin_trip()
            self._assert_assigned(order, courier_id)
            order = self.store.save(order)
        logger.info("trip_started", order_id=order_id, courier_id=order.courier_id)
        return order

    def complete_delivery(self, order_id: str, courier_id: str | None = None) -> Order:
        with self.store.lock(order_id):
            order = self.store.get(order_id)
            order.complete_delivery()
            self._assert_assigned(order, courier_id)
            order = self.store.save(order)
        logger.info("order_delivered", order_id=order_id, courier_id=order.courier_id)
        return order

    def cancel(self, order_id: str, reason: str) -> Order:
        with self.store.lock(order_id):
            order = self.store.get(order_id)
            order.cancel(reason)
            order = self.store.save(order)
        logger.info("order_cancelled", order_id=order_id, reason=reason)
        return order

    @staticmethod
    def _assert_assigned(order: Order, courier_id: str | None) -> None:
        if courier_id is not None and courier_id != order.courier_id:
            raise PermissionDenied(
                "Order is assigned to a different courier",
                details={"order_id": order.id, "courier_id": courier_id},
            )

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def get_order(self, order_id: str) -> Order:
        return self.store.get(order_id)

    def list_orders(self) -> list[Order]:
        return self.store.list_orders()

    def orders_for_customer(self, phone: str) -> list[Order]:
        phone = normalize_phone_field(phone, "phone")
        return [order for order in self.store.list_orders() if order.customer.phone == phone]

    def orders_for_courier(self, courier_id: str) -> CourierOrders:
        grouped = CourierOrders()
        buckets = {
            OrderStatus.DISPATCHED: grouped.pending,
            OrderStatus.IN_TRANSIT: grouped.active,
            OrderStatus.DELIVERED: grouped.completed,
        }
        for order in self.store.list_orders():
            if order.courier_id == courier_id and order.status in buckets:
                buckets[order.status].append(order)
        return grouped


_current_lifecycle: OrderLifecycle | None = None


def get_lifecycle() -> OrderLifecycle:
    global _current_lifecycle
    if _current_lifecycle is None:
        _current_lifecycle = OrderLifecycle(get_store())
    return _current_lifecycle


def set_lifecycle(lifecycle: OrderLifecycle) -> None:
    global _current_lifecycle
    _current_lifecycle = lifecycle


def reset_lifecycle() -> None:
    global _current_lifecycle
    _current_lifecycle = None
