"""In-process order store.

Backs development and tests, and stands in for the hosted document store
behind the same port. Records are kept as private copies; callers always get
copies back, so a mutated-but-unsaved order never leaks into the store.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from uuid import uuid4

import structlog

from delivery.geo import Coordinates
from ordering.order.order import Order, OrderStatus
from ordering.store.port import ErrorCallback, OrderStore, SnapshotCallback, Subscription
from ordering.store.subscriptions import SubscriptionRegistry
from shared.exceptions import ConcurrentModification, InvalidTransition, NotFound

logger = structlog.get_logger(__name__)


class InMemoryOrderStore(OrderStore):
    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._guard = threading.Lock()
        self._order_locks: dict[str, threading.RLock] = {}
        self.subscriptions = SubscriptionRegistry()

    @contextmanager
    def lock(self, order_id: str) -> Iterator[None]:
        with self._guard:
            order_lock = self._order_locks.setdefault(order_id, threading.RLock())
        with order_lock:
            yield

    def add(self, order: Order) -> Order:
        with self._guard:
            order_id = uuid4().hex
            stored = order.model_copy(update={"id": order_id, "version": 1}, deep=True)
            self._orders[order_id] = stored
            snapshot = stored.model_copy(deep=True)

        logger.info("order_stored", order_id=order_id, total=stored.total)
        self.subscriptions.publish(snapshot)
        return snapshot

    def get(self, order_id: str) -> Order:
        with self._guard:
            stored = self._orders.get(order_id)
            if stored is None:
                raise NotFound(f"Order {order_id} not found", details={"order_id": order_id})
            return stored.model_copy(deep=True)

    def find_by_payment_reference(self, payment_reference: str) -> Order | None:
        with self._guard:
            for stored in self._orders.values():
                if stored.payment_reference == payment_reference:
                    return stored.model_copy(deep=True)
        return None

    def list_orders(self) -> list[Order]:
        with self._guard:
            orders = [stored.model_copy(deep=True) for stored in self._orders.values()]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    def save(self, order: Order) -> Order:
        with self._guard:
            current = self._orders.get(order.id)
            if current is None:
                raise NotFound(f"Order {order.id} not found", details={"order_id": order.id})
            if current.version != order.version:
                raise ConcurrentModification(
                    f"Order {order.id} was modified concurrently",
                    details={"order_id": order.id, "expected": order.version, "actual": current.version},
                )

            stored = order.model_copy(
                update={
                    "version": current.version + 1,
                    "courier_location": current.courier_location,
                    "courier_location_updated_at": current.courier_location_updated_at,
                },
                deep=True,
            )
            self._orders[order.id] = stored
            snapshot = stored.model_copy(deep=True)

        self.subscriptions.publish(snapshot)
        return snapshot

    def set_courier_location(self, order_id: str, courier_id: str, location: Coordinates) -> Order:
        with self._guard:
            current = self._orders.get(order_id)
            if current is None:
                raise NotFound(f"Order {order_id} not found", details={"order_id": order_id})
            if current.status != OrderStatus.IN_TRANSIT or current.courier_id != courier_id:
                raise InvalidTransition(
                    "Courier location can only be relayed to an order in transit with that courier",
                    details={"order_id": order_id, "status": current.status.value, "courier_id": courier_id},
                )

            stored = current.model_copy(
                update={"courier_location": location, "courier_location_updated_at": datetime.now(UTC)},
                deep=True,
            )
            self._orders[order_id] = stored
            snapshot = stored.model_copy(deep=True)

        self.subscriptions.publish(snapshot)
        return snapshot

    def subscribe(
        self,
        order_id: str | None,
        callback: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        return self.subscriptions.add(order_id, callback, on_error)

    def interrupt(self, error: Exception) -> None:
        """Drop the change channel, as a lost connection to a hosted store would."""
        self.subscriptions.fail_all(error)

    def clear(self) -> None:
        with self._guard:
            self._orders.clear()
            self._order_locks.clear()
