"""Subscription registry owned by the order store.

Each subscriber gets its own handle. Publishing hands every matching
subscriber a snapshot; a subscriber that raises is logged and kept. When the
change channel fails, every live subscription is told through its
``on_error`` callback and closed.
"""

import threading
from uuid import uuid4

import structlog

from ordering.order.order import Order
from ordering.store.port import ErrorCallback, SnapshotCallback, Subscription

logger = structlog.get_logger(__name__)


class StoreSubscription(Subscription):
    def __init__(
        self,
        registry: "SubscriptionRegistry",
        order_id: str | None,
        callback: SnapshotCallback,
        on_error: ErrorCallback | None,
    ) -> None:
        self.id = uuid4().hex
        self.order_id = order_id
        self.callback = callback
        self.on_error = on_error
        self._registry = registry
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def matches(self, order: Order) -> bool:
        return self.order_id is None or self.order_id == order.id

    def cancel(self) -> None:
        self._active = False
        self._registry.remove(self)

    def close(self) -> None:
        self._active = False


class SubscriptionRegistry:
    def __init__(self) -> None:
        self._subscriptions: dict[str, StoreSubscription] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def add(
        self,
        order_id: str | None,
        callback: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> StoreSubscription:
        subscription = StoreSubscription(self, order_id, callback, on_error)
        with self._lock:
            self._subscriptions[subscription.id] = subscription
        return subscription

    def remove(self, subscription: StoreSubscription) -> None:
        with self._lock:
            self._subscriptions.pop(subscription.id, None)

    def publish(self, order: Order) -> None:
        with self._lock:
            targets = [s for s in self._subscriptions.values() if s.matches(order)]

        for subscription in targets:
            if not subscription.active:
                continue
            try:
                subscription.callback(order.model_copy(deep=True))
            except Exception:
                logger.exception(
                    "subscriber_failed",
                    subscription_id=subscription.id,
                    order_id=order.id,
                )

    def fail_all(self, error: Exception) -> None:
        """Close every subscription, reporting ``error`` to those that asked."""
        with self._lock:
            targets = list(self._subscriptions.values())
            self._subscriptions.clear()

        logger.warning("subscription_channel_failed", error=str(error), subscribers=len(targets))
        for subscription in targets:
            subscription.close()
            if subscription.on_error is None:
                continue
            try:
                subscription.on_error(error)
            except Exception:
                logger.exception("subscription_error_handler_failed", subscription_id=subscription.id)
