"""Order change feeds for dashboards and tracking pages.

``ResilientSubscription`` wraps a raw store subscription with two guarantees:

- Consumers never see the change channel fail. When the store reports an
  error the subscription re-subscribes and re-delivers the current snapshot,
  so nothing written while disconnected is missed.
- Delivery is latest-only per order. While the consumer callback is busy,
  newer snapshots of the same order replace older pending ones.
"""

import threading
from collections.abc import Callable
from datetime import datetime

import structlog

from ordering.order.order import Order
from ordering.store.port import OrderStore, Subscription
from shared.exceptions import NotFound

logger = structlog.get_logger(__name__)


def _freshness(order: Order) -> tuple[int, float]:
    located_at = order.courier_location_updated_at
    return order.version, located_at.timestamp() if isinstance(located_at, datetime) else 0.0


class ResilientSubscription:
    def __init__(self, store: OrderStore, order_id: str | None, callback: Callable[[Order], None]) -> None:
        self.store = store
        self.order_id = order_id
        self.callback = callback
        self.reconnects = 0

        self._lock = threading.Lock()
        self._pending: dict[str, Order] = {}
        self._delivered: dict[str, tuple[int, float]] = {}
        self._delivering = False
        self._cancelled = False
        self._inner: Subscription | None = None
        self._connect()

    @property
    def active(self) -> bool:
        return not self._cancelled

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            self._pending.clear()
            inner = self._inner
        if inner is not None:
            inner.cancel()

    # -------------------------------------------------------------------
    # Channel
    # -------------------------------------------------------------------
    def _connect(self) -> None:
        self._inner = self.store.subscribe(self.order_id, self._receive, on_error=self._on_channel_error)

    def _on_channel_error(self, error: Exception) -> None:
        if self._cancelled:
            return
        self.reconnects += 1
        logger.warning(
            "order_feed_reconnecting",
            order_id=self.order_id,
            error=str(error),
            attempt=self.reconnects,
        )
        self._connect()
        self._redeliver_current()

    def _redeliver_current(self) -> None:
        if self.order_id is None:
            snapshots = self.store.list_orders()
        else:
            try:
                snapshots = [self.store.get(self.order_id)]
            except NotFound:
                snapshots = []
        for snapshot in snapshots:
            self._receive(snapshot)

    # -------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------
    def _receive(self, order: Order) -> None:
        freshness = _freshness(order)
        with self._lock:
            if self._cancelled:
                return
            if freshness < self._delivered.get(order.id, (0, 0.0)):
                return
            pending = self._pending.get(order.id)
            if pending is not None and freshness < _freshness(pending):
                return
            self._pending[order.id] = order
            if self._delivering:
                return
            self._delivering = True
        self._drain()

    def _drain(self) -> None:
        while True:
            with self._lock:
                if self._cancelled or not self._pending:
                    self._delivering = False
                    return
                order_id = next(iter(self._pending))
                snapshot = self._pending.pop(order_id)
                self._delivered[order_id] = _freshness(snapshot)

            try:
                self.callback(snapshot)
            except Exception:
                logger.exception("order_feed_consumer_failed", order_id=order_id)
