"""Order store port (abstract interface).

The store owns order identity and versioning, serializes lifecycle writes per
order, and pushes a snapshot to subscribers after every committed write.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from contextlib import AbstractContextManager

from delivery.geo import Coordinates
from ordering.order.order import Order

SnapshotCallback = Callable[[Order], None]
ErrorCallback = Callable[[Exception], None]


class Subscription(ABC):
    """Handle returned by ``subscribe``; ``cancel()`` stops delivery."""

    @abstractmethod
    def cancel(self) -> None: ...

    @property
    @abstractmethod
    def active(self) -> bool: ...


class OrderStore(ABC):
    @abstractmethod
    def lock(self, order_id: str) -> AbstractContextManager:
        """Per-order re-entrant lock held around every read-modify-write."""
        ...

    @abstractmethod
    def add(self, order: Order) -> Order:
        """Persist a new order, minting its id. Returns the stored copy."""
        ...

    @abstractmethod
    def get(self, order_id: str) -> Order:
        """Return a copy of the order, or raise NotFound."""
        ...

    @abstractmethod
    def find_by_payment_reference(self, payment_reference: str) -> Order | None: ...

    @abstractmethod
    def list_orders(self) -> list[Order]:
        """All orders, newest first."""
        ...

    @abstractmethod
    def save(self, order: Order) -> Order:
        """Write back a modified order.

        Raises ConcurrentModification if ``order.version`` is stale. The stored
        courier location is never overwritten by a save.
        """
        ...

    @abstractmethod
    def set_courier_location(self, order_id: str, courier_id: str, location: Coordinates) -> Order:
        """Record the courier's position on an order in transit with that courier.

        Applied atomically as a compare-and-set on status and courier; raises
        InvalidTransition otherwise. Does not take the per-order lock.
        """
        ...

    @abstractmethod
    def subscribe(
        self,
        order_id: str | None,
        callback: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Receive a snapshot after every write to ``order_id`` (or every order when None)."""
        ...
