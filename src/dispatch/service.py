"""Dispatch and tracking: couriers, their positions, and order change feeds.

This service is the only writer of courier positions, both on the Courier
record and on the order a courier is carrying. Order status changes go
through ``OrderLifecycle``; the courier-facing wrappers here add the identity
checks and stop live tracking when a trip ends.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

import structlog

from delivery.geo import Coordinates, distance_between, format_distance, pickup_location
from dispatch.courier import (
    AuthorizedCourier,
    AuthorizedCourierDirectory,
    Courier,
    CourierRegistry,
    CourierWatch,
)
from dispatch.subscriptions import ResilientSubscription
from dispatch.tracker import CourierTracker, PositionSource
from ordering.order.lifecycle import CourierOrders, OrderLifecycle, get_lifecycle
from ordering.order.order import Order, OrderStatus
from ordering.store.port import OrderStore
from shared.exceptions import InvalidTransition, PermissionDenied

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TrackingView:
    """What a customer sees on the order tracking page."""

    order_id: str
    status: OrderStatus
    courier_id: str | None
    courier_name: str | None
    courier_location: Coordinates | None
    courier_location_updated_at: datetime | None
    delivery_location: Coordinates | None
    remaining_km: float | None
    remaining_text: str | None
    updated_at: datetime


class DispatchService:
    def __init__(
        self,
        lifecycle: OrderLifecycle,
        directory: AuthorizedCourierDirectory | None = None,
        couriers: CourierRegistry | None = None,
    ) -> None:
        self.lifecycle = lifecycle
        self.directory = directory or AuthorizedCourierDirectory()
        self.couriers = couriers or CourierRegistry()
        self._trackers: dict[str, CourierTracker] = {}

    @property
    def store(self) -> OrderStore:
        return self.lifecycle.store

    # -------------------------------------------------------------------
    # Courier identity
    # -------------------------------------------------------------------
    def authorize_courier(self, email: str, name: str) -> AuthorizedCourier:
        entry = self.directory.authorize(email, name)
        logger.info("courier_authorized", email=entry.email)
        return entry

    def revoke_courier(self, email: str) -> None:
        self.directory.revoke(email)
        self.couriers.deactivate(email)
        logger.info("courier_revoked", email=email)

    def authorized_couriers(self) -> list[AuthorizedCourier]:
        return self.directory.list_authorized()

    def list_couriers(self) -> list[Courier]:
        return self.couriers.list_couriers()

    def courier_login(self, email: str, name: str, phone: str | None = None) -> Courier:
        """Create or refresh the Courier record for an authorized email."""
        if not self.directory.is_authorized(email):
            logger.warning("courier_login_refused", email=email)
            raise PermissionDenied("You are not authorized as a courier", details={"email": email})
        courier = self.couriers.login(email, name, phone)
        logger.info("courier_logged_in", courier_id=courier.id)
        return courier

    def courier_for_email(self, email: str) -> Courier:
        """Resolve a caller's email to an active, still-authorized courier."""
        if not self.directory.is_authorized(email):
            raise PermissionDenied("You are not authorized as a courier", details={"email": email})
        courier = self.couriers.by_email(email)
        if not courier.active:
            raise PermissionDenied("Courier account is inactive", details={"courier_id": courier.id})
        return courier

    # -------------------------------------------------------------------
    # Positions
    # -------------------------------------------------------------------
    def update_courier_location(self, courier_id: str, coordinates: Coordinates) -> Courier:
        return self.couriers.update_location(courier_id, coordinates)

    def relay_to_order(self, order_id: str, courier_id: str, coordinates: Coordinates) -> Order:
        """Copy a position onto the order the courier is carrying.

        Raises InvalidTransition unless the order is in transit with this courier.
        """
        return self.store.set_courier_location(order_id, courier_id, coordinates)

    def report_location(self, courier_id: str, coordinates: Coordinates) -> list[str]:
        """Record a courier's position and relay it to every trip they have under way."""
        self.update_courier_location(courier_id, coordinates)
        relayed = []
        for order in self.lifecycle.orders_for_courier(courier_id).active:
            try:
                self.relay_to_order(order.id, courier_id, coordinates)
            except InvalidTransition:
                # Trip ended between listing and relaying
                continue
            relayed.append(order.id)
        return relayed

    def track_trip(
        self,
        order_id: str,
        courier_id: str,
        source: PositionSource,
        interval: float | None = None,
    ) -> CourierTracker:
        """Start live tracking for a trip on the running event loop."""
        self.stop_tracking(order_id)

        def record(position: Coordinates) -> None:
            self.update_courier_location(courier_id, position)
            self.relay_to_order(order_id, courier_id, position)

        tracker = CourierTracker(record, source, interval=interval, name=order_id)
        self._trackers[order_id] = tracker
        tracker.start()
        return tracker

    def stop_tracking(self, order_id: str) -> None:
        tracker = self._trackers.pop(order_id, None)
        if tracker is not None:
            tracker.stop()

    # -------------------------------------------------------------------
    # Trips
    # -------------------------------------------------------------------
    def assign_courier(self, order_id: str, courier_id: str) -> Order:
        courier = self.couriers.get(courier_id)
        if not courier.active:
            raise PermissionDenied("Courier account is inactive", details={"courier_id": courier_id})
        return self.lifecycle.assign_courier(order_id, courier_id)

    def begin_trip(self, order_id: str, courier_id: str) -> Order:
        return self.lifecycle.begin_trip(order_id, courier_id=courier_id)

    def complete_delivery(self, order_id: str, courier_id: str) -> Order:
        order = self.lifecycle.complete_delivery(order_id, courier_id=courier_id)
        self.stop_tracking(order_id)
        return order

    def cancel(self, order_id: str, reason: str) -> Order:
        order = self.lifecycle.cancel(order_id, reason)
        self.stop_tracking(order_id)
        return order

    def courier_orders(self, courier_id: str) -> CourierOrders:
        return self.lifecycle.orders_for_courier(courier_id)

    # -------------------------------------------------------------------
    # Change feeds
    # -------------------------------------------------------------------
    def subscribe(self, order_id: str, callback: Callable[[Order], None]) -> ResilientSubscription:
        return ResilientSubscription(self.store, order_id, callback)

    def subscribe_all(self, callback: Callable[[Order], None]) -> ResilientSubscription:
        return ResilientSubscription(self.store, None, callback)

    def subscribe_courier(self, courier_id: str, callback: Callable[[Courier], None]) -> CourierWatch:
        """Follow one courier's record, position included, for the admin view."""
        return self.couriers.watch(courier_id, callback)

    # -------------------------------------------------------------------
    # Tracking page
    # -------------------------------------------------------------------
    def tracking_view(self, order_id: str) -> TrackingView:
        order = self.lifecycle.get_order(order_id)

        courier_name = None
        if order.courier_id is not None:
            courier_name = next(
                (c.name for c in self.couriers.list_couriers() if c.id == order.courier_id),
                None,
            )

        destination = order.delivery.coordinates
        remaining_km = None
        if destination is not None and order.status not in (OrderStatus.DELIVERED, OrderStatus.CANCELLED):
            origin = order.courier_location or pickup_location()
            remaining_km = distance_between(origin, destination)

        return TrackingView(
            order_id=order.id,
            status=order.status,
            courier_id=order.courier_id,
            courier_name=courier_name,
            courier_location=order.courier_location,
            courier_location_updated_at=order.courier_location_updated_at,
            delivery_location=destination,
            remaining_km=remaining_km,
            remaining_text=format_distance(remaining_km) if remaining_km is not None else None,
            updated_at=order.updated_at,
        )


_current_service: DispatchService | None = None


def get_dispatch() -> DispatchService:
    global _current_service
    if _current_service is None:
        _current_service = DispatchService(get_lifecycle())
    return _current_service


def set_dispatch(service: DispatchService) -> None:
    global _current_service
    _current_service = service


def reset_dispatch() -> None:
    global _current_service
    _current_service = None
