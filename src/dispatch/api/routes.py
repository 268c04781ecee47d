"""FastAPI routes for the Dispatch context: couriers, positions and tracking.

Administrative routes (authorizing couriers) are not authenticated by this
service. Courier routes identify the caller through the ``X-Courier-Email``
header, which must belong to an authorized courier who has logged in.
"""

from fastapi import APIRouter, Depends, Header

from delivery.geo import Coordinates
from dispatch.api.schemas import (
    AuthorizeCourierRequest,
    AuthorizedCourierResponse,
    CourierLoginRequest,
    CourierResponse,
    LocationUpdateResponse,
    StatusResponse,
    TrackingResponse,
)
from dispatch.courier import Courier
from dispatch.service import get_dispatch
from ordering.api.schemas import CourierOrdersResponse, OrderResponse
from shared.exceptions import PermissionDenied


def current_courier(x_courier_email: str | None = Header(default=None)) -> Courier:
    if not x_courier_email:
        raise PermissionDenied("Courier identity required")
    return get_dispatch().courier_for_email(x_courier_email)


# ---------------------------------------------------------------------------
# Courier Router
# ---------------------------------------------------------------------------
courier_router = APIRouter(prefix="/couriers", tags=["couriers"])


@courier_router.post("/authorized", status_code=201, response_model=AuthorizedCourierResponse)
async def authorize_courier(body: AuthorizeCourierRequest) -> AuthorizedCourierResponse:
    """Allow an email address to log in as a courier."""
    return AuthorizedCourierResponse.from_entry(get_dispatch().authorize_courier(body.email, body.name))


@courier_router.delete("/authorized/{email}", response_model=StatusResponse)
async def revoke_courier(email: str) -> StatusResponse:
    get_dispatch().revoke_courier(email)
    return StatusResponse(status="revoked")


@courier_router.get("/authorized", response_model=list[AuthorizedCourierResponse])
async def authorized_couriers() -> list[AuthorizedCourierResponse]:
    return [AuthorizedCourierResponse.from_entry(entry) for entry in get_dispatch().authorized_couriers()]


@courier_router.get("", response_model=list[CourierResponse])
async def list_couriers() -> list[CourierResponse]:
    return [CourierResponse.from_courier(courier) for courier in get_dispatch().list_couriers()]


@courier_router.post("/login", response_model=CourierResponse)
async def courier_login(body: CourierLoginRequest) -> CourierResponse:
    """Create or refresh the courier record for an authorized email."""
    courier = get_dispatch().courier_login(body.email, body.name, body.phone)
    return CourierResponse.from_courier(courier)


@courier_router.get("/me/orders", response_model=CourierOrdersResponse)
async def my_orders(courier: Courier = Depends(current_courier)) -> CourierOrdersResponse:
    """Pending, active and completed deliveries for the calling courier."""
    return CourierOrdersResponse.from_groups(get_dispatch().courier_orders(courier.id))


@courier_router.put("/me/location", response_model=LocationUpdateResponse)
async def report_location(body: Coordinates, courier: Courier = Depends(current_courier)) -> LocationUpdateResponse:
    """Record the courier's position and relay it to any trip under way."""
    relayed = get_dispatch().report_location(courier.id, body)
    return LocationUpdateResponse(courier_id=courier.id, relayed_order_ids=relayed)


@courier_router.put("/me/orders/{order_id}/begin", response_model=OrderResponse)
async def begin_trip(order_id: str, courier: Courier = Depends(current_courier)) -> OrderResponse:
    return OrderResponse.from_order(get_dispatch().begin_trip(order_id, courier.id))


@courier_router.put("/me/orders/{order_id}/deliver", response_model=OrderResponse)
async def complete_delivery(order_id: str, courier: Courier = Depends(current_courier)) -> OrderResponse:
    return OrderResponse.from_order(get_dispatch().complete_delivery(order_id, courier.id))


# ---------------------------------------------------------------------------
# Tracking Router
# ---------------------------------------------------------------------------
tracking_router = APIRouter(prefix="/tracking", tags=["tracking"])


@tracking_router.get("/{order_id}", response_model=TrackingResponse)
async def track_order(order_id: str) -> TrackingResponse:
    """Order status and courier position for the customer tracking page."""
    return TrackingResponse.from_view(get_dispatch().tracking_view(order_id))
