"""FastAPI routes for the Ordering context: quotes, checkout and order admin."""

from fastapi import APIRouter

from dispatch.service import get_dispatch
from ordering.api.schemas import (
    AssignCourierRequest,
    CancelOrderRequest,
    CheckoutRequest,
    CheckoutResponse,
    OrderResponse,
    QuoteRequest,
    QuoteResponse,
)
from ordering.checkout.checkout import Checkout
from ordering.order.lifecycle import get_lifecycle

order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("/quote", response_model=QuoteResponse)
async def quote(body: QuoteRequest) -> QuoteResponse:
    """Price a cart, including the delivery fee."""
    priced = Checkout().quote(
        [item.to_line_item() for item in body.items],
        body.delivery.to_details(),
    )
    return QuoteResponse.from_quote(priced)


@order_router.post("/checkout", status_code=201, response_model=CheckoutResponse)
def checkout(body: CheckoutRequest) -> CheckoutResponse:
    """Request payment for a cart and record the order as placed."""
    order, push = Checkout().place_order(
        [item.to_line_item() for item in body.items],
        body.customer.to_customer(),
        body.delivery.to_details(),
    )
    return CheckoutResponse(
        order=OrderResponse.from_order(order),
        checkoutRequestID=push.checkout_request_id,
        customerMessage=push.customer_message,
    )


@order_router.get("", response_model=list[OrderResponse])
async def list_orders() -> list[OrderResponse]:
    """All orders, newest first."""
    return [OrderResponse.from_order(order) for order in get_lifecycle().list_orders()]


@order_router.get("/customer/{phone}", response_model=list[OrderResponse])
async def customer_orders(phone: str) -> list[OrderResponse]:
    return [OrderResponse.from_order(order) for order in get_lifecycle().orders_for_customer(phone)]


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str) -> OrderResponse:
    return OrderResponse.from_order(get_lifecycle().get_order(order_id))


@order_router.put("/{order_id}/courier", response_model=OrderResponse)
async def assign_courier(order_id: str, body: AssignCourierRequest) -> OrderResponse:
    """Hand the order to a courier."""
    return OrderResponse.from_order(get_dispatch().assign_courier(order_id, body.courier_id))


@order_router.put("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(order_id: str, body: CancelOrderRequest) -> OrderResponse:
    return OrderResponse.from_order(get_dispatch().cancel(order_id, body.reason))
