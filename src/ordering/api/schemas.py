"""Pydantic request/response schemas for the Ordering API.

These are external contracts, kept separate from the Order aggregate so the
aggregate can change without breaking clients.
"""

from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, Field, StringConstraints

from delivery.geo import Coordinates
from ordering.order.lifecycle import CourierOrders
from ordering.order.order import Customer, DeliveryDetails, DeliveryMode, LineItem, Order
from ordering.order.pricing import OrderQuote


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class CartItemSchema(BaseModel):
    product_id: str
    product_name: str
    quantity: int = Field(ge=1)
    unit_price: int = Field(ge=0)
    size: str | None = None
    color: str | None = None

    def to_line_item(self) -> LineItem:
        return LineItem(**self.model_dump())


class CustomerSchema(BaseModel):
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
    phone: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
    email: str | None = None

    def to_customer(self) -> Customer:
        return Customer(**self.model_dump())


class DeliverySchema(BaseModel):
    mode: DeliveryMode = DeliveryMode.DELIVERY
    address: str | None = None
    location: Coordinates | None = None

    def to_details(self) -> DeliveryDetails:
        return DeliveryDetails(mode=self.mode, address=self.address, coordinates=self.location)


class PaymentReceiptSchema(BaseModel):
    checkout_request_id: str
    result_code: int
    result_description: str | None = None
    amount: float | None = None
    receipt_number: str | None = None
    paid_at: datetime | None = None
    payer_phone: str | None = None


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class QuoteRequest(BaseModel):
    items: list[CartItemSchema]
    delivery: DeliverySchema


class CheckoutRequest(BaseModel):
    items: list[CartItemSchema]
    customer: CustomerSchema
    delivery: DeliverySchema

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": [
                        {
                            "product_id": "prod-001",
                            "product_name": "Classic Clog",
                            "quantity": 1,
                            "unit_price": 4500,
                            "size": "42",
                            "color": "Black",
                        }
                    ],
                    "customer": {"name": "Amina Otieno", "phone": "0712345678"},
                    "delivery": {
                        "mode": "delivery",
                        "address": "Kilimani, Nairobi",
                        "location": {"lat": -1.2921, "lng": 36.7856},
                    },
                }
            ]
        }
    }


class AssignCourierRequest(BaseModel):
    courier_id: str


class CancelOrderRequest(BaseModel):
    reason: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class QuoteResponse(BaseModel):
    subtotal: int
    delivery_fee: int
    total: int
    distance_km: float | None = None

    @classmethod
    def from_quote(cls, quote: OrderQuote) -> "QuoteResponse":
        return cls(
            subtotal=quote.subtotal,
            delivery_fee=quote.delivery_fee,
            total=quote.total,
            distance_km=quote.distance_km,
        )


class OrderResponse(BaseModel):
    id: str
    version: int
    status: str
    customer: CustomerSchema
    items: list[CartItemSchema]
    delivery_mode: str
    delivery_address: str | None = None
    delivery_location: Coordinates | None = None
    delivery_distance_km: float | None = None
    subtotal: int
    delivery_fee: int
    total: int
    payment_method: str
    account_reference: str
    payment_reference: str
    payment: PaymentReceiptSchema | None = None
    cancellation_reason: str | None = None
    courier_id: str | None = None
    courier_location: Coordinates | None = None
    courier_location_updated_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        return cls(
            id=order.id,
            version=order.version,
            status=order.status.value,
            customer=CustomerSchema(**order.customer.model_dump()),
            items=[CartItemSchema(**item.model_dump()) for item in order.items],
            delivery_mode=order.delivery.mode.value,
            delivery_address=order.delivery.address,
            delivery_location=order.delivery.coordinates,
            delivery_distance_km=order.delivery_distance_km,
            subtotal=order.subtotal,
            delivery_fee=order.delivery_fee,
            total=order.total,
            payment_method=order.payment_method,
            account_reference=order.account_reference,
            payment_reference=order.payment_reference,
            payment=PaymentReceiptSchema(**order.payment.model_dump()) if order.payment else None,
            cancellation_reason=order.cancellation_reason,
            courier_id=order.courier_id,
            courier_location=order.courier_location,
            courier_location_updated_at=order.courier_location_updated_at,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class CheckoutResponse(BaseModel):
    order: OrderResponse
    checkoutRequestID: str
    customerMessage: str | None = None


class CourierOrdersResponse(BaseModel):
    pending: list[OrderResponse]
    active: list[OrderResponse]
    completed: list[OrderResponse]

    @classmethod
    def from_groups(cls, groups: CourierOrders) -> "CourierOrdersResponse":
        return cls(
            pending=[OrderResponse.from_order(o) for o in groups.pending],
            active=[OrderResponse.from_order(o) for o in groups.active],
            completed=[OrderResponse.from_order(o) for o in groups.completed],
        )
