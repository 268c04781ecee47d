"""Order pricing: cart subtotal plus the distance-based delivery fee.

Checkout uses ``quote_order`` to tell the customer what they will pay, and the
lifecycle uses the same function when it persists the order, so the amount
requested from the provider and the stored total always agree.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from delivery.geo import Coordinates, quote
from ordering.order.order import Customer, DeliveryDetails, DeliveryMode, LineItem
from payments.gateway.payloads import normalize_phone
from shared.config import get_settings
from shared.exceptions import ValidationError


@dataclass(frozen=True)
class OrderQuote:
    subtotal: int
    delivery_fee: int
    total: int
    distance_km: float | None = None


def validate_cart(items: Iterable[LineItem]) -> tuple[LineItem, ...]:
    items = tuple(items)
    if not items:
        raise ValidationError({"items": ["Cart is empty"]})

    errors: dict[str, list[str]] = {}
    for index, item in enumerate(items):
        if item.quantity < 1:
            errors.setdefault(f"items[{index}].quantity", []).append("Quantity must be at least 1")
        if item.unit_price < 0:
            errors.setdefault(f"items[{index}].unit_price", []).append("Unit price cannot be negative")
    if errors:
        raise ValidationError(errors)
    return items


def normalize_phone_field(phone: str, field_name: str) -> str:
    """Provider-format phone, with errors reported under ``field_name``."""
    try:
        return normalize_phone(phone, get_settings().mpesa_country_code)
    except ValidationError as exc:
        raise ValidationError({field_name: exc.messages["phone"]}) from exc


def validate_customer(customer: Customer) -> Customer:
    """Check the customer before anything is sent to the provider.

    Returns the customer with a trimmed name and a provider-format phone.
    """
    errors: dict[str, list[str]] = {}
    name = (customer.name or "").strip()
    if not name:
        errors["customer.name"] = ["Customer name is required"]
    try:
        phone = normalize_phone_field(customer.phone, "customer.phone")
    except ValidationError as exc:
        errors.update(exc.messages)
    if errors:
        raise ValidationError(errors)
    return customer.model_copy(update={"name": name, "phone": phone})


def validate_delivery(delivery: DeliveryDetails) -> None:
    if delivery.mode != DeliveryMode.DELIVERY:
        return

    errors: dict[str, list[str]] = {}
    if delivery.coordinates is None:
        errors["delivery.coordinates"] = ["Delivery location is required"]
    if not (delivery.address or "").strip():
        errors["delivery.address"] = ["Delivery address is required"]
    if errors:
        raise ValidationError(errors)


def quote_order(
    items: Iterable[LineItem],
    delivery: DeliveryDetails,
    origin: Coordinates | None = None,
) -> OrderQuote:
    """Price a cart for the given delivery choice. Collection is free."""
    items = validate_cart(items)
    validate_delivery(delivery)

    subtotal = sum(item.line_total for item in items)
    if delivery.mode == DeliveryMode.COLLECT:
        return OrderQuote(subtotal=subtotal, delivery_fee=0, total=subtotal)

    delivery_quote = quote(delivery.coordinates, origin=origin)
    return OrderQuote(
        subtotal=subtotal,
        delivery_fee=delivery_quote.fee,
        total=subtotal + delivery_quote.fee,
        distance_km=delivery_quote.distance_km,
    )
