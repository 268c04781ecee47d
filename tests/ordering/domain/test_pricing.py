"""Tests for order pricing: subtotal, delivery fee and total."""

import pytest
from builders import DESTINATION_7_2_KM, PICKUP, make_customer, make_delivery, make_items

from ordering.order.order import DeliveryMode, LineItem
from ordering.order.pricing import quote_order, validate_customer
from shared.exceptions import ValidationError


class TestQuoteOrder:
    def test_delivery_adds_distance_fee(self):
        quote = quote_order(make_items(4500), make_delivery())
        assert quote.subtotal == 4500
        assert quote.delivery_fee == 300
        assert quote.total == 4800
        assert quote.distance_km == pytest.approx(7.2, abs=0.01)

    def test_collect_is_free(self):
        quote = quote_order(make_items(4500), make_delivery(DeliveryMode.COLLECT))
        assert quote.delivery_fee == 0
        assert quote.total == quote.subtotal == 4500
        assert quote.distance_km is None

    def test_subtotal_sums_quantity_times_price(self):
        quote = quote_order(make_items(1000, 250, quantity=3), make_delivery(DeliveryMode.COLLECT))
        assert quote.subtotal == 3 * 1000 + 3 * 250

    def test_origin_override(self):
        quote = quote_order(make_items(100), make_delivery(), origin=DESTINATION_7_2_KM)
        assert quote.delivery_fee == 200

    def test_nearby_delivery(self):
        quote = quote_order(make_items(100), make_delivery(coordinates=PICKUP))
        assert quote.delivery_fee == 200
        assert quote.total == 300


class TestCartValidation:
    def test_empty_cart(self):
        with pytest.raises(ValidationError) as exc:
            quote_order([], make_delivery())
        assert "items" in exc.value.messages

    def test_zero_quantity(self):
        item = LineItem(product_id="p", product_name="Clog", quantity=0, unit_price=100)
        with pytest.raises(ValidationError) as exc:
            quote_order([item], make_delivery())
        assert "items[0].quantity" in exc.value.messages

    def test_negative_price(self):
        item = LineItem(product_id="p", product_name="Clog", quantity=1, unit_price=-1)
        with pytest.raises(ValidationError) as exc:
            quote_order([item], make_delivery())
        assert "items[0].unit_price" in exc.value.messages

    def test_free_item_allowed(self):
        item = LineItem(product_id="p", product_name="Sticker", quantity=1, unit_price=0)
        assert quote_order([item], make_delivery(DeliveryMode.COLLECT)).total == 0


class TestCustomerValidation:
    def test_normalizes_phone_and_trims_name(self):
        customer = validate_customer(make_customer(name=" Amina ", phone="+254 712 345 678"))
        assert customer.name == "Amina"
        assert customer.phone == "254712345678"

    def test_reports_every_problem(self):
        with pytest.raises(ValidationError) as exc:
            validate_customer(make_customer(name="  ", phone="12"))
        assert set(exc.value.messages) == {"customer.name", "customer.phone"}


class TestDeliveryValidation:
    def test_delivery_requires_coordinates(self):
        with pytest.raises(ValidationError) as exc:
            quote_order(make_items(100), make_delivery(coordinates=None))
        assert "delivery.coordinates" in exc.value.messages

    def test_delivery_requires_address(self):
        with pytest.raises(ValidationError) as exc:
            quote_order(make_items(100), make_delivery(address="  "))
        assert "delivery.address" in exc.value.messages

    def test_collect_needs_neither(self):
        quote_order(make_items(100), make_delivery(DeliveryMode.COLLECT))
