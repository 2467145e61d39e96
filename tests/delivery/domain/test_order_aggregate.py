"""Tests for Order creation, totals and tracking history."""

import json
import re

import pytest
from delivery.order.events import OrderPlaced
from delivery.order.order import Order, OrderStatus, generate_order_number, generate_tracking_code
from protean.exceptions import ValidationError

_ADDRESS = {"street": "50 W 34th St", "borough": "Manhattan", "lat": 40.7484, "lng": -73.9857}


def _lines():
    return [
        {
            "product_id": "prod-flower",
            "product_name": "Blue Dream 3.5g",
            "unit_price": 45.0,
            "quantity": 2,
            "weight_grams": 3.5,
            "regulated_class": "flower",
            "line_total": 90.0,
        },
        {
            "product_id": "prod-vape",
            "product_name": "Live Resin Cart 1g",
            "unit_price": 40.0,
            "quantity": 1,
            "weight_grams": 1.0,
            "regulated_class": "concentrate",
            "line_total": 40.0,
        },
    ]


def _make_order(**overrides):
    kwargs = {
        "order_id": "ord-001",
        "customer_id": "cust-001",
        "guest_reference": None,
        "merchant_id": "merchant-1",
        "address": _ADDRESS,
        "payment_method": "card",
        "speed_tier": "standard",
        "lines": _lines(),
        "delivery_fee": 0.0,
    }
    kwargs.update(overrides)
    return Order.place(**kwargs)


class TestPlace:
    def test_order_starts_pending(self):
        order = _make_order()
        assert order.status == OrderStatus.PENDING.value
        assert str(order.id) == "ord-001"
        assert order.revision == 0

    def test_totals(self):
        order = _make_order(delivery_fee=10.0)
        assert order.subtotal == 130.0
        assert order.discount_total == 0.0
        assert order.total == 140.0

    def test_items_snapshot_name_and_price(self):
        order = _make_order()
        names = {item.product_name for item in order.items}
        assert names == {"Blue Dream 3.5g", "Live Resin Cart 1g"}
        assert all(item.unit_price > 0 for item in order.items)

    def test_address_is_snapshotted(self):
        order = _make_order()
        assert order.address.borough == "Manhattan"
        assert order.address.lat == pytest.approx(40.7484)

    def test_initial_tracking_event(self):
        order = _make_order()
        assert len(order.tracking_events) == 1
        event = order.tracking_events[0]
        assert event.status == "pending"
        assert event.sequence == 1
        assert event.message == "Order placed successfully"

    def test_raises_order_placed(self):
        order = _make_order()
        placed = [e for e in order._events if isinstance(e, OrderPlaced)]
        assert len(placed) == 1
        assert placed[0].flower_grams == 7.0
        assert placed[0].concentrate_grams == 1.0
        assert len(json.loads(placed[0].items)) == 2

    def test_regulated_grams(self):
        order = _make_order()
        assert order.regulated_grams("flower") == 7.0
        assert order.regulated_grams("concentrate") == 1.0
        assert order.regulated_grams("none") == 0.0

    def test_guest_customer_key(self):
        order = _make_order(customer_id=None, guest_reference="guest-42")
        assert order.customer_key == "guest:guest-42"

    def test_invalid_payment_method_rejected(self):
        with pytest.raises(ValidationError):
            _make_order(payment_method="paypal")

    def test_zero_quantity_rejected(self):
        lines = _lines()
        lines[0]["quantity"] = 0
        with pytest.raises(ValidationError):
            _make_order(lines=lines)


class TestTotalInvariant:
    def test_total_must_balance(self):
        order = _make_order(delivery_fee=5.0)
        with pytest.raises(ValidationError) as exc:
            order.total = 1.0
        assert "Total must equal subtotal" in str(exc.value)


class TestIdentifiers:
    def test_order_number_format(self):
        assert re.fullmatch(r"ORD-\d{14}-[0-9A-Z]{6}", generate_order_number())

    def test_tracking_codes_are_long_and_unique(self):
        codes = {generate_tracking_code() for _ in range(200)}
        assert len(codes) == 200
        assert all(len(code) == 32 for code in codes)

    def test_tracking_code_not_derived_from_order_number(self):
        order = _make_order()
        assert order.order_number not in order.tracking_code
        assert "ord-001" not in order.tracking_code
