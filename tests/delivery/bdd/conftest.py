"""Shared BDD fixtures and step definitions for the Delivery domain."""

from uuid import uuid4

import pytest
from delivery.errors import InvalidTransition, OrderError
from delivery.inventory.service import InventoryReservations
from delivery.order.cancellation import CancelOrder
from delivery.order.claim import ClaimOrder
from delivery.order.order import Order
from delivery.order.progress import AdvanceOrderStatus
from delivery.quota.ledger import QuotaCharge
from protean import current_domain
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then, when


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def world():
    """Names to ids, the order under test and the last captured error."""
    return {"products": {}, "couriers": {}, "order_id": None, "error": None}


def _capture(world, action):
    try:
        action()
    except (OrderError, ValidationError) as exc:
        world["error"] = exc


def _order(world) -> Order:
    return current_domain.repository_for(Order).get(world["order_id"])


def _place(world, place_order, customer_id, quantity, product_name):
    order = place_order(
        [{"product_id": world["products"][product_name], "quantity": quantity}],
        customer_id=customer_id,
        idempotency_key=uuid4().hex,
    )
    world["order_id"] = str(order.id)


def _claim(world, courier_name):
    current_domain.process(
        ClaimOrder(order_id=world["order_id"], courier_id=world["couriers"][courier_name]),
        asynchronous=False,
    )


def _advance(world, courier_name, status):
    current_domain.process(
        AdvanceOrderStatus(order_id=world["order_id"], courier_id=world["couriers"][courier_name], new_status=status),
        asynchronous=False,
    )


def _cancel(world):
    current_domain.process(CancelOrder(order_id=world["order_id"], reason="Customer request"), asynchronous=False)


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a product "{name}" weighing {grams:g} grams with {stock:d} in stock'))
def flower_product(world, make_product, name, grams, stock):
    world["products"][name] = make_product(name=name, price=45.0, weight_grams=grams, stock=stock)


@given(parsers.cfparse('a concentrate "{name}" weighing {grams:g} grams with {stock:d} in stock'))
def concentrate_product(world, make_product, name, grams, stock):
    world["products"][name] = make_product(
        name=name,
        price=60.0,
        weight_grams=grams,
        category="concentrate",
        is_concentrate=True,
        stock=stock,
    )


@given(parsers.cfparse('an online courier "{name}"'))
def online_courier(world, make_courier, name):
    world["couriers"][name] = make_courier(full_name=name)


@given(parsers.cfparse('a pending order for {quantity:d} of "{product}"'))
def pending_order(world, place_order, quantity, product):
    _place(world, place_order, "cust-001", quantity, product)


@given(parsers.cfparse('customer "{customer}" ordered {quantity:d} of "{product}"'))
def customer_ordered(world, place_order, customer, quantity, product):
    _place(world, place_order, customer, quantity, product)


@given(parsers.cfparse('courier "{courier}" claims the order'))
def courier_claimed(world, courier):
    _claim(world, courier)


@given(parsers.cfparse('courier "{courier}" moves the order to "{status}"'))
def courier_moved(world, courier, status):
    _advance(world, courier, status)


@given("the order is cancelled")
def order_was_cancelled(world):
    _cancel(world)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('courier "{courier}" claims the order'))
def courier_claims(world, courier):
    _capture(world, lambda: _claim(world, courier))


@when(parsers.cfparse('courier "{courier}" moves the order to "{status}"'))
def courier_moves(world, courier, status):
    _capture(world, lambda: _advance(world, courier, status))


@when("the order is cancelled")
def order_is_cancelled(world):
    _capture(world, lambda: _cancel(world))


@when(parsers.cfparse('customer "{customer}" orders {quantity:d} of "{product}"'))
def customer_orders(world, place_order, customer, quantity, product):
    world["order_id"] = None
    _capture(world, lambda: _place(world, place_order, customer, quantity, product))


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def order_status_is(world, status):
    assert world["error"] is None, f"Unexpected error: {world['error']}"
    assert _order(world).status == status


@then(parsers.cfparse('the order is assigned to "{courier}"'))
def order_assigned_to(world, courier):
    assert str(_order(world).courier_id) == world["couriers"][courier]


@then(parsers.cfparse('the action is rejected with "{code}"'))
def action_rejected_with(world, code):
    assert isinstance(world["error"], OrderError), f"Expected {code}, got {world['error']!r}"
    assert world["error"].code == code


@then("the action fails with an invalid transition")
def action_fails_invalid_transition(world):
    assert isinstance(world["error"], InvalidTransition)


@then("the action fails with a validation error")
def action_fails_validation(world):
    assert isinstance(world["error"], ValidationError)


@then(parsers.cfparse('the quota charge is "{status}"'))
def quota_charge_is(world, status):
    assert current_domain.repository_for(QuotaCharge).get(world["order_id"]).status == status


@then(parsers.cfparse('"{product}" has {stock:d} in stock'))
def product_stock_is(world, product, stock):
    assert InventoryReservations().available(world["products"][product]) == stock
