"""Tests for Order state machine — valid and invalid transitions."""

import pytest
from delivery.errors import AlreadyClaimed, InvalidTransition
from delivery.order.events import CourierReassigned, OrderCancelled, OrderClaimed, OrderDelivered
from delivery.order.order import Order, OrderStatus
from protean.exceptions import ValidationError

COURIER = "courier-1"


def _make_order():
    order = Order.place(
        order_id="ord-sm-001",
        customer_id="cust-001",
        guest_reference=None,
        merchant_id="merchant-1",
        address={"street": "1 Main St", "borough": "Queens"},
        payment_method="cash",
        speed_tier="standard",
        lines=[
            {
                "product_id": "prod-1",
                "product_name": "Pre-roll",
                "unit_price": 12.0,
                "quantity": 1,
                "weight_grams": 1.0,
                "regulated_class": "flower",
                "line_total": 12.0,
            }
        ],
        delivery_fee=7.0,
    )
    order._events.clear()
    return order


def _advance_to_confirmed(order):
    order.claim(COURIER)
    return order


def _advance_to_preparing(order):
    _advance_to_confirmed(order)
    order.advance(COURIER, "preparing")
    return order


def _advance_to_out_for_delivery(order):
    _advance_to_preparing(order)
    order.advance(COURIER, "out_for_delivery", lat=40.7, lng=-73.9)
    return order


def _advance_to_delivered(order):
    _advance_to_out_for_delivery(order)
    order.advance(COURIER, "delivered")
    return order


class TestValidTransitions:
    def test_claim_confirms_pending_order(self):
        order = _make_order()
        order.claim(COURIER)
        assert order.status == OrderStatus.CONFIRMED.value
        assert order.courier_id == COURIER
        assert order.confirmed_at is not None

    def test_merchant_acceptance_confirms_pending_order(self):
        order = _make_order()
        order.accept_by_merchant("merchant-1")
        assert order.status == OrderStatus.CONFIRMED.value
        assert order.accepted_by_merchant is True
        assert order.courier_id is None

    def test_full_lifecycle(self):
        order = _advance_to_delivered(_make_order())
        assert order.status == OrderStatus.DELIVERED.value
        assert order.delivered_at is not None

    def test_each_transition_appends_tracking_event(self):
        order = _advance_to_delivered(_make_order())
        statuses = [e.status for e in order.ordered_tracking_events()]
        assert statuses == ["pending", "confirmed", "preparing", "out_for_delivery", "delivered"]
        assert [e.sequence for e in order.ordered_tracking_events()] == [1, 2, 3, 4, 5]

    def test_position_stored_on_tracking_event(self):
        order = _advance_to_out_for_delivery(_make_order())
        latest = order.ordered_tracking_events()[-1]
        assert latest.lat == 40.7
        assert latest.lng == -73.9

    def test_every_transition_bumps_revision(self):
        order = _make_order()
        _advance_to_delivered(order)
        assert order.revision == 4

    def test_delivery_raises_event(self):
        order = _advance_to_out_for_delivery(_make_order())
        order._events.clear()
        order.advance(COURIER, "delivered")
        assert isinstance(order._events[0], OrderDelivered)
        assert order._events[0].customer_key == "cust-001"

    def test_claim_of_merchant_accepted_order_keeps_confirmed(self):
        order = _make_order()
        order.accept_by_merchant()
        order.claim(COURIER)
        assert order.status == OrderStatus.CONFIRMED.value
        assert order.courier_id == COURIER

    def test_claim_of_confirmed_order_adds_no_second_confirmed_entry(self):
        order = _make_order()
        order.accept_by_merchant()
        order.claim(COURIER)

        statuses = [e.status for e in order.ordered_tracking_events()]
        assert statuses == ["pending", "confirmed"]
        assert order.ordered_tracking_events()[-1].message == "Merchant accepted your order"


class TestInvalidTransitions:
    def test_delivered_to_preparing_rejected(self):
        order = _advance_to_delivered(_make_order())
        with pytest.raises(InvalidTransition) as exc:
            order.advance(COURIER, "preparing")
        assert exc.value.current == "delivered"
        assert exc.value.target == "preparing"

    def test_invalid_transition_is_a_validation_error(self):
        order = _advance_to_delivered(_make_order())
        with pytest.raises(ValidationError) as exc:
            order.advance(COURIER, "out_for_delivery")
        assert "Cannot transition from delivered to out_for_delivery" in str(exc.value)

    def test_cannot_skip_preparing(self):
        order = _advance_to_confirmed(_make_order())
        with pytest.raises(InvalidTransition):
            order.advance(COURIER, "out_for_delivery")

    def test_cannot_prepare_unconfirmed_order(self):
        order = _make_order()
        with pytest.raises(ValidationError):
            order.advance(COURIER, "preparing")

    def test_only_assigned_courier_can_advance(self):
        order = _advance_to_confirmed(_make_order())
        with pytest.raises(ValidationError) as exc:
            order.advance("courier-2", "preparing")
        assert "courier" in str(exc.value)

    def test_courier_cannot_cancel(self):
        order = _advance_to_confirmed(_make_order())
        with pytest.raises(InvalidTransition):
            order.advance(COURIER, "cancelled")

    def test_unknown_status_rejected(self):
        order = _advance_to_confirmed(_make_order())
        with pytest.raises(ValidationError):
            order.advance(COURIER, "teleported")

    def test_claiming_claimed_order_raises_already_claimed(self):
        order = _advance_to_confirmed(_make_order())
        with pytest.raises(AlreadyClaimed):
            order.claim("courier-2")

    def test_cannot_claim_cancelled_order(self):
        order = _make_order()
        order.cancel("Out of stock", cancelled_by="system")
        with pytest.raises(InvalidTransition):
            order.claim(COURIER)

    @pytest.mark.parametrize(
        "advance, earlier",
        [
            (_advance_to_preparing, "preparing"),
            (_advance_to_out_for_delivery, "preparing"),
            (_advance_to_delivered, "out_for_delivery"),
            (_advance_to_delivered, "delivered"),
        ],
    )
    def test_no_regression(self, advance, earlier):
        order = advance(_make_order())
        with pytest.raises(InvalidTransition):
            order.advance(COURIER, earlier)


class TestCancellation:
    @pytest.mark.parametrize(
        "advance, release",
        [
            (lambda o: o, True),
            (_advance_to_confirmed, True),
            (_advance_to_preparing, False),
            (_advance_to_out_for_delivery, False),
        ],
    )
    def test_cancel_from_non_terminal_states(self, advance, release):
        order = advance(_make_order())
        order._events.clear()
        order.cancel("Customer unreachable", cancelled_by="admin")
        assert order.status == OrderStatus.CANCELLED.value
        assert order.cancellation_reason == "Customer unreachable"
        event = order._events[0]
        assert isinstance(event, OrderCancelled)
        assert event.release_inventory is release

    def test_cannot_cancel_delivered_order(self):
        order = _advance_to_delivered(_make_order())
        with pytest.raises(InvalidTransition):
            order.cancel("Too late")

    def test_cannot_cancel_twice(self):
        order = _make_order()
        order.cancel("Duplicate order")
        with pytest.raises(InvalidTransition):
            order.cancel("Again")


class TestReassignment:
    def test_reassign_confirmed_order(self):
        order = _advance_to_confirmed(_make_order())
        order._events.clear()
        order.reassign_courier("courier-2", reassigned_by="ops-anna")
        assert order.courier_id == "courier-2"
        event = order._events[0]
        assert isinstance(event, CourierReassigned)
        assert event.previous_courier_id == COURIER
        assert event.admin_override is False

    def test_assigning_pending_order_confirms_it(self):
        order = _make_order()
        order.reassign_courier("courier-2", reassigned_by="ops-anna")
        assert order.status == OrderStatus.CONFIRMED.value

    def test_reassign_after_pickup_requires_override(self):
        order = _advance_to_out_for_delivery(_make_order())
        with pytest.raises(ValidationError) as exc:
            order.reassign_courier("courier-2", reassigned_by="ops-anna")
        assert "courier" in str(exc.value)

    def test_override_reassignment_is_flagged(self):
        order = _advance_to_out_for_delivery(_make_order())
        order._events.clear()
        order.reassign_courier("courier-2", reassigned_by="ops-anna", admin_override=True, reason="Vehicle breakdown")
        assert order.courier_id == "courier-2"
        assert order.status == OrderStatus.OUT_FOR_DELIVERY.value
        assert order._events[0].admin_override is True

    def test_override_flag_ignored_when_not_needed(self):
        order = _advance_to_confirmed(_make_order())
        order._events.clear()
        order.reassign_courier("courier-2", reassigned_by="ops-anna", admin_override=True)
        assert order._events[0].admin_override is False

    def test_terminal_orders_cannot_be_reassigned(self):
        order = _advance_to_delivered(_make_order())
        with pytest.raises(ValidationError):
            order.reassign_courier("courier-2", reassigned_by="ops-anna", admin_override=True)

    def test_same_courier_rejected(self):
        order = _advance_to_confirmed(_make_order())
        with pytest.raises(ValidationError):
            order.reassign_courier(COURIER, reassigned_by="ops-anna")


class TestClaimEvent:
    def test_claim_event_records_previous_status(self):
        order = _make_order()
        order.claim(COURIER)
        event = order._events[0]
        assert isinstance(event, OrderClaimed)
        assert event.previous_status == "pending"
