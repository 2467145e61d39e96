"""Order domain events — immutable facts about order state changes.

All events are past tense, versioned, and carry enough data for the audit
projector and the inventory/quota handlers without reloading the order.
"""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text

from delivery.domain import delivery


@delivery.event(part_of="Order")
class OrderPlaced:
    """A cart was converted into a durable order."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_id = Identifier()
    guest_reference = String()
    merchant_id = Identifier()
    borough = String(required=True)
    payment_method = String(required=True)
    speed_tier = String(required=True)
    items = Text(required=True)  # JSON list of line dicts
    flower_grams = Float(default=0.0)
    concentrate_grams = Float(default=0.0)
    subtotal = Float(required=True)
    delivery_fee = Float(required=True)
    total = Float(required=True)
    placed_at = DateTime(required=True)


@delivery.event(part_of="Order")
class OrderClaimed:
    """A courier claimed a pending order, confirming it."""

    __version__ = 1

    order_id = Identifier(required=True)
    courier_id = Identifier(required=True)
    previous_status = String(required=True)
    claimed_at = DateTime(required=True)


@delivery.event(part_of="Order")
class OrderAcceptedByMerchant:
    """The merchant accepted the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    merchant_id = Identifier()
    previous_status = String(required=True)
    accepted_at = DateTime(required=True)


@delivery.event(part_of="Order")
class OrderPreparing:
    """The assigned courier reports the order is being prepared."""

    __version__ = 1

    order_id = Identifier(required=True)
    courier_id = Identifier(required=True)
    occurred_at = DateTime(required=True)


@delivery.event(part_of="Order")
class OrderOutForDelivery:
    """The assigned courier picked up the order and is en route."""

    __version__ = 1

    order_id = Identifier(required=True)
    courier_id = Identifier(required=True)
    lat = Float()
    lng = Float()
    occurred_at = DateTime(required=True)


@delivery.event(part_of="Order")
class OrderDelivered:
    """The order was handed to the customer."""

    __version__ = 1

    order_id = Identifier(required=True)
    courier_id = Identifier(required=True)
    customer_key = String(required=True)
    delivered_at = DateTime(required=True)


@delivery.event(part_of="Order")
class OrderCancelled:
    """The order was cancelled by an administrator or the system."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    reason = String(required=True)
    cancelled_by = String(required=True)
    release_inventory = Boolean(default=False)
    cancelled_at = DateTime(required=True)


@delivery.event(part_of="Order")
class CourierReassigned:
    """An operator moved the order to a different courier."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_courier_id = Identifier()
    new_courier_id = Identifier(required=True)
    status = String(required=True)
    reassigned_by = String(required=True)
    admin_override = Boolean(default=False)
    reason = String()
    revision = Integer()
    reassigned_at = DateTime(required=True)


@delivery.event(part_of="Order")
class OrderFlagged:
    """An operator marked the order for review."""

    __version__ = 1

    order_id = Identifier(required=True)
    reason = String(required=True)
    previous_reason = String()
    flagged_by = String(required=True)
    status = String(required=True)
    flagged_at = DateTime(required=True)


@delivery.event(part_of="Order")
class OrderUnflagged:
    """An operator cleared the review flag."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_reason = String()
    unflagged_by = String(required=True)
    reason = String()
    unflagged_at = DateTime(required=True)
