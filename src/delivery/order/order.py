"""Order aggregate (CQRS) — the core of the delivery domain.

An Order is created in one write by the placement saga, after quota and
stock have been reserved. From then on it is driven by couriers, the
merchant and operators. Every status change bumps ``revision`` and is
persisted with a conditional update on the revision that was read, so
concurrent writers (two couriers claiming, a courier advancing while an
operator cancels) cannot both win.

State Machine:
    PENDING → CONFIRMED → PREPARING → OUT_FOR_DELIVERY → DELIVERED
    {PENDING, CONFIRMED, PREPARING, OUT_FOR_DELIVERY} → CANCELLED
"""

import json
import secrets
import string
from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    ValueObject,
)

from delivery.domain import delivery
from delivery.errors import AlreadyClaimed, InvalidTransition
from delivery.order.events import (
    CourierReassigned,
    OrderAcceptedByMerchant,
    OrderCancelled,
    OrderClaimed,
    OrderDelivered,
    OrderFlagged,
    OrderOutForDelivery,
    OrderPlaced,
    OrderPreparing,
    OrderUnflagged,
)
from delivery.pricing.fee import SpeedTier


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(Enum):
    CASH = "cash"
    CARD = "card"
    CRYPTO = "crypto"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED},
    OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),  # terminal
    OrderStatus.CANCELLED: set(),  # terminal
}

TERMINAL_STATUSES = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}

# Statuses during which goods have not been picked yet
_UNPICKED_STATUSES = {OrderStatus.PENDING, OrderStatus.CONFIRMED}

_COURIER_DRIVEN = {OrderStatus.PREPARING, OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED}

TRACKING_MESSAGES = {
    OrderStatus.PENDING: "Order placed successfully",
    OrderStatus.CONFIRMED: "Driver assigned",
    OrderStatus.PREPARING: "Your order is being prepared",
    OrderStatus.OUT_FOR_DELIVERY: "Your order is on the way",
    OrderStatus.DELIVERED: "Order delivered",
    OrderStatus.CANCELLED: "Order cancelled",
}

_BASE36 = string.digits + string.ascii_uppercase


def generate_order_number(now: datetime | None = None) -> str:
    now = now or datetime.now(UTC)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"ORD-{now:%Y%m%d%H%M%S}-{suffix}"


def generate_tracking_code() -> str:
    """192 bits from the OS CSPRNG, URL-safe."""
    return secrets.token_urlsafe(24)


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@delivery.value_object(part_of="Order")
class DeliveryAddress:
    """Where the order goes, snapshotted at checkout.

    Later edits to the customer's address book never reach a placed order.
    """

    street = String(required=True, max_length=255)
    borough = String(required=True, max_length=100)
    apartment = String(max_length=50)
    notes = String(max_length=500)
    lat = Float()
    lng = Float()


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@delivery.entity(part_of="Order")
class OrderItem:
    """A purchased line with name and price frozen at purchase time."""

    product_id = Identifier(required=True)
    product_name = String(required=True, max_length=255)
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    weight_grams = Float(default=0.0)
    regulated_class = String(max_length=20, default="none")
    line_total = Float(required=True)


@delivery.entity(part_of="Order")
class TrackingEvent:
    """Append-only progress entry."""

    status = String(required=True, max_length=30)
    message = String(max_length=500)
    lat = Float()
    lng = Float()
    sequence = Integer(required=True)
    occurred_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@delivery.aggregate
class Order:
    order_number = String(required=True, max_length=40)
    tracking_code = String(required=True, max_length=64)
    customer_id = Identifier()
    guest_reference = String(max_length=100)
    merchant_id = Identifier()
    address = ValueObject(DeliveryAddress, required=True)
    payment_method = String(required=True, choices=PaymentMethod)
    speed_tier = String(choices=SpeedTier, default=SpeedTier.STANDARD.value)
    items = HasMany(OrderItem)
    tracking_events = HasMany(TrackingEvent)
    subtotal = Float(required=True, min_value=0.0)
    delivery_fee = Float(default=0.0, min_value=0.0)
    discount_total = Float(default=0.0, min_value=0.0)
    total = Float(required=True, min_value=0.0)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    courier_id = Identifier()
    accepted_by_merchant = Boolean(default=False)
    scheduled_delivery_at = DateTime()
    created_at = DateTime()
    confirmed_at = DateTime()
    delivered_at = DateTime()
    cancelled_at = DateTime()
    cancellation_reason = String(max_length=500)
    flagged_reason = String(max_length=500)
    flagged_by = String(max_length=100)
    flagged_at = DateTime()
    revision = Integer(default=0)

    @invariant.post
    def total_must_balance(self):
        expected = round((self.subtotal or 0.0) + (self.delivery_fee or 0.0) - (self.discount_total or 0.0), 2)
        if abs((self.total or 0.0) - expected) > 0.005:
            raise ValidationError({"total": ["Total must equal subtotal plus delivery fee minus discounts"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        order_id: str,
        customer_id: str | None,
        guest_reference: str | None,
        merchant_id: str | None,
        address: dict,
        payment_method: str,
        speed_tier: str,
        lines: list[dict],
        delivery_fee: float,
        scheduled_delivery_at: datetime | None = None,
    ):
        """Build a pending order from priced, reserved cart lines."""
        now = datetime.now(UTC)
        subtotal = round(sum(line["line_total"] for line in lines), 2)
        order = cls(
            id=order_id,
            order_number=generate_order_number(now),
            tracking_code=generate_tracking_code(),
            customer_id=customer_id,
            guest_reference=guest_reference,
            merchant_id=merchant_id,
            address=DeliveryAddress(**address),
            payment_method=payment_method,
            speed_tier=speed_tier,
            subtotal=subtotal,
            delivery_fee=delivery_fee,
            discount_total=0.0,
            total=round(subtotal + delivery_fee, 2),
            status=OrderStatus.PENDING.value,
            scheduled_delivery_at=scheduled_delivery_at,
            created_at=now,
            revision=0,
        )
        for line in lines:
            order.add_items(OrderItem(**line))
        order._append_tracking(OrderStatus.PENDING, now)

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order.order_number,
                customer_id=customer_id,
                guest_reference=guest_reference,
                merchant_id=merchant_id,
                borough=order.address.borough,
                payment_method=payment_method,
                speed_tier=speed_tier,
                items=json.dumps(lines),
                flower_grams=order.regulated_grams("flower"),
                concentrate_grams=order.regulated_grams("concentrate"),
                subtotal=order.subtotal,
                delivery_fee=order.delivery_fee,
                total=order.total,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def customer_key(self) -> str:
        return str(self.customer_id) if self.customer_id else f"guest:{self.guest_reference}"

    @property
    def is_terminal(self) -> bool:
        return OrderStatus(self.status) in TERMINAL_STATUSES

    @property
    def is_flagged(self) -> bool:
        return self.flagged_at is not None

    def regulated_grams(self, regulated_class: str) -> float:
        return round(
            sum((item.weight_grams or 0.0) * item.quantity for item in self.items if item.regulated_class == regulated_class),
            2,
        )

    def ordered_tracking_events(self) -> list:
        return sorted(self.tracking_events, key=lambda e: e.sequence)

    # -------------------------------------------------------------------
    # State transition helpers
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status: OrderStatus) -> None:
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidTransition(current.value, target_status.value)

    def _append_tracking(
        self,
        status: OrderStatus,
        now: datetime,
        message: str | None = None,
        lat: float | None = None,
        lng: float | None = None,
    ) -> None:
        self.add_tracking_events(
            TrackingEvent(
                status=status.value,
                message=message or TRACKING_MESSAGES[status],
                lat=lat,
                lng=lng,
                sequence=len(self.tracking_events) + 1,
                occurred_at=now,
            )
        )

    def _bump(self) -> None:
        self.revision = (self.revision or 0) + 1

    # -------------------------------------------------------------------
    # Courier assignment
    # -------------------------------------------------------------------
    def claim(self, courier_id: str) -> None:
        """A courier takes an unassigned order. Pending orders become confirmed."""
        if self.courier_id:
            raise AlreadyClaimed(order_id=str(self.id))
        current = OrderStatus(self.status)
        if current not in _UNPICKED_STATUSES:
            raise InvalidTransition(current.value, OrderStatus.CONFIRMED.value)

        now = datetime.now(UTC)
        self.courier_id = courier_id
        if current == OrderStatus.PENDING:
            self.status = OrderStatus.CONFIRMED.value
            self.confirmed_at = now
            self._append_tracking(OrderStatus.CONFIRMED, now)
        self._bump()
        self.raise_(
            OrderClaimed(
                order_id=str(self.id),
                courier_id=courier_id,
                previous_status=current.value,
                claimed_at=now,
            )
        )

    def accept_by_merchant(self, merchant_id: str | None = None) -> None:
        current = OrderStatus(self.status)
        if current not in _UNPICKED_STATUSES:
            raise InvalidTransition(current.value, OrderStatus.CONFIRMED.value)
        if self.accepted_by_merchant:
            raise ValidationError({"accepted_by_merchant": ["Order was already accepted"]})

        now = datetime.now(UTC)
        self.accepted_by_merchant = True
        if current == OrderStatus.PENDING:
            self.status = OrderStatus.CONFIRMED.value
            self.confirmed_at = now
            self._append_tracking(OrderStatus.CONFIRMED, now, message="Merchant accepted your order")
        self._bump()
        self.raise_(
            OrderAcceptedByMerchant(
                order_id=str(self.id),
                merchant_id=merchant_id or self.merchant_id,
                previous_status=current.value,
                accepted_at=now,
            )
        )

    def reassign_courier(
        self,
        new_courier_id: str,
        reassigned_by: str,
        admin_override: bool = False,
        reason: str | None = None,
    ) -> None:
        """Move the order to another courier.

        Allowed freely while nothing has been picked up. Later reassignment
        needs ``admin_override`` and is flagged on the emitted event.
        """
        current = OrderStatus(self.status)
        if current in TERMINAL_STATUSES:
            raise ValidationError({"status": [f"Cannot reassign a {current.value} order"]})
        if current not in _UNPICKED_STATUSES and not admin_override:
            raise ValidationError(
                {"courier_id": [f"Reassigning a {current.value} order requires an admin override"]}
            )
        if self.courier_id and str(self.courier_id) == str(new_courier_id):
            raise ValidationError({"courier_id": ["Order is already assigned to this courier"]})

        now = datetime.now(UTC)
        previous_courier_id = self.courier_id
        self.courier_id = new_courier_id
        if current == OrderStatus.PENDING:
            self.status = OrderStatus.CONFIRMED.value
            self.confirmed_at = now
        self._append_tracking(OrderStatus(self.status), now, message="Courier reassigned")
        self._bump()
        self.raise_(
            CourierReassigned(
                order_id=str(self.id),
                previous_courier_id=previous_courier_id,
                new_courier_id=new_courier_id,
                status=self.status,
                reassigned_by=reassigned_by,
                admin_override=admin_override and current not in _UNPICKED_STATUSES,
                reason=reason,
                revision=self.revision,
                reassigned_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Courier-driven progress
    # -------------------------------------------------------------------
    def advance(self, courier_id: str, new_status: str, lat: float | None = None, lng: float | None = None) -> None:
        try:
            target = OrderStatus(new_status)
        except ValueError:
            raise ValidationError({"new_status": [f"Unknown status {new_status}"]})

        if target not in _COURIER_DRIVEN:
            raise InvalidTransition(self.status, target.value)
        if not self.courier_id or str(self.courier_id) != str(courier_id):
            raise ValidationError({"courier_id": ["Only the assigned courier can update this order"]})
        self._assert_can_transition(target)

        now = datetime.now(UTC)
        self.status = target.value
        if target == OrderStatus.DELIVERED:
            self.delivered_at = now
        self._append_tracking(target, now, lat=lat, lng=lng)
        self._bump()

        if target == OrderStatus.PREPARING:
            event = OrderPreparing(order_id=str(self.id), courier_id=courier_id, occurred_at=now)
        elif target == OrderStatus.OUT_FOR_DELIVERY:
            event = OrderOutForDelivery(order_id=str(self.id), courier_id=courier_id, lat=lat, lng=lng, occurred_at=now)
        else:
            event = OrderDelivered(
                order_id=str(self.id),
                courier_id=courier_id,
                customer_key=self.customer_key,
                delivered_at=now,
            )
        self.raise_(event)

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def cancel(self, reason: str, cancelled_by: str = "system") -> None:
        """Cancel from any non-terminal state.

        Quota is never returned. Stock is returned only if the goods were
        never picked.
        """
        current = OrderStatus(self.status)
        self._assert_can_transition(OrderStatus.CANCELLED)

        now = datetime.now(UTC)
        self.status = OrderStatus.CANCELLED.value
        self.cancelled_at = now
        self.cancellation_reason = reason
        self._append_tracking(OrderStatus.CANCELLED, now, message=reason)
        self._bump()
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                previous_status=current.value,
                reason=reason,
                cancelled_by=cancelled_by,
                release_inventory=current in _UNPICKED_STATUSES,
                cancelled_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Operator review flags
    # -------------------------------------------------------------------
    def flag(self, reason: str, flagged_by: str) -> None:
        """Mark the order for operator review. Status is untouched.

        Flagging an already flagged order replaces the reason.
        """
        if not reason or not reason.strip():
            raise ValidationError({"reason": ["A reason is required to flag an order"]})

        now = datetime.now(UTC)
        previous_reason = self.flagged_reason
        self.flagged_reason = reason.strip()
        self.flagged_by = flagged_by
        self.flagged_at = now
        self._bump()
        self.raise_(
            OrderFlagged(
                order_id=str(self.id),
                reason=self.flagged_reason,
                previous_reason=previous_reason,
                flagged_by=flagged_by,
                status=self.status,
                flagged_at=now,
            )
        )

    def unflag(self, unflagged_by: str, reason: str | None = None) -> None:
        if not self.is_flagged:
            raise ValidationError({"flagged_at": ["Order is not flagged"]})

        now = datetime.now(UTC)
        previous_reason = self.flagged_reason
        self.flagged_reason = None
        self.flagged_by = None
        self.flagged_at = None
        self._bump()
        self.raise_(
            OrderUnflagged(
                order_id=str(self.id),
                previous_reason=previous_reason,
                unflagged_by=unflagged_by,
                reason=reason,
                unflagged_at=now,
            )
        )
