"""Audit log — append-only trail of order, assignment, review-flag and quota events.

Operators reconcile disputes and regulators audit sales from this view,
so entries are only ever added.
"""

import json
import uuid

from protean.core.projector import on
from protean.fields import Boolean, DateTime, Identifier, String, Text
from protean.utils.globals import current_domain

from delivery.domain import delivery
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
from delivery.order.order import Order
from delivery.quota.events import QuotaChargeFinalized
from delivery.quota.ledger import QuotaCharge


@delivery.projection
class AuditLogEntry:
    entry_id = Identifier(identifier=True, required=True)
    order_id = Identifier(required=True)
    action = String(required=True, max_length=50)
    actor = String(max_length=100)
    description = String(required=True, max_length=500)
    override = Boolean(default=False)
    occurred_at = DateTime(required=True)
    event_metadata = Text()  # JSON


def _add_entry(order_id, action, description, occurred_at, actor=None, override=False, **metadata):
    current_domain.repository_for(AuditLogEntry).add(
        AuditLogEntry(
            entry_id=str(uuid.uuid4()),
            order_id=order_id,
            action=action,
            actor=actor,
            description=description,
            override=override,
            occurred_at=occurred_at,
            event_metadata=json.dumps(metadata, default=str) if metadata else None,
        )
    )


@delivery.projector(projector_for=AuditLogEntry, aggregates=[Order, QuotaCharge])
class AuditLogProjector:
    @on(OrderPlaced)
    def on_order_placed(self, event):
        _add_entry(
            event.order_id,
            "order_placed",
            f"Order {event.order_number} placed for {event.total:.2f}",
            event.placed_at,
            actor=event.customer_id or "guest",
            flower_grams=event.flower_grams,
            concentrate_grams=event.concentrate_grams,
            payment_method=event.payment_method,
        )

    @on(OrderClaimed)
    def on_order_claimed(self, event):
        _add_entry(event.order_id, "courier_assigned", "Courier claimed the order", event.claimed_at, actor=event.courier_id)

    @on(OrderAcceptedByMerchant)
    def on_order_accepted(self, event):
        _add_entry(event.order_id, "merchant_accepted", "Merchant accepted the order", event.accepted_at, actor=event.merchant_id)

    @on(OrderPreparing)
    def on_order_preparing(self, event):
        _add_entry(event.order_id, "status_changed", "Order is being prepared", event.occurred_at, actor=event.courier_id)

    @on(OrderOutForDelivery)
    def on_order_out_for_delivery(self, event):
        _add_entry(event.order_id, "status_changed", "Order is out for delivery", event.occurred_at, actor=event.courier_id)

    @on(OrderDelivered)
    def on_order_delivered(self, event):
        _add_entry(event.order_id, "status_changed", "Order was delivered", event.delivered_at, actor=event.courier_id)

    @on(OrderCancelled)
    def on_order_cancelled(self, event):
        _add_entry(
            event.order_id,
            "order_cancelled",
            f"Order cancelled from {event.previous_status}: {event.reason}",
            event.cancelled_at,
            actor=event.cancelled_by,
            release_inventory=event.release_inventory,
        )

    @on(CourierReassigned)
    def on_courier_reassigned(self, event):
        _add_entry(
            event.order_id,
            "courier_reassigned",
            f"Courier reassigned while {event.status}",
            event.reassigned_at,
            actor=event.reassigned_by,
            override=event.admin_override,
            previous_courier_id=event.previous_courier_id,
            new_courier_id=event.new_courier_id,
            reason=event.reason,
        )

    @on(OrderFlagged)
    def on_order_flagged(self, event):
        _add_entry(
            event.order_id,
            "order_flagged",
            f"Order flagged for review while {event.status}: {event.reason}",
            event.flagged_at,
            actor=event.flagged_by,
            previous_reason=event.previous_reason,
        )

    @on(OrderUnflagged)
    def on_order_unflagged(self, event):
        _add_entry(
            event.order_id,
            "order_unflagged",
            "Review flag cleared" + (f": {event.reason}" if event.reason else ""),
            event.unflagged_at,
            actor=event.unflagged_by,
            previous_reason=event.previous_reason,
        )

    @on(QuotaChargeFinalized)
    def on_quota_finalized(self, event):
        _add_entry(
            event.order_id,
            "quota_finalized",
            f"Quota charge {event.outcome}",
            event.finalized_at,
            actor="system",
            flower_grams=event.flower_grams,
            concentrate_grams=event.concentrate_grams,
        )
