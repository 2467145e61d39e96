"""Inventory reacts to order lifecycle events.

Cancelled orders that were never picked give their stock back. Once the
courier reports the order as preparing, goods have left the shelf and the
reservations become permanent.
"""

import structlog
from protean.utils.mixins import handle

from delivery.domain import delivery
from delivery.inventory.record import StockReservation
from delivery.inventory.service import InventoryReservations
from delivery.order.events import OrderCancelled, OrderPreparing

logger = structlog.get_logger(__name__)


@delivery.event_handler(part_of=StockReservation, stream_category="delivery::order")
class OrderInventoryEventHandler:
    @handle(OrderCancelled)
    def on_order_cancelled(self, event: OrderCancelled) -> None:
        if not event.release_inventory:
            logger.info(
                "keeping picked stock for cancelled order",
                order_id=str(event.order_id),
                previous_status=event.previous_status,
            )
            return

        released = InventoryReservations().release_order(str(event.order_id))
        logger.info("released stock for cancelled order", order_id=str(event.order_id), lines=released)

    @handle(OrderPreparing)
    def on_order_preparing(self, event: OrderPreparing) -> None:
        committed = InventoryReservations().commit_order(str(event.order_id))
        logger.info("committed stock for order", order_id=str(event.order_id), lines=committed)
