"""Quota finalization — closes an order's charge when the order ends.

Delivered orders consume their charge. Cancelled orders forfeit it: the
grams stay on the day's ledger so that buy, cancel and re-buy cannot lift a
customer past the daily ceiling.
"""

import structlog
from protean.utils.mixins import handle

from delivery.domain import delivery
from delivery.order.events import OrderCancelled, OrderDelivered
from delivery.quota.ledger import ChargeStatus, QuotaCharge
from delivery.quota.service import QuotaLedger

logger = structlog.get_logger(__name__)


@delivery.event_handler(part_of=QuotaCharge, stream_category="delivery::order")
class QuotaFinalizationHandler:
    @handle(OrderDelivered)
    def on_order_delivered(self, event: OrderDelivered) -> None:
        QuotaLedger().finalize(str(event.order_id), ChargeStatus.CONSUMED)

    @handle(OrderCancelled)
    def on_order_cancelled(self, event: OrderCancelled) -> None:
        logger.info("quota kept for cancelled order", order_id=str(event.order_id))
        QuotaLedger().finalize(str(event.order_id), ChargeStatus.FORFEITED)
