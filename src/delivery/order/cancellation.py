"""Order cancellation — command and handler."""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from delivery.domain import delivery
from delivery.errors import StaleOrder
from delivery.order.order import Order

logger = structlog.get_logger(__name__)


@delivery.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    cancelled_by = String(max_length=20, default="admin")


@delivery.command_handler(part_of=Order)
class CancellationHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        observed_revision, observed_status = order.revision, order.status

        order.cancel(command.reason, cancelled_by=command.cancelled_by or "admin")
        if not repo.save_if_revision(order, observed_revision, observed_status):
            raise StaleOrder(order_id=str(order.id))

        logger.info(
            "order cancelled",
            order_id=str(order.id),
            previous_status=observed_status,
            cancelled_by=command.cancelled_by,
        )
