"""Courier reassignment — operator command and handler."""

import structlog
from protean import handle
from protean.fields import Boolean, Identifier, String
from protean.utils.globals import current_domain

from delivery.courier.courier import Courier
from delivery.domain import delivery
from delivery.errors import StaleOrder
from delivery.order.order import Order

logger = structlog.get_logger(__name__)


@delivery.command(part_of="Order")
class ReassignCourier:
    order_id = Identifier(required=True)
    new_courier_id = Identifier(required=True)
    reassigned_by = String(required=True, max_length=100)
    admin_override = Boolean(default=False)
    reason = String(max_length=500)


@delivery.command_handler(part_of=Order)
class ReassignmentHandler:
    @handle(ReassignCourier)
    def reassign_courier(self, command):
        current_domain.repository_for(Courier).get(command.new_courier_id)

        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        observed_revision, observed_status = order.revision, order.status
        previous_courier_id = order.courier_id

        order.reassign_courier(
            str(command.new_courier_id),
            reassigned_by=command.reassigned_by,
            admin_override=command.admin_override or False,
            reason=command.reason,
        )
        if not repo.save_if_revision(order, observed_revision, observed_status):
            raise StaleOrder(order_id=str(order.id))

        log = logger.warning if command.admin_override else logger.info
        log(
            "courier reassigned",
            order_id=str(order.id),
            previous_courier_id=str(previous_courier_id) if previous_courier_id else None,
            new_courier_id=str(command.new_courier_id),
            reassigned_by=command.reassigned_by,
            admin_override=command.admin_override,
        )
