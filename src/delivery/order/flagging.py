"""Operator review flags — commands and handler."""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from delivery.domain import delivery
from delivery.errors import StaleOrder
from delivery.order.order import Order

logger = structlog.get_logger(__name__)


@delivery.command(part_of="Order")
class FlagOrder:
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    flagged_by = String(required=True, max_length=100)


@delivery.command(part_of="Order")
class UnflagOrder:
    order_id = Identifier(required=True)
    unflagged_by = String(required=True, max_length=100)
    reason = String(max_length=500)


@delivery.command_handler(part_of=Order)
class FlaggingHandler:
    @handle(FlagOrder)
    def flag_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        observed_revision = order.revision

        order.flag(command.reason, flagged_by=command.flagged_by)
        if not repo.save_if_revision(order, observed_revision):
            raise StaleOrder(order_id=str(order.id))

        logger.warning("order flagged", order_id=str(order.id), flagged_by=command.flagged_by, reason=order.flagged_reason)

    @handle(UnflagOrder)
    def unflag_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        observed_revision = order.revision

        order.unflag(command.unflagged_by, reason=command.reason)
        if not repo.save_if_revision(order, observed_revision):
            raise StaleOrder(order_id=str(order.id))

        logger.info("order unflagged", order_id=str(order.id), unflagged_by=command.unflagged_by)
