"""Courier claim — command and handler.

Two couriers may race for the same order. Both pass the in-memory checks;
only the one whose conditional update still finds the revision it read
wins. The other receives ``AlreadyClaimed``.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier
from protean.utils.globals import current_domain

from delivery.courier.courier import Courier
from delivery.domain import delivery
from delivery.errors import AlreadyClaimed
from delivery.order.order import Order

logger = structlog.get_logger(__name__)


@delivery.command(part_of="Order")
class ClaimOrder:
    order_id = Identifier(required=True)
    courier_id = Identifier(required=True)


@delivery.command_handler(part_of=Order)
class ClaimHandler:
    @handle(ClaimOrder)
    def claim_order(self, command):
        courier = current_domain.repository_for(Courier).get(command.courier_id)
        if not courier.is_online:
            raise ValidationError({"courier_id": ["Courier must be online to claim orders"]})

        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        observed_revision, observed_status = order.revision, order.status
        order.claim(str(command.courier_id))

        if not repo.save_if_revision(order, observed_revision, observed_status):
            logger.info("courier lost claim race", order_id=str(order.id), courier_id=str(command.courier_id))
            raise AlreadyClaimed(order_id=str(order.id))

        logger.info("order claimed", order_id=str(order.id), courier_id=str(command.courier_id))
        return order.status
