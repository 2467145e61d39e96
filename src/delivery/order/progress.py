"""Courier-driven status advances — command and handler.

confirmed → preparing → out_for_delivery → delivered, only by the assigned
courier. A position sent with the update is stored on the tracking event and
fed to the courier's location.
"""

import structlog
from protean import handle
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from delivery.courier.courier import Courier, location_push_time
from delivery.domain import delivery
from delivery.errors import StaleOrder
from delivery.order.order import Order

logger = structlog.get_logger(__name__)


@delivery.command(part_of="Order")
class AdvanceOrderStatus:
    order_id = Identifier(required=True)
    courier_id = Identifier(required=True)
    new_status = String(required=True, max_length=30)
    lat = Float()
    lng = Float()


@delivery.command_handler(part_of=Order)
class ProgressHandler:
    @handle(AdvanceOrderStatus)
    def advance_status(self, command):
        pushed_at = None
        if command.lat is not None and command.lng is not None:
            pushed_at = location_push_time(command.lat, command.lng)

        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        observed_revision, observed_status = order.revision, order.status

        order.advance(str(command.courier_id), command.new_status, lat=command.lat, lng=command.lng)
        if not repo.save_if_revision(order, observed_revision, observed_status):
            raise StaleOrder(order_id=str(order.id))

        if pushed_at is not None:
            current_domain.repository_for(Courier).record_location_if_newer(
                str(command.courier_id), command.lat, command.lng, pushed_at
            )

        logger.info(
            "order status advanced",
            order_id=str(order.id),
            from_status=observed_status,
            to_status=order.status,
        )
        return order.status
