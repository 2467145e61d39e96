"""Merchant acceptance — command and handler."""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier
from protean.utils.globals import current_domain

from delivery.domain import delivery
from delivery.errors import StaleOrder
from delivery.order.order import Order


@delivery.command(part_of="Order")
class AcceptOrder:
    order_id = Identifier(required=True)
    merchant_id = Identifier()


@delivery.command_handler(part_of=Order)
class AcceptanceHandler:
    @handle(AcceptOrder)
    def accept_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        if command.merchant_id and order.merchant_id and str(command.merchant_id) != str(order.merchant_id):
            raise ValidationError({"merchant_id": ["Order belongs to a different merchant"]})

        observed = order.revision
        order.accept_by_merchant(command.merchant_id)
        if not repo.save_if_revision(order, observed):
            raise StaleOrder(order_id=str(order.id))
        return order.status
