"""Merchant restocking — command and handler."""

from protean import handle
from protean.fields import Identifier, Integer

from delivery.domain import delivery
from delivery.inventory.record import InventoryRecord
from delivery.inventory.service import InventoryReservations


@delivery.command(part_of="InventoryRecord")
class RestockProduct:
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)


@delivery.command_handler(part_of=InventoryRecord)
class RestockingHandler:
    @handle(RestockProduct)
    def restock(self, command):
        return InventoryReservations().restock(str(command.product_id), command.quantity)
