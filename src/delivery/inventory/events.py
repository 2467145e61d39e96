"""Inventory domain events."""

from protean.fields import DateTime, Identifier, Integer

from delivery.domain import delivery


@delivery.event(part_of="StockReservation")
class StockReserved:
    """Units of a product were set aside for an order."""

    __version__ = 1

    order_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True)
    remaining_stock = Integer(required=True)
    reserved_at = DateTime(required=True)


@delivery.event(part_of="StockReservation")
class LowStockDetected:
    """A reservation left a product at or below its low-stock threshold."""

    __version__ = 1

    product_id = Identifier(required=True)
    remaining_stock = Integer(required=True)
    threshold = Integer(required=True)
    detected_at = DateTime(required=True)
