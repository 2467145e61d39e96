"""Inventory records and per-order stock reservations.

``InventoryRecord.stock`` is only ever changed through conditional updates on
the observed value (see ``InventoryRecordRepository``), never by loading,
mutating and saving the aggregate.

StockReservation: ACTIVE → RELEASED | COMMITTED
"""

from datetime import UTC, datetime
from enum import Enum

from protean.fields import DateTime, Identifier, Integer, String

from delivery.domain import delivery
from delivery.inventory.events import LowStockDetected, StockReserved


class ReservationStatus(Enum):
    ACTIVE = "active"
    RELEASED = "released"
    COMMITTED = "committed"


def reservation_id(order_id: str, product_id: str) -> str:
    return f"{order_id}:{product_id}"


@delivery.aggregate
class InventoryRecord:
    product_id = Identifier(identifier=True)
    stock = Integer(default=0, min_value=0)
    low_stock_threshold = Integer(default=5, min_value=0)
    updated_at = DateTime()


@delivery.aggregate
class StockReservation:
    reservation_id = Identifier(identifier=True)
    order_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    status = String(choices=ReservationStatus, default=ReservationStatus.ACTIVE.value)
    reserved_at = DateTime()
    closed_at = DateTime()

    @classmethod
    def place(cls, order_id: str, product_id: str, quantity: int, remaining_stock: int, threshold: int):
        now = datetime.now(UTC)
        reservation = cls(
            reservation_id=reservation_id(order_id, product_id),
            order_id=order_id,
            product_id=product_id,
            quantity=quantity,
            reserved_at=now,
        )
        reservation.raise_(
            StockReserved(
                order_id=order_id,
                product_id=product_id,
                quantity=quantity,
                remaining_stock=remaining_stock,
                reserved_at=now,
            )
        )
        if remaining_stock <= threshold:
            reservation.raise_(
                LowStockDetected(
                    product_id=product_id,
                    remaining_stock=remaining_stock,
                    threshold=threshold,
                    detected_at=now,
                )
            )
        return reservation
