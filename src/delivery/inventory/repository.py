"""Conditional-update repositories for stock and reservations."""

from datetime import UTC, datetime

from protean.utils.query import Q

from delivery.domain import delivery
from delivery.inventory.record import InventoryRecord, ReservationStatus, StockReservation
from delivery.utils.db import conditional_update


@delivery.repository(part_of=InventoryRecord)
class InventoryRecordRepository:
    def compare_and_set_stock(self, product_id: str, observed: int, new_stock: int) -> bool:
        """``UPDATE ... SET stock = new WHERE product_id = ? AND stock = observed``."""
        if new_stock < 0:
            return False
        updated = conditional_update(
            self,
            Q(product_id=product_id, stock=observed),
            {"stock": new_stock, "updated_at": datetime.now(UTC)},
        )
        return updated == 1


@delivery.repository(part_of=StockReservation)
class StockReservationRepository:
    def close_if_active(self, reservation_id: str, status: ReservationStatus) -> bool:
        """Move an active reservation to ``status``. Only one caller can win."""
        updated = conditional_update(
            self,
            Q(reservation_id=reservation_id, status=ReservationStatus.ACTIVE.value),
            {"status": status.value, "closed_at": datetime.now(UTC)},
        )
        return updated == 1

    def for_order(self, order_id: str) -> list[StockReservation]:
        return self._dao.query.filter(order_id=order_id).all().items

    def active_for_order(self, order_id: str) -> list[StockReservation]:
        return self._dao.query.filter(order_id=order_id, status=ReservationStatus.ACTIVE.value).all().items
