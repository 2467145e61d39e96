"""Stock reservation with compensating release.

Every mutation of ``stock`` is a single conditional update on the value we
observed. Reservations are keyed by (order, product) so that reserving or
releasing twice for the same order is a no-op.
"""

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from delivery.errors import InsufficientStock, PersistenceFailure
from delivery.inventory.record import InventoryRecord, ReservationStatus, StockReservation, reservation_id
from delivery.settings import service_settings
from delivery.utils.db import read_committed

logger = structlog.get_logger(__name__)


class InventoryReservations:
    def __init__(self):
        self.records = current_domain.repository_for(InventoryRecord)
        self.reservations = current_domain.repository_for(StockReservation)

    def _record(self, product_id: str) -> InventoryRecord:
        try:
            return read_committed(self.records, product_id)
        except ObjectNotFoundError:
            raise ValidationError({"product_id": [f"No inventory record for product {product_id}"]})

    def _reservation(self, order_id: str, product_id: str) -> StockReservation | None:
        try:
            return self.reservations.get(reservation_id(order_id, product_id))
        except ObjectNotFoundError:
            return None

    def available(self, product_id: str) -> int:
        return self._record(product_id).stock

    def reserve(self, order_id: str, product_id: str, quantity: int, product_name: str | None = None) -> StockReservation:
        existing = self._reservation(order_id, product_id)
        if existing is not None and existing.status != ReservationStatus.RELEASED.value:
            return existing

        attempts = service_settings().cas_max_attempts
        for attempt in range(1, attempts + 1):
            record = self._record(product_id)
            if record.stock < quantity:
                logger.warning(
                    "insufficient stock",
                    order_id=order_id,
                    product_id=product_id,
                    requested=quantity,
                    available=record.stock,
                )
                raise InsufficientStock(product_id, available=record.stock, product_name=product_name)
            if self.records.compare_and_set_stock(product_id, record.stock, record.stock - quantity):
                break
            logger.info("stock changed underneath reservation, retrying", product_id=product_id, attempt=attempt)
        else:
            logger.warning("stock reservation lost every race", order_id=order_id, product_id=product_id)
            raise InsufficientStock(product_id, available=self._record(product_id).stock, product_name=product_name)

        reservation = StockReservation.place(
            order_id,
            product_id,
            quantity,
            remaining_stock=record.stock - quantity,
            threshold=record.low_stock_threshold,
        )
        self.reservations.add(reservation)
        logger.info("stock reserved", order_id=order_id, product_id=product_id, quantity=quantity)
        return reservation

    def _increment(self, product_id: str, quantity: int) -> None:
        attempts = service_settings().cas_max_attempts
        for _ in range(attempts):
            record = self._record(product_id)
            if self.records.compare_and_set_stock(product_id, record.stock, record.stock + quantity):
                return
        raise PersistenceFailure("Could not return stock", product_id=product_id, quantity=quantity)

    def release(self, order_id: str, product_id: str) -> bool:
        """Return reserved units to stock. Safe to call repeatedly."""
        reservation = self._reservation(order_id, product_id)
        if reservation is None:
            return False
        if not self.reservations.close_if_active(reservation.reservation_id, ReservationStatus.RELEASED):
            return False
        self._increment(product_id, reservation.quantity)
        logger.info("stock released", order_id=order_id, product_id=product_id, quantity=reservation.quantity)
        return True

    def release_order(self, order_id: str) -> int:
        released = 0
        for reservation in self.reservations.active_for_order(order_id):
            if self.release(order_id, str(reservation.product_id)):
                released += 1
        return released

    def commit_order(self, order_id: str) -> int:
        """Goods were picked: active reservations become permanent."""
        committed = 0
        for reservation in self.reservations.active_for_order(order_id):
            if self.reservations.close_if_active(reservation.reservation_id, ReservationStatus.COMMITTED):
                committed += 1
        return committed

    def restock(self, product_id: str, quantity: int) -> int:
        if quantity < 1:
            raise ValidationError({"quantity": ["Restock quantity must be at least 1"]})
        self._increment(product_id, quantity)
        stock = self.available(product_id)
        logger.info("product restocked", product_id=product_id, quantity=quantity, stock=stock)
        return stock
