"""Order persistence with revision-guarded writes."""

from protean.utils.query import Q

from delivery.domain import delivery
from delivery.order.order import Order, OrderStatus
from delivery.utils.db import conditional_update


@delivery.repository(part_of=Order)
class OrderRepository:
    def save_if_revision(self, order: Order, expected_revision: int, expected_status: str | None = None) -> bool:
        """Persist ``order`` only if nobody else wrote it since we read it.

        The conditional update claims the row first; the full aggregate
        (new tracking events included) is written only by the winner.
        """
        criteria = {"id": str(order.id), "revision": expected_revision}
        if expected_status is not None:
            criteria["status"] = expected_status
        updated = conditional_update(
            self,
            Q(**criteria),
            {"revision": order.revision, "status": order.status, "courier_id": order.courier_id},
        )
        if updated != 1:
            return False
        self.add(order)
        return True

    def find_by_tracking_code(self, tracking_code: str) -> Order | None:
        return self._dao.query.filter(tracking_code=tracking_code).all().first

    def find_by_order_number(self, order_number: str) -> Order | None:
        return self._dao.query.filter(order_number=order_number).all().first

    def available_for_couriers(self) -> list[Order]:
        """Unassigned orders a courier may claim, oldest first."""
        orders = self._dao.query.filter(status__in=[OrderStatus.PENDING.value, OrderStatus.CONFIRMED.value]).all().items
        return sorted((order for order in orders if not order.courier_id), key=lambda order: order.created_at)

    def flagged(self) -> list[Order]:
        """Orders awaiting operator review, most recently flagged first."""
        orders = self._dao.query.filter(flagged_at__isnull=False).all().items
        return sorted(orders, key=lambda order: order.flagged_at, reverse=True)

    def assigned_to(self, courier_id: str) -> list[Order]:
        orders = self._dao.query.filter(courier_id=courier_id).all().items
        return sorted(orders, key=lambda order: order.created_at, reverse=True)
