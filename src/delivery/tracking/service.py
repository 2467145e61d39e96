"""Public order tracking.

The tracking code is the only credential: the lookup filters by code alone
and the snapshot is built from that one order, so guessing a code yields
either that order or nothing. A code that resolves is rate limited on its
own counter; a code that does not is counted against the caller, so guessing
is throttled without leaving a counter behind for every guess.
"""

from dataclasses import dataclass, field
from datetime import datetime

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from delivery.courier.courier import Courier
from delivery.order.order import Order, OrderStatus
from delivery.settings import service_settings
from delivery.tracking.eta import Eta, estimate
from delivery.tracking.rate_limit import check_tracking_rate

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CourierPublicInfo:
    first_name: str
    vehicle_type: str | None
    lat: float | None = None
    lng: float | None = None
    location_updated_at: datetime | None = None

    def as_dict(self) -> dict:
        return {
            "first_name": self.first_name,
            "vehicle_type": self.vehicle_type,
            "lat": self.lat,
            "lng": self.lng,
            "location_updated_at": self.location_updated_at.isoformat() if self.location_updated_at else None,
        }


@dataclass(frozen=True)
class OrderSnapshot:
    order_number: str
    status: str
    status_message: str
    eta: Eta | None
    courier: CourierPublicInfo | None
    items: list[dict] = field(default_factory=list)
    subtotal: float = 0.0
    delivery_fee: float = 0.0
    total: float = 0.0
    placed_at: datetime | None = None
    delivered_at: datetime | None = None
    timeline: list[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "order_number": self.order_number,
            "status": self.status,
            "status_message": self.status_message,
            "eta": self.eta.as_dict() if self.eta else None,
            "courier_public_info": self.courier.as_dict() if self.courier else None,
            "items": self.items,
            "subtotal": self.subtotal,
            "delivery_fee": self.delivery_fee,
            "total": self.total,
            "placed_at": self.placed_at.isoformat() if self.placed_at else None,
            "delivered_at": self.delivered_at.isoformat() if self.delivered_at else None,
            "timeline": self.timeline,
        }


def status_message(status: str, courier_first_name: str | None = None) -> str:
    if status == OrderStatus.PENDING.value:
        return "We're finding you a driver..."
    if status == OrderStatus.CONFIRMED.value:
        if courier_first_name:
            return f"{courier_first_name} is preparing to pick up your order"
        return "Your order was accepted"
    if status == OrderStatus.PREPARING.value:
        return "Your order is being prepared"
    if status == OrderStatus.OUT_FOR_DELIVERY.value:
        if courier_first_name:
            return f"{courier_first_name} is heading to you!"
        return "Your order is on the way"
    if status == OrderStatus.DELIVERED.value:
        return "Delivered! Enjoy your order."
    if status == OrderStatus.CANCELLED.value:
        return "This order was cancelled"
    return "Processing your order..."


class TrackingService:
    def get_status(self, tracking_code: str, caller: str | None = None) -> OrderSnapshot:
        order = current_domain.repository_for(Order).find_by_tracking_code(tracking_code)
        if order is None:
            logger.info("unknown tracking code", caller=caller)
            check_tracking_rate(f"caller:{caller or 'anonymous'}", limit=service_settings().tracking_miss_limit)
            raise ObjectNotFoundError("Order not found")

        check_tracking_rate(f"code:{tracking_code}")
        return self.snapshot(order)

    def snapshot(self, order: Order) -> OrderSnapshot:
        courier = self._courier(order)
        on_the_road = order.status == OrderStatus.OUT_FOR_DELIVERY.value

        eta = estimate(
            order.status,
            courier_lat=courier.current_lat if courier and on_the_road else None,
            courier_lng=courier.current_lng if courier and on_the_road else None,
            location_updated_at=courier.last_location_update if courier and on_the_road else None,
            dropoff_lat=order.address.lat,
            dropoff_lng=order.address.lng,
        )

        public_courier = None
        if courier is not None:
            share_location = on_the_road and courier.current_lat is not None
            public_courier = CourierPublicInfo(
                first_name=courier.first_name,
                vehicle_type=courier.vehicle_type,
                lat=courier.current_lat if share_location else None,
                lng=courier.current_lng if share_location else None,
                location_updated_at=courier.last_location_update if share_location else None,
            )

        return OrderSnapshot(
            order_number=order.order_number,
            status=order.status,
            status_message=status_message(order.status, courier.first_name if courier else None),
            eta=eta,
            courier=public_courier,
            items=[{"name": item.product_name, "quantity": item.quantity} for item in order.items],
            subtotal=order.subtotal,
            delivery_fee=order.delivery_fee,
            total=order.total,
            placed_at=order.created_at,
            delivered_at=order.delivered_at,
            timeline=[
                {
                    "status": event.status,
                    "message": event.message,
                    "lat": event.lat,
                    "lng": event.lng,
                    "occurred_at": event.occurred_at.isoformat(),
                }
                for event in order.ordered_tracking_events()
            ],
        )

    def _courier(self, order: Order) -> Courier | None:
        if not order.courier_id:
            return None
        try:
            return current_domain.repository_for(Courier).get(order.courier_id)
        except ObjectNotFoundError:
            return None
