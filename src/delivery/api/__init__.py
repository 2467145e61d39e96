"""Delivery domain API package."""

from delivery.api.handlers import register_delivery_exception_handlers
from delivery.api.routes import (
    courier_router,
    inventory_router,
    order_router,
    pricing_router,
    product_router,
    quota_router,
    reconciliation_router,
    tracking_router,
)

routers = [
    order_router,
    tracking_router,
    pricing_router,
    product_router,
    inventory_router,
    courier_router,
    quota_router,
    reconciliation_router,
]

__all__ = ["routers", "register_delivery_exception_handlers"]
