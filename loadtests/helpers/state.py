"""Per-user state tracking for Locust load test scenarios.

Each Locust user instance maintains its own state. State tracks entity IDs
returned by creation endpoints so follow-up operations can reference them.
"""

from dataclasses import dataclass, field


@dataclass
class CheckoutState:
    """Tracks state for a single simulated customer checkout."""

    customer_id: str | None = None
    product_ids: list[str] = field(default_factory=list)
    order_id: str | None = None
    tracking_code: str | None = None
    orders_placed: int = 0
    quota_rejections: int = 0


@dataclass
class CourierState:
    """Tracks state for a single simulated courier shift."""

    courier_id: str | None = None
    order_id: str | None = None
    current_status: str | None = None
    lat: float = 40.7128
    lng: float = -74.0060
    claims_won: int = 0
    claims_lost: int = 0
