"""Delivery bounded context — regulated same-day order fulfillment.

Converts carts into durable orders under daily purchase quotas, reserves
inventory with compare-and-swap updates, prices delivery, and drives each
order through the merchant/courier/customer lifecycle with public tracking.
All aggregates are CQRS (state stored), with contended writes expressed as
conditional updates.
"""

import structlog
from protean.domain import Domain

delivery = Domain(name="delivery")

logger = structlog.get_logger(__name__)
