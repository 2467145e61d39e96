"""Jurisdiction constants and service knobs.

Values are read from the environment on every call so that a process can be
reconfigured (and tests can monkeypatch) without module reloads. Defaults are
the New York City rules the storefront launched with.
"""

import os
from dataclasses import dataclass
from zoneinfo import ZoneInfo

_DEFAULT_SERVED_REGIONS = "Manhattan,Brooklyn,Queens,Bronx,Staten Island"


@dataclass(frozen=True)
class Jurisdiction:
    """Regulatory ceilings and the geofence for one market."""

    flower_daily_limit_grams: float
    concentrate_daily_limit_grams: float
    served_regions: tuple[str, ...]
    timezone: str

    def serves(self, region: str | None) -> bool:
        if not region:
            return False
        wanted = region.strip().lower()
        return any(r.lower() == wanted for r in self.served_regions)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


@dataclass(frozen=True)
class ServiceSettings:
    """Operational limits for the order pipeline."""

    idempotency_window_seconds: int
    order_creation_budget_seconds: float
    cas_max_attempts: int
    max_cart_lines: int
    tracking_rate_limit: int
    tracking_miss_limit: int
    tracking_rate_window_seconds: int
    assumed_courier_speed_mph: float
    live_location_max_age_seconds: int


def current_jurisdiction() -> Jurisdiction:
    regions = os.environ.get("SERVED_REGIONS", _DEFAULT_SERVED_REGIONS)
    return Jurisdiction(
        flower_daily_limit_grams=float(os.environ.get("FLOWER_DAILY_LIMIT_GRAMS", "85.05")),
        concentrate_daily_limit_grams=float(os.environ.get("CONCENTRATE_DAILY_LIMIT_GRAMS", "24")),
        served_regions=tuple(r.strip() for r in regions.split(",") if r.strip()),
        timezone=os.environ.get("JURISDICTION_TIMEZONE", "America/New_York"),
    )


def service_settings() -> ServiceSettings:
    return ServiceSettings(
        idempotency_window_seconds=int(os.environ.get("ORDER_IDEMPOTENCY_WINDOW_SECONDS", "300")),
        order_creation_budget_seconds=float(os.environ.get("ORDER_CREATION_BUDGET_SECONDS", "10")),
        cas_max_attempts=int(os.environ.get("CAS_MAX_ATTEMPTS", "5")),
        max_cart_lines=int(os.environ.get("MAX_CART_LINES", "50")),
        tracking_rate_limit=int(os.environ.get("TRACKING_RATE_LIMIT", "30")),
        tracking_miss_limit=int(os.environ.get("TRACKING_MISS_LIMIT", "10")),
        tracking_rate_window_seconds=int(os.environ.get("TRACKING_RATE_WINDOW_SECONDS", "60")),
        assumed_courier_speed_mph=float(os.environ.get("ASSUMED_COURIER_SPEED_MPH", "12")),
        live_location_max_age_seconds=int(os.environ.get("LIVE_LOCATION_MAX_AGE_SECONDS", "300")),
    )
