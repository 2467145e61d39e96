"""ETA estimation for the public tracking page.

Two sources: a status-indexed heuristic table, and live telemetry (courier
distance to the drop-off over an assumed travel speed) when the order is on
the road and the courier shared a recent position.
"""

import math
from dataclasses import dataclass
from datetime import UTC, datetime

from delivery.settings import service_settings

EARTH_RADIUS_MILES = 3958.8

HEURISTIC_MINUTES = {
    "pending": (45, 60),
    "confirmed": (15, 20),
    "preparing": (20, 30),
    "out_for_delivery": (10, 15),
}


@dataclass(frozen=True)
class Eta:
    min_minutes: int
    max_minutes: int
    source: str  # "heuristic" | "live"

    @property
    def text(self) -> str:
        return f"{self.min_minutes}-{self.max_minutes} min"

    def as_dict(self) -> dict:
        return {
            "min_minutes": self.min_minutes,
            "max_minutes": self.max_minutes,
            "source": self.source,
            "text": self.text,
        }


def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_MILES * math.asin(math.sqrt(a))


def heuristic_eta(status: str) -> Eta | None:
    window = HEURISTIC_MINUTES.get(status)
    if window is None:
        return None
    return Eta(window[0], window[1], "heuristic")


def live_eta(distance_miles: float, speed_mph: float) -> Eta:
    minutes = distance_miles / speed_mph * 60
    low = max(1, round(minutes))
    high = max(low + 2, math.ceil(minutes * 1.3))
    return Eta(low, high, "live")


def estimate(
    status: str,
    courier_lat: float | None = None,
    courier_lng: float | None = None,
    location_updated_at: datetime | None = None,
    dropoff_lat: float | None = None,
    dropoff_lng: float | None = None,
    now: datetime | None = None,
) -> Eta | None:
    """Best available ETA, or None for terminal orders."""
    fallback = heuristic_eta(status)
    if fallback is None or status != "out_for_delivery":
        return fallback

    if None in (courier_lat, courier_lng, location_updated_at, dropoff_lat, dropoff_lng):
        return fallback

    settings = service_settings()
    now = now or datetime.now(UTC)
    if location_updated_at.tzinfo is None:
        location_updated_at = location_updated_at.replace(tzinfo=UTC)
    age = (now - location_updated_at).total_seconds()
    if age > settings.live_location_max_age_seconds:
        return fallback

    distance = haversine_miles(courier_lat, courier_lng, dropoff_lat, dropoff_lng)
    return live_eta(distance, settings.assumed_courier_speed_mph)
