"""Courier aggregate — who can deliver, and where they were last seen.

Online couriers are the live supply signal for delivery pricing. Location
pushes arrive out of order from mobile clients, so a push older than the
stored one is ignored. The feed writes the position with a conditional update
on ``last_location_update``; see ``CourierRepository.record_location_if_newer``.
"""

from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, String

from delivery.domain import delivery


@delivery.aggregate
class Courier:
    full_name = String(required=True, max_length=255)
    vehicle_type = String(max_length=50, default="bike")
    phone = String(max_length=30)
    is_online = Boolean(default=False)
    current_lat = Float()
    current_lng = Float()
    last_location_update = DateTime()
    created_at = DateTime()

    @classmethod
    def register(cls, full_name: str, vehicle_type: str | None = None, phone: str | None = None):
        return cls(
            full_name=full_name,
            vehicle_type=vehicle_type or "bike",
            phone=phone,
            created_at=datetime.now(UTC),
        )

    @property
    def first_name(self) -> str:
        return (self.full_name or "").split(" ")[0]

    def location_age_seconds(self, now: datetime | None = None) -> float | None:
        if self.last_location_update is None:
            return None
        now = now or datetime.now(UTC)
        return (now - _aware(self.last_location_update)).total_seconds()


def location_push_time(lat: float, lng: float, recorded_at: datetime | None = None) -> datetime:
    """Validate a position push and return its timestamp, in UTC."""
    if not -90 <= lat <= 90 or not -180 <= lng <= 180:
        raise ValidationError({"location": ["Coordinates out of range"]})
    return _aware(recorded_at or datetime.now(UTC))


def _aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo else moment.replace(tzinfo=UTC)
