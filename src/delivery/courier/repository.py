from datetime import datetime

from protean.utils.query import Q

from delivery.courier.courier import Courier
from delivery.domain import delivery
from delivery.utils.db import conditional_update


@delivery.repository(part_of=Courier)
class CourierRepository:
    def count_online(self) -> int:
        """Live courier supply, read at fee time rather than cached."""
        return self._dao.query.filter(is_online=True).all().total

    def find_online(self) -> list[Courier]:
        return self._dao.query.filter(is_online=True).all().items

    def record_location_if_newer(self, courier_id: str, lat: float, lng: float, recorded_at: datetime) -> bool:
        """Write the position unless a push at or after ``recorded_at`` is already stored."""
        fresher = Q(last_location_update__isnull=True) | Q(last_location_update__lt=recorded_at)
        updated = conditional_update(
            self,
            Q(id=courier_id) & fresher,
            {"current_lat": lat, "current_lng": lng, "last_location_update": recorded_at},
        )
        return updated == 1

    def set_online(self, courier_id: str, is_online: bool) -> None:
        conditional_update(self, Q(id=courier_id), {"is_online": is_online})
