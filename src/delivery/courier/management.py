"""Courier registration, availability and the location feed."""

import structlog
from protean import handle
from protean.fields import Boolean, DateTime, Float, Identifier, String
from protean.utils.globals import current_domain

from delivery.courier.courier import Courier, location_push_time
from delivery.domain import delivery

logger = structlog.get_logger(__name__)


@delivery.command(part_of="Courier")
class RegisterCourier:
    full_name = String(required=True, max_length=255)
    vehicle_type = String(max_length=50)
    phone = String(max_length=30)


@delivery.command(part_of="Courier")
class SetCourierAvailability:
    courier_id = Identifier(required=True)
    is_online = Boolean(required=True)


@delivery.command(part_of="Courier")
class RecordCourierLocation:
    courier_id = Identifier(required=True)
    lat = Float(required=True)
    lng = Float(required=True)
    recorded_at = DateTime()


@delivery.command_handler(part_of=Courier)
class CourierManagementHandler:
    @handle(RegisterCourier)
    def register_courier(self, command):
        courier = Courier.register(command.full_name, command.vehicle_type, command.phone)
        current_domain.repository_for(Courier).add(courier)
        return str(courier.id)

    @handle(SetCourierAvailability)
    def set_availability(self, command):
        repo = current_domain.repository_for(Courier)
        courier = repo.get(command.courier_id)
        repo.set_online(str(courier.id), bool(command.is_online))
        logger.info("courier availability changed", courier_id=str(courier.id), is_online=command.is_online)

    @handle(RecordCourierLocation)
    def record_location(self, command):
        recorded_at = location_push_time(command.lat, command.lng, command.recorded_at)
        repo = current_domain.repository_for(Courier)
        courier = repo.get(command.courier_id)
        if not repo.record_location_if_newer(str(courier.id), command.lat, command.lng, recorded_at):
            logger.info("ignored stale courier location", courier_id=str(courier.id))
            return False
        return True
