"""
Flight Service (Domain Logic).

Air cargo flights carry air-service parcels only. Loaded parcels go straight
to IN_TRANSIT.
"""

from decimal import Decimal
from typing import Optional

from cargo_backend.app.db.unit_of_work import UnitOfWork
from cargo_backend.app.domain.containment.transfer import ContainmentRule
from cargo_backend.app.domain.containment.transport import LOADABLE_STATUSES, TransportUnitService
from cargo_backend.app.models.enums import UnitKind, ServiceType
from cargo_backend.app.models.flight import Flight
from cargo_backend.app.models.parcel import Parcel
from cargo_backend.app.models.parcel_enums import ParcelStatus, ParcelEventType
from cargo_backend.app.models.unit_enums import FlightStatus


def _air_only(parcel: Parcel, flight: Flight, upstream) -> Optional[str]:
    if parcel.service_type != ServiceType.AIR:
        return f"Parcel {parcel.tracking_code} is not an air shipment"
    return None


FLIGHT_RULE = ContainmentRule(
    kind=UnitKind.FLIGHT,
    label="Flight",
    number_attr="awb_number",
    allowed_statuses=LOADABLE_STATUSES,
    accepting_statuses=frozenset({FlightStatus.PENDING, FlightStatus.LOADING}),
    loaded_status=ParcelStatus.IN_TRANSIT,
    removed_status=ParcelStatus.IN_WAREHOUSE,
    added_event=ParcelEventType.LOADED_TO_FLIGHT,
    removed_event=ParcelEventType.REMOVED_FROM_FLIGHT,
    initial_status=FlightStatus.PENDING,
    in_progress_status=FlightStatus.LOADING,
    compatibility=_air_only,
)

FLIGHT_TRANSITIONS = {
    FlightStatus.PENDING: frozenset({FlightStatus.LOADING}),
    FlightStatus.LOADING: frozenset({FlightStatus.DEPARTED}),
    FlightStatus.DEPARTED: frozenset({FlightStatus.IN_TRANSIT, FlightStatus.LANDED}),
    FlightStatus.IN_TRANSIT: frozenset({FlightStatus.LANDED}),
    FlightStatus.LANDED: frozenset({FlightStatus.CUSTOMS_HOLD, FlightStatus.CUSTOMS_CLEARED}),
    FlightStatus.CUSTOMS_HOLD: frozenset({FlightStatus.CUSTOMS_CLEARED}),
    FlightStatus.CUSTOMS_CLEARED: frozenset({FlightStatus.CUSTOMS_HOLD, FlightStatus.UNLOADING}),
    FlightStatus.UNLOADING: frozenset(),
}

FLIGHT_PARCEL_STATUS = {
    FlightStatus.DEPARTED: ParcelStatus.IN_TRANSIT,
    FlightStatus.IN_TRANSIT: ParcelStatus.IN_TRANSIT,
    FlightStatus.LANDED: ParcelStatus.AT_PORT_OF_ENTRY,
    FlightStatus.CUSTOMS_HOLD: ParcelStatus.CUSTOMS_INSPECTION,
    FlightStatus.CUSTOMS_CLEARED: ParcelStatus.RELEASED_FROM_CUSTOMS,
    FlightStatus.UNLOADING: ParcelStatus.RELEASED_FROM_CUSTOMS,
}

FLIGHT_EVENT_TYPES = {
    FlightStatus.LOADING: ParcelEventType.LOADED_TO_FLIGHT,
    FlightStatus.DEPARTED: ParcelEventType.IN_TRANSIT,
    FlightStatus.IN_TRANSIT: ParcelEventType.IN_TRANSIT,
    FlightStatus.LANDED: ParcelEventType.ARRIVED_DESTINATION,
    FlightStatus.CUSTOMS_HOLD: ParcelEventType.CUSTOMS_PROCESSING,
    FlightStatus.CUSTOMS_CLEARED: ParcelEventType.CUSTOMS_RELEASED,
    FlightStatus.UNLOADING: ParcelEventType.CUSTOMS_RELEASED,
}


class FlightService(TransportUnitService):
    rule = FLIGHT_RULE
    transitions = FLIGHT_TRANSITIONS
    parcel_status = FLIGHT_PARCEL_STATUS
    event_types = FLIGHT_EVENT_TYPES
    departed_status = FlightStatus.DEPARTED
    arrived_status = FlightStatus.LANDED

    @classmethod
    async def create(
        cls,
        uow: UnitOfWork,
        awb_number: str,
        forwarder_id: int,
        flight_number: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> Flight:
        flight = Flight(
            awb_number=awb_number,
            flight_number=flight_number,
            forwarder_id=forwarder_id,
            status=FlightStatus.PENDING,
            total_weight_kg=Decimal("0"),
            parcels_count=0,
            created_by_id=actor_id,
        )
        return await cls._created(uow, flight, actor_id)
