"""
Container Service (Domain Logic).

Sea containers carry maritime-service parcels only.
"""

from decimal import Decimal
from typing import Optional

from cargo_backend.app.db.unit_of_work import UnitOfWork
from cargo_backend.app.domain.containment.transfer import ContainmentRule
from cargo_backend.app.domain.containment.transport import LOADABLE_STATUSES, TransportUnitService
from cargo_backend.app.models.container import Container
from cargo_backend.app.models.enums import UnitKind, ServiceType
from cargo_backend.app.models.parcel import Parcel
from cargo_backend.app.models.parcel_enums import ParcelStatus, ParcelEventType
from cargo_backend.app.models.unit_enums import ContainerStatus


def _maritime_only(parcel: Parcel, container: Container, upstream) -> Optional[str]:
    if parcel.service_type != ServiceType.MARITIME:
        return f"Parcel {parcel.tracking_code} is not a maritime shipment"
    return None


CONTAINER_RULE = ContainmentRule(
    kind=UnitKind.CONTAINER,
    label="Container",
    number_attr="container_number",
    allowed_statuses=LOADABLE_STATUSES,
    accepting_statuses=frozenset({ContainerStatus.PENDING, ContainerStatus.LOADING}),
    loaded_status=ParcelStatus.IN_CONTAINER,
    removed_status=ParcelStatus.IN_WAREHOUSE,
    added_event=ParcelEventType.LOADED_TO_CONTAINER,
    removed_event=ParcelEventType.REMOVED_FROM_CONTAINER,
    initial_status=ContainerStatus.PENDING,
    in_progress_status=ContainerStatus.LOADING,
    compatibility=_maritime_only,
)

CONTAINER_TRANSITIONS = {
    ContainerStatus.PENDING: frozenset({ContainerStatus.LOADING}),
    ContainerStatus.LOADING: frozenset({ContainerStatus.DEPARTED}),
    ContainerStatus.DEPARTED: frozenset({ContainerStatus.IN_TRANSIT, ContainerStatus.AT_PORT}),
    ContainerStatus.IN_TRANSIT: frozenset({ContainerStatus.AT_PORT}),
    ContainerStatus.AT_PORT: frozenset({ContainerStatus.CUSTOMS_HOLD, ContainerStatus.CUSTOMS_CLEARED}),
    ContainerStatus.CUSTOMS_HOLD: frozenset({ContainerStatus.CUSTOMS_CLEARED}),
    ContainerStatus.CUSTOMS_CLEARED: frozenset({ContainerStatus.CUSTOMS_HOLD, ContainerStatus.UNLOADING}),
    ContainerStatus.UNLOADING: frozenset(),
}

CONTAINER_PARCEL_STATUS = {
    ContainerStatus.DEPARTED: ParcelStatus.IN_TRANSIT,
    ContainerStatus.IN_TRANSIT: ParcelStatus.IN_TRANSIT,
    ContainerStatus.AT_PORT: ParcelStatus.AT_PORT_OF_ENTRY,
    ContainerStatus.CUSTOMS_HOLD: ParcelStatus.CUSTOMS_INSPECTION,
    ContainerStatus.CUSTOMS_CLEARED: ParcelStatus.RELEASED_FROM_CUSTOMS,
    ContainerStatus.UNLOADING: ParcelStatus.RELEASED_FROM_CUSTOMS,
}

CONTAINER_EVENT_TYPES = {
    ContainerStatus.LOADING: ParcelEventType.LOADED_TO_CONTAINER,
    ContainerStatus.DEPARTED: ParcelEventType.IN_TRANSIT,
    ContainerStatus.IN_TRANSIT: ParcelEventType.IN_TRANSIT,
    ContainerStatus.AT_PORT: ParcelEventType.ARRIVED_DESTINATION,
    ContainerStatus.CUSTOMS_HOLD: ParcelEventType.CUSTOMS_PROCESSING,
    ContainerStatus.CUSTOMS_CLEARED: ParcelEventType.CUSTOMS_RELEASED,
    ContainerStatus.UNLOADING: ParcelEventType.CUSTOMS_RELEASED,
}


class ContainerService(TransportUnitService):
    rule = CONTAINER_RULE
    transitions = CONTAINER_TRANSITIONS
    parcel_status = CONTAINER_PARCEL_STATUS
    event_types = CONTAINER_EVENT_TYPES
    departed_status = ContainerStatus.DEPARTED
    arrived_status = ContainerStatus.AT_PORT

    @classmethod
    async def create(
        cls,
        uow: UnitOfWork,
        container_number: str,
        forwarder_id: int,
        container_name: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> Container:
        container = Container(
            container_number=container_number,
            container_name=container_name,
            forwarder_id=forwarder_id,
            status=ContainerStatus.PENDING,
            total_weight_kg=Decimal("0"),
            parcels_count=0,
            created_by_id=actor_id,
        )
        return await cls._created(uow, container, actor_id)
