"""
Parcel event trail.

Every parcel transition appends exactly one ParcelEvent through
`append_parcel_event`. Events are never changed afterwards; ordering by
(created_at, id) is the canonical history.
"""

from dataclasses import dataclass
from functools import partial
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cargo_backend.app.core.exceptions import ResourceNotFoundError
from cargo_backend.app.db.unit_of_work import UnitOfWork
from cargo_backend.app.models.enums import UnitKind
from cargo_backend.app.models.parcel import Parcel
from cargo_backend.app.models.parcel_event import ParcelEvent
from cargo_backend.app.models.parcel_enums import ParcelEventType
from cargo_backend.app.services.tracking_cache import TrackingCache


# Customer-facing messages for public event types.
PUBLIC_EVENT_MESSAGES = {
    ParcelEventType.BILLED: "Received at origin agency",
    ParcelEventType.IN_TRANSIT: "In transit to destination",
    ParcelEventType.ARRIVED_DESTINATION: "Arrived in destination country",
    ParcelEventType.CUSTOMS_PROCESSING: "Customs processing",
    ParcelEventType.CUSTOMS_RELEASED: "Released from customs",
    ParcelEventType.OUT_FOR_DELIVERY: "Out for delivery",
    ParcelEventType.DELIVERED: "Delivered",
    ParcelEventType.DELIVERY_FAILED: "Delivery attempt failed",
    ParcelEventType.DELIVERY_RESCHEDULED: "Delivery rescheduled",
}
DEFAULT_PUBLIC_MESSAGE = "Processing"

PUBLIC_EVENT_TYPES = frozenset(PUBLIC_EVENT_MESSAGES)

UNIT_EVENT_COLUMN = {
    UnitKind.PALLET: "pallet_id",
    UnitKind.DISPATCH: "dispatch_id",
    UnitKind.CONTAINER: "container_id",
    UnitKind.FLIGHT: "flight_id",
    UnitKind.WAREHOUSE: "warehouse_id",
    UnitKind.DELIVERY_ROUTE: "delivery_route_id",
}


@dataclass(frozen=True)
class UnitRef:
    """The containment unit that caused an event."""
    kind: UnitKind
    id: int


def is_public_event(event_type: ParcelEventType) -> bool:
    return ParcelEventType(event_type) in PUBLIC_EVENT_TYPES


def public_message(event_type: ParcelEventType) -> str:
    return PUBLIC_EVENT_MESSAGES.get(ParcelEventType(event_type), DEFAULT_PUBLIC_MESSAGE)


def append_parcel_event(
    uow: UnitOfWork,
    parcel: Parcel,
    event_type: ParcelEventType,
    actor_id: Optional[int] = None,
    note: Optional[str] = None,
    unit: Optional[UnitRef] = None,
) -> ParcelEvent:
    """
    Record a parcel transition with the parcel's resulting status.

    Call after the parcel's status and holder have been updated. The event is
    written on the next flush; the public timeline cache for the parcel is
    invalidated once the transaction commits.
    """
    unit_columns = {UNIT_EVENT_COLUMN[unit.kind]: unit.id} if unit is not None else {}
    event = ParcelEvent(
        parcel_id=parcel.id,
        event_type=event_type,
        status=parcel.status,
        status_details=parcel.status_details,
        note=note,
        actor_id=actor_id,
        **unit_columns,
    )
    uow.session.add(event)
    uow.after_commit(
        f"tracking:{parcel.tracking_code}",
        partial(TrackingCache.invalidate, parcel.tracking_code),
    )
    return event


async def get_parcel_history(db: AsyncSession, tracking_code: str) -> list[ParcelEvent]:
    """
    Full internal event list for a parcel, oldest first.

    Raises:
        ResourceNotFoundError: Unknown tracking code
    """
    parcel_result = await db.execute(select(Parcel.id).where(Parcel.tracking_code == tracking_code))
    parcel_id = parcel_result.scalar_one_or_none()
    if parcel_id is None:
        raise ResourceNotFoundError("Parcel", tracking_code)

    result = await db.execute(
        select(ParcelEvent)
        .where(ParcelEvent.parcel_id == parcel_id)
        .order_by(ParcelEvent.created_at, ParcelEvent.id)
    )
    return list(result.scalars().all())


async def get_public_history(db: AsyncSession, tracking_code: str) -> list[dict]:
    """
    Customer-visible timeline: public events only, each with its fixed message.

    Served from the Redis cache when present.
    """
    cached = await TrackingCache.get(tracking_code)
    if cached is not None:
        return cached

    events = await get_parcel_history(db, tracking_code)
    timeline = [
        {
            "event_type": event.event_type.value,
            "status": event.status.value,
            "message": public_message(event.event_type),
            "created_at": event.created_at.isoformat(),
        }
        for event in events
        if is_public_event(event.event_type)
    ]
    await TrackingCache.set(tracking_code, timeline)
    return timeline
