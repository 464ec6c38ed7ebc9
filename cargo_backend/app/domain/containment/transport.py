"""
International transport units (sea containers and air flights).

Both load parcels while PENDING/LOADING and then advance through a fixed
status sequence. Every status change is logged as a unit event and cascaded
to the parcels on board through finite status maps.
"""

import logging
from typing import Any, Dict, FrozenSet, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cargo_backend.app.core.exceptions import (
    ConflictError,
    InvalidStateError,
    ResourceNotFoundError,
    ValidationFailureError,
)
from cargo_backend.app.db.unit_of_work import UnitOfWork
from cargo_backend.app.domain.containment.transfer import (
    BulkTransferResult,
    ContainmentRule,
    add_parcel_to_unit,
    add_parcels_to_unit,
    delete_empty_unit,
    lock_parcels,
    lock_unit,
    remove_parcel_from_unit,
)
from cargo_backend.app.models.dispatch import Dispatch
from cargo_backend.app.models.mixins import utcnow
from cargo_backend.app.models.order import Order
from cargo_backend.app.models.parcel import Parcel
from cargo_backend.app.models.parcel_enums import ParcelStatus, ParcelEventType
from cargo_backend.app.models.unit_event import UnitEvent
from cargo_backend.app.services.event_trail import UnitRef, append_parcel_event
from cargo_backend.app.services.order_status import recompute_orders
from cargo_backend.app.services.status_details import build_parcel_status_details

logger = logging.getLogger("cargo_backend.transport")

LOADABLE_STATUSES = frozenset({
    ParcelStatus.IN_AGENCY,
    ParcelStatus.IN_PALLET,
    ParcelStatus.IN_DISPATCH,
    ParcelStatus.RECEIVED_IN_DISPATCH,
    ParcelStatus.IN_WAREHOUSE,
})

# Parcels on board that follow the unit's status. Parcels already handed to a
# warehouse or to delivery keep their own status.
ON_BOARD_STATUSES = frozenset({
    ParcelStatus.IN_CONTAINER,
    ParcelStatus.IN_TRANSIT,
    ParcelStatus.AT_PORT_OF_ENTRY,
    ParcelStatus.CUSTOMS_INSPECTION,
    ParcelStatus.RELEASED_FROM_CUSTOMS,
})


class TransportUnitService:
    """
    Shared lifecycle for containers and flights.

    Subclasses set the model rule and the finite maps:
        transitions:   unit status → statuses it may move to
        parcel_status: unit status → status of parcels on board
        event_types:   unit status → parcel event type written on cascade
    """
    rule: ContainmentRule
    transitions: Dict[Any, FrozenSet[Any]]
    parcel_status: Dict[Any, ParcelStatus]
    event_types: Dict[Any, ParcelEventType]
    departed_status: Any
    arrived_status: Any

    @classmethod
    def _unit_event(cls, unit, status, actor_id=None, location=None, description=None, reference=None) -> UnitEvent:
        return UnitEvent(
            unit_kind=cls.rule.kind,
            unit_id=unit.id,
            status=status.value,
            location=location,
            description=description,
            reference=reference,
            actor_id=actor_id,
        )

    @classmethod
    async def _created(cls, uow: UnitOfWork, unit, actor_id: Optional[int]):
        rule = cls.rule
        number = rule.number_of(unit)
        existing = await uow.session.execute(
            select(rule.model.id).where(getattr(rule.model, rule.number_attr) == number)
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(
                f"{rule.label} {number} already exists",
                details={"unit": rule.kind.value, "number": number},
            )

        uow.session.add(unit)
        await uow.session.flush()
        uow.session.add(cls._unit_event(unit, unit.status, actor_id, description=f"{cls.rule.label} created"))
        await uow.session.flush()
        logger.info(
            "Transport unit created",
            extra={"unit": cls.rule.kind.value, "unit_id": unit.id, "number": cls.rule.number_of(unit)}
        )
        return unit

    @classmethod
    async def get(cls, db: AsyncSession, unit_id: int):
        unit = await db.get(cls.rule.model, unit_id)
        if unit is None:
            raise ResourceNotFoundError(cls.rule.label, unit_id)
        return unit

    @classmethod
    async def add_parcel(cls, uow: UnitOfWork, unit_id: int, tracking_code: str, actor_id: Optional[int] = None) -> Parcel:
        return await add_parcel_to_unit(uow, cls.rule, unit_id, tracking_code, actor_id)

    @classmethod
    async def add_parcels_by_order(
        cls, uow: UnitOfWork, unit_id: int, order_id: int, actor_id: Optional[int] = None
    ) -> BulkTransferResult:
        if await uow.session.get(Order, order_id) is None:
            raise ResourceNotFoundError("Order", order_id)
        parcels = await lock_parcels(uow.session, Parcel.order_id == order_id)
        return await add_parcels_to_unit(uow, cls.rule, unit_id, parcels, actor_id)

    @classmethod
    async def add_parcels_by_dispatch(
        cls, uow: UnitOfWork, unit_id: int, dispatch_id: int, actor_id: Optional[int] = None
    ) -> BulkTransferResult:
        """Load every parcel of a dispatch. Parcels the dispatch has not released are skipped."""
        if await uow.session.get(Dispatch, dispatch_id) is None:
            raise ResourceNotFoundError("Dispatch", dispatch_id)
        parcels = await lock_parcels(uow.session, Parcel.dispatch_id == dispatch_id)
        return await add_parcels_to_unit(uow, cls.rule, unit_id, parcels, actor_id)

    @classmethod
    async def remove_parcel(cls, uow: UnitOfWork, unit_id: int, tracking_code: str, actor_id: Optional[int] = None) -> Parcel:
        return await remove_parcel_from_unit(uow, cls.rule, unit_id, tracking_code, actor_id)

    @classmethod
    async def update_status(
        cls,
        uow: UnitOfWork,
        unit_id: int,
        new_status,
        actor_id: Optional[int] = None,
        location: Optional[str] = None,
        description: Optional[str] = None,
        reference: Optional[str] = None,
    ):
        """
        Advance the unit and cascade the change to every parcel on board.

        Raises:
            InvalidStateError: transition not allowed, or departure of an empty unit
        """
        db = uow.session
        rule = cls.rule
        try:
            new_status = type(rule.initial_status)(new_status)
        except ValueError:
            raise ValidationFailureError(
                f"Unknown {rule.label.lower()} status {new_status}",
                details={"unit": rule.kind.value, "unit_id": unit_id, "requested": str(new_status)},
            )

        parcels = await lock_parcels(db, getattr(Parcel, rule.column) == unit_id)
        unit = await lock_unit(db, rule, unit_id)

        allowed = cls.transitions.get(unit.status, frozenset())
        if new_status not in allowed:
            raise InvalidStateError(
                f"{rule.label} {rule.number_of(unit)} cannot move from {unit.status.value} to {new_status.value}",
                details={
                    "unit": rule.kind.value,
                    "unit_id": unit.id,
                    "status": unit.status.value,
                    "requested": new_status.value,
                    "allowed": sorted(s.value for s in allowed),
                },
            )
        if new_status == cls.departed_status and unit.parcels_count < 1:
            raise InvalidStateError(
                f"{rule.label} {rule.number_of(unit)} is empty and cannot depart",
                details={"unit": rule.kind.value, "unit_id": unit.id, "parcels_count": 0},
            )

        unit.status = new_status
        if new_status == cls.departed_status:
            unit.actual_departure = utcnow()
        elif new_status == cls.arrived_status:
            unit.actual_arrival = utcnow()

        db.add(cls._unit_event(unit, new_status, actor_id, location, description, reference))

        target = cls.parcel_status.get(new_status)
        cascaded = []
        if target is not None:
            event_type = cls.event_types.get(new_status, ParcelEventType.NOTE_ADDED)
            note = f"{rule.label} {rule.number_of(unit)}: {description or new_status.value}"
            container_name = getattr(unit, "display_name", None)
            for parcel in parcels:
                if parcel.status not in ON_BOARD_STATUSES:
                    continue
                parcel.status = target
                parcel.status_details = build_parcel_status_details(parcel, container_name)
                append_parcel_event(uow, parcel, event_type, actor_id=actor_id, note=note, unit=UnitRef(rule.kind, unit.id))
                cascaded.append(parcel)

        await recompute_orders(db, [p.order_id for p in cascaded])
        await db.flush()
        logger.info(
            "Transport unit status changed",
            extra={
                "unit": rule.kind.value,
                "unit_id": unit.id,
                "status": new_status.value,
                "parcels_updated": len(cascaded),
            }
        )
        return unit

    @classmethod
    async def list_unit_events(cls, db: AsyncSession, unit_id: int) -> list[UnitEvent]:
        await cls.get(db, unit_id)
        result = await db.execute(
            select(UnitEvent)
            .where(UnitEvent.unit_kind == cls.rule.kind, UnitEvent.unit_id == unit_id)
            .order_by(UnitEvent.created_at, UnitEvent.id)
        )
        return list(result.scalars().all())

    @classmethod
    async def delete(cls, uow: UnitOfWork, unit_id: int) -> None:
        await delete_empty_unit(uow, cls.rule, unit_id)
