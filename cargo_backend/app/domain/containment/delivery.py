"""
Delivery Service (Domain Logic).

Last-mile delivery works on assignments rather than holders: a parcel gets at
most one DeliveryAssignment, either on a route (PLANNING → READY →
IN_PROGRESS → COMPLETED) or straight to a courier. Warehouse custody ends
when the parcel is delivered.
"""

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import select, exists, func
from sqlalchemy.ext.asyncio import AsyncSession

from cargo_backend.app.core.exceptions import (
    ConflictError,
    InvalidStateError,
    ResourceNotFoundError,
    ValidationFailureError,
)
from cargo_backend.app.db.unit_of_work import UnitOfWork
from cargo_backend.app.domain.containment.transfer import (
    ensure_not_deleted,
    adjust_counts,
    ensure_status,
    lock_parcel,
    lock_parcels,
    lock_row,
)
from cargo_backend.app.models.delivery import DeliveryRoute, DeliveryAssignment
from cargo_backend.app.models.enums import UnitKind, CounterScope
from cargo_backend.app.models.mixins import utcnow
from cargo_backend.app.models.parcel import Parcel
from cargo_backend.app.models.parcel_event import ParcelEvent
from cargo_backend.app.models.parcel_enums import ParcelStatus, ParcelEventType
from cargo_backend.app.models.unit_enums import RouteStatus, DeliveryStatus
from cargo_backend.app.models.warehouse import Warehouse
from cargo_backend.app.services.event_trail import UnitRef, append_parcel_event
from cargo_backend.app.services.order_status import recompute_orders
from cargo_backend.app.services.sequence import next_unit_number, today
from cargo_backend.app.services.status_details import build_parcel_status_details

logger = logging.getLogger("cargo_backend.delivery")

DELIVERABLE_STATUSES = frozenset({ParcelStatus.RELEASED_FROM_CUSTOMS, ParcelStatus.IN_WAREHOUSE})
PLANNABLE_ROUTE_STATUSES = frozenset({RouteStatus.PLANNING, RouteStatus.READY})

# Assignments that keep a route open.
ACTIVE_DELIVERY_STATUSES = frozenset({
    DeliveryStatus.PENDING,
    DeliveryStatus.OUT_FOR_DELIVERY,
    DeliveryStatus.RESCHEDULED,
})


def _route_ref(route_id: Optional[int]) -> Optional[UnitRef]:
    return UnitRef(UnitKind.DELIVERY_ROUTE, route_id) if route_id is not None else None


def _ensure_route_status(route: DeliveryRoute, allowed, operation: str) -> None:
    if route.status not in allowed:
        raise InvalidStateError(
            f"Cannot {operation} route {route.route_number} in status {route.status.value}",
            details={
                "unit": UnitKind.DELIVERY_ROUTE.value,
                "unit_id": route.id,
                "status": route.status.value,
                "allowed": sorted(s.value for s in allowed),
            },
        )


def _ensure_assignment_status(assignment: DeliveryAssignment, allowed, operation: str) -> None:
    if assignment.status not in allowed:
        raise InvalidStateError(
            f"Cannot {operation} assignment {assignment.id} in status {assignment.status.value}",
            details={
                "assignment_id": assignment.id,
                "status": assignment.status.value,
                "allowed": sorted(s.value for s in allowed),
            },
        )


async def _assignment_for(db: AsyncSession, parcel_id: int) -> Optional[DeliveryAssignment]:
    result = await db.execute(
        select(DeliveryAssignment)
        .where(DeliveryAssignment.parcel_id == parcel_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _check_assignable(db: AsyncSession, parcel: Parcel) -> None:
    ensure_not_deleted(parcel)
    ensure_status(parcel, DELIVERABLE_STATUSES, "assigned for delivery")
    existing = await _assignment_for(db, parcel.id)
    if existing is not None:
        raise ConflictError(
            f"Parcel {parcel.tracking_code} already has a delivery assignment",
            details={
                "tracking_code": parcel.tracking_code,
                "assignment_id": existing.id,
                "route_id": existing.route_id,
            },
        )


def _set_parcel_status(parcel: Parcel, status: ParcelStatus) -> None:
    parcel.status = status
    parcel.status_details = build_parcel_status_details(parcel)


class DeliveryService:

    @staticmethod
    async def create_route(
        uow: UnitOfWork,
        carrier_id: int,
        warehouse_id: int,
        scheduled_date: date,
        courier_id: Optional[int] = None,
        actor_id: Optional[int] = None,
    ) -> DeliveryRoute:
        """
        Create a PLANNING route numbered RT-{carrier}-{YYYYMMDD}-{seq}.

        Raises:
            ResourceNotFoundError: unknown warehouse
            ValidationFailureError: warehouse belongs to another carrier
        """
        db = uow.session
        warehouse = await db.get(Warehouse, warehouse_id)
        if warehouse is None:
            raise ResourceNotFoundError("Warehouse", warehouse_id)
        if warehouse.carrier_id != carrier_id:
            raise ValidationFailureError(
                f"Warehouse {warehouse.name} does not belong to carrier {carrier_id}",
                details={"warehouse_id": warehouse_id, "carrier_id": carrier_id},
            )

        day = today()
        sequence = await next_unit_number(db, CounterScope.ROUTE, carrier_id, day)
        route = DeliveryRoute(
            route_number=f"RT-{carrier_id}-{day:%Y%m%d}-{sequence:03d}",
            carrier_id=carrier_id,
            warehouse_id=warehouse_id,
            courier_id=courier_id,
            scheduled_date=scheduled_date,
            status=RouteStatus.PLANNING,
            parcels_count=0,
            created_by_id=actor_id,
        )
        db.add(route)
        await db.flush()
        logger.info("Delivery route created", extra={"route_id": route.id, "route_number": route.route_number})
        return route

    @staticmethod
    async def get(db: AsyncSession, route_id: int) -> DeliveryRoute:
        route = await db.get(DeliveryRoute, route_id)
        if route is None:
            raise ResourceNotFoundError("Delivery route", route_id)
        return route

    @staticmethod
    async def list_assignments(db: AsyncSession, route_id: int) -> List[DeliveryAssignment]:
        await DeliveryService.get(db, route_id)
        result = await db.execute(
            select(DeliveryAssignment)
            .where(DeliveryAssignment.route_id == route_id)
            .order_by(DeliveryAssignment.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def add_parcel_to_route(
        uow: UnitOfWork, route_id: int, tracking_code: str, actor_id: Optional[int] = None
    ) -> DeliveryAssignment:
        """
        Raises:
            ValidationFailureError: deleted parcel
            InvalidStateError: parcel not deliverable, route already started
            ConflictError: parcel already assigned
        """
        db = uow.session
        parcel = await lock_parcel(db, tracking_code)
        route = await lock_row(db, DeliveryRoute, route_id, "Delivery route")

        await _check_assignable(db, parcel)
        _ensure_route_status(route, PLANNABLE_ROUTE_STATUSES, "add parcels to")

        assignment = DeliveryAssignment(
            parcel_id=parcel.id,
            route_id=route.id,
            courier_id=route.courier_id,
            assigned_by_id=actor_id,
            status=DeliveryStatus.PENDING,
            attempts=0,
        )
        db.add(assignment)
        await adjust_counts(db, route, parcels_count=1)
        append_parcel_event(
            uow, parcel, ParcelEventType.ASSIGNED_TO_ROUTE, actor_id=actor_id,
            note=f"Assigned to route {route.route_number}", unit=_route_ref(route.id),
        )
        await db.flush()
        return assignment

    @staticmethod
    async def remove_parcel_from_route(
        uow: UnitOfWork, route_id: int, tracking_code: str, actor_id: Optional[int] = None
    ) -> Parcel:
        db = uow.session
        parcel = await lock_parcel(db, tracking_code)
        route = await lock_row(db, DeliveryRoute, route_id, "Delivery route")
        _ensure_route_status(route, PLANNABLE_ROUTE_STATUSES, "remove parcels from")

        assignment = await _assignment_for(db, parcel.id)
        if assignment is None or assignment.route_id != route.id:
            raise InvalidStateError(
                f"Parcel {parcel.tracking_code} is not on route {route.route_number}",
                details={"tracking_code": parcel.tracking_code, "unit": UnitKind.DELIVERY_ROUTE.value, "unit_id": route.id},
            )
        _ensure_assignment_status(assignment, {DeliveryStatus.PENDING}, "remove")

        await db.delete(assignment)
        await adjust_counts(db, route, parcels_count=-1)
        if parcel.current_warehouse_id is not None:
            _set_parcel_status(parcel, ParcelStatus.IN_WAREHOUSE)
        append_parcel_event(
            uow, parcel, ParcelEventType.NOTE_ADDED, actor_id=actor_id,
            note=f"Removed from route {route.route_number}", unit=_route_ref(route.id),
        )

        await recompute_orders(db, [parcel.order_id])
        await db.flush()
        return parcel

    @staticmethod
    async def assign_to_courier(
        uow: UnitOfWork, tracking_code: str, courier_id: int, actor_id: Optional[int] = None
    ) -> DeliveryAssignment:
        """Direct assignment without a route."""
        db = uow.session
        parcel = await lock_parcel(db, tracking_code)
        await _check_assignable(db, parcel)

        assignment = DeliveryAssignment(
            parcel_id=parcel.id,
            route_id=None,
            courier_id=courier_id,
            assigned_by_id=actor_id,
            status=DeliveryStatus.PENDING,
            attempts=0,
        )
        db.add(assignment)
        append_parcel_event(
            uow, parcel, ParcelEventType.ASSIGNED_TO_MESSENGER, actor_id=actor_id,
            note=f"Assigned to courier {courier_id}",
        )
        await db.flush()
        return assignment

    @staticmethod
    async def mark_ready(
        uow: UnitOfWork, route_id: int, courier_id: Optional[int] = None, actor_id: Optional[int] = None
    ) -> DeliveryRoute:
        db = uow.session
        route = await lock_row(db, DeliveryRoute, route_id, "Delivery route")
        _ensure_route_status(route, {RouteStatus.PLANNING}, "mark ready")
        if route.parcels_count < 1:
            raise InvalidStateError(
                f"Route {route.route_number} has no parcels",
                details={"unit": UnitKind.DELIVERY_ROUTE.value, "unit_id": route.id, "parcels_count": 0},
            )
        if courier_id is not None:
            route.courier_id = courier_id
        route.status = RouteStatus.READY
        await db.flush()
        logger.info("Delivery route ready", extra={"route_id": route.id, "actor_id": actor_id})
        return route

    @staticmethod
    async def start_route(uow: UnitOfWork, route_id: int, actor_id: Optional[int] = None) -> DeliveryRoute:
        """
        Send every pending assignment of a READY route out for delivery.

        Raises:
            InvalidStateError: route not READY, no courier
        """
        db = uow.session
        parcels = await lock_parcels(
            db,
            Parcel.id.in_(select(DeliveryAssignment.parcel_id).where(DeliveryAssignment.route_id == route_id)),
        )
        route = await lock_row(db, DeliveryRoute, route_id, "Delivery route")
        _ensure_route_status(route, {RouteStatus.READY}, "start")
        if route.courier_id is None:
            raise InvalidStateError(
                f"Route {route.route_number} has no courier",
                details={"unit": UnitKind.DELIVERY_ROUTE.value, "unit_id": route.id},
            )

        result = await db.execute(
            select(DeliveryAssignment)
            .where(DeliveryAssignment.route_id == route.id, DeliveryAssignment.status == DeliveryStatus.PENDING)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        pending = {a.parcel_id: a for a in result.scalars().all()}

        started = []
        for parcel in parcels:
            assignment = pending.get(parcel.id)
            if assignment is None:
                continue
            assignment.status = DeliveryStatus.OUT_FOR_DELIVERY
            assignment.courier_id = route.courier_id
            _set_parcel_status(parcel, ParcelStatus.OUT_FOR_DELIVERY)
            append_parcel_event(
                uow, parcel, ParcelEventType.OUT_FOR_DELIVERY, actor_id=actor_id,
                note=f"Route {route.route_number}", unit=_route_ref(route.id),
            )
            started.append(parcel)

        route.status = RouteStatus.IN_PROGRESS
        route.started_at = utcnow()

        await recompute_orders(db, [p.order_id for p in started])
        await db.flush()
        logger.info("Delivery route started", extra={"route_id": route.id, "parcels": len(started)})
        return route

    @staticmethod
    async def record_attempt(
        uow: UnitOfWork,
        assignment_id: int,
        success: bool,
        actor_id: Optional[int] = None,
        recipient_name: Optional[str] = None,
        recipient_id_number: Optional[str] = None,
        signature: Optional[str] = None,
        photo_proof: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> DeliveryAssignment:
        """
        Record a delivery attempt with its proof of delivery.

        Raises:
            ValidationFailureError: successful delivery without a recipient name
            InvalidStateError: assignment already closed, route not started
        """
        db = uow.session
        found = await db.get(DeliveryAssignment, assignment_id)
        if found is None:
            raise ResourceNotFoundError("Delivery assignment", assignment_id)
        if success and not recipient_name:
            raise ValidationFailureError(
                "Recipient name is required for a successful delivery",
                details={"assignment_id": assignment_id},
            )

        parcel = (await lock_parcels(db, Parcel.id == found.parcel_id))[0]
        assignment = await lock_row(db, DeliveryAssignment, assignment_id, "Delivery assignment")
        route = None
        if assignment.route_id is not None:
            route = await lock_row(db, DeliveryRoute, assignment.route_id, "Delivery route")

        _ensure_assignment_status(assignment, ACTIVE_DELIVERY_STATUSES, "record an attempt on")
        if route is not None and assignment.status == DeliveryStatus.PENDING:
            _ensure_route_status(route, {RouteStatus.IN_PROGRESS}, "deliver parcels of")

        now = utcnow()
        assignment.attempts += 1
        assignment.last_attempt_at = now
        assignment.notes = notes or assignment.notes

        if success:
            assignment.status = DeliveryStatus.DELIVERED
            assignment.delivered_at = now
            assignment.recipient_name = recipient_name
            assignment.recipient_id_number = recipient_id_number
            assignment.signature = signature
            assignment.photo_proof = photo_proof
            if parcel.current_warehouse_id is not None:
                warehouse = await lock_row(db, Warehouse, parcel.current_warehouse_id, "Warehouse")
                await adjust_counts(db, warehouse, parcels_count=-1)
                parcel.current_warehouse_id = None
            _set_parcel_status(parcel, ParcelStatus.DELIVERED)
            event_type, note = ParcelEventType.DELIVERED, f"Received by {recipient_name}"
        else:
            assignment.status = DeliveryStatus.FAILED
            _set_parcel_status(parcel, ParcelStatus.FAILED_DELIVERY)
            event_type, note = ParcelEventType.DELIVERY_FAILED, notes or "Delivery attempt failed"

        append_parcel_event(uow, parcel, event_type, actor_id=actor_id, note=note, unit=_route_ref(assignment.route_id))

        await recompute_orders(db, [parcel.order_id])
        await db.flush()

        if route is not None and route.status == RouteStatus.IN_PROGRESS:
            remaining = await db.execute(
                select(func.count(DeliveryAssignment.id)).where(
                    DeliveryAssignment.route_id == route.id,
                    DeliveryAssignment.status.in_(ACTIVE_DELIVERY_STATUSES),
                )
            )
            if remaining.scalar_one() == 0:
                route.status = RouteStatus.COMPLETED
                route.completed_at = now
                await db.flush()
                logger.info("Delivery route completed", extra={"route_id": route.id})

        logger.info(
            "Delivery attempt recorded",
            extra={"assignment_id": assignment.id, "tracking_code": parcel.tracking_code, "success": success}
        )
        return assignment

    @staticmethod
    async def reschedule(
        uow: UnitOfWork, assignment_id: int, actor_id: Optional[int] = None, notes: Optional[str] = None
    ) -> DeliveryAssignment:
        """
        Put a failed delivery back out. A route that completed on the failure is
        reopened, since the assignment is active again.

        Raises:
            InvalidStateError: assignment not FAILED
        """
        db = uow.session
        found = await db.get(DeliveryAssignment, assignment_id)
        if found is None:
            raise ResourceNotFoundError("Delivery assignment", assignment_id)

        parcel = (await lock_parcels(db, Parcel.id == found.parcel_id))[0]
        assignment = await lock_row(db, DeliveryAssignment, assignment_id, "Delivery assignment")
        _ensure_assignment_status(assignment, {DeliveryStatus.FAILED}, "reschedule")
        if assignment.route_id is not None:
            route = await lock_row(db, DeliveryRoute, assignment.route_id, "Delivery route")
            if route.status == RouteStatus.COMPLETED:
                route.status = RouteStatus.IN_PROGRESS
                route.completed_at = None
                logger.info("Delivery route reopened", extra={"route_id": route.id, "assignment_id": assignment.id})

        assignment.status = DeliveryStatus.RESCHEDULED
        if notes:
            assignment.notes = notes
        _set_parcel_status(parcel, ParcelStatus.OUT_FOR_DELIVERY)
        append_parcel_event(
            uow, parcel, ParcelEventType.DELIVERY_RESCHEDULED, actor_id=actor_id,
            note=notes, unit=_route_ref(assignment.route_id),
        )

        await recompute_orders(db, [parcel.order_id])
        await db.flush()
        return assignment

    @staticmethod
    async def delete_route(uow: UnitOfWork, route_id: int) -> None:
        """
        Raises:
            InvalidStateError: route has parcels, has started, or is referenced by events
        """
        db = uow.session
        route = await lock_row(db, DeliveryRoute, route_id, "Delivery route")
        if route.parcels_count or route.status != RouteStatus.PLANNING:
            raise InvalidStateError(
                f"Route {route.route_number} can only be deleted while empty and PLANNING",
                details={
                    "unit": UnitKind.DELIVERY_ROUTE.value,
                    "unit_id": route.id,
                    "status": route.status.value,
                    "parcels_count": route.parcels_count,
                },
            )
        referenced = await db.execute(select(exists().where(ParcelEvent.delivery_route_id == route.id)))
        if referenced.scalar():
            raise InvalidStateError(
                f"Route {route.route_number} has parcel history and cannot be deleted",
                details={"unit": UnitKind.DELIVERY_ROUTE.value, "unit_id": route.id},
            )
        await db.delete(route)
        logger.info("Delivery route deleted", extra={"route_id": route_id})
