"""
Warehouse Service (Domain Logic).

Warehouses hold physical custody of parcels released from customs. Custody
(`Parcel.current_warehouse_id`) is independent of the parcel's holder: a
parcel keeps its container or flight reference while sitting in a warehouse.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from cargo_backend.app.core.exceptions import (
    ConflictError,
    InvalidStateError,
    ResourceNotFoundError,
    ValidationFailureError,
)
from cargo_backend.app.db.unit_of_work import UnitOfWork
from cargo_backend.app.domain.containment.transfer import adjust_counts, ensure_not_deleted, lock_parcel, lock_row
from cargo_backend.app.models.enums import UnitKind
from cargo_backend.app.models.parcel import Parcel
from cargo_backend.app.models.parcel_enums import ParcelStatus, ParcelEventType
from cargo_backend.app.models.warehouse import Warehouse
from cargo_backend.app.services.event_trail import UnitRef, append_parcel_event
from cargo_backend.app.services.order_status import recompute_orders
from cargo_backend.app.services.status_details import build_parcel_status_details

logger = logging.getLogger("cargo_backend.warehouses")

RECEIVABLE_STATUSES = frozenset({ParcelStatus.RELEASED_FROM_CUSTOMS, ParcelStatus.IN_WAREHOUSE})


def _ensure_active(warehouse: Warehouse) -> None:
    if not warehouse.is_active:
        raise InvalidStateError(
            f"Warehouse {warehouse.name} is not active",
            details={"unit": UnitKind.WAREHOUSE.value, "unit_id": warehouse.id},
        )


async def _move_custody(uow: UnitOfWork, parcel: Parcel, source: Optional[Warehouse], target: Warehouse,
                        event_type: ParcelEventType, actor_id: Optional[int], note: str) -> None:
    if source is not None:
        await adjust_counts(uow.session, source, parcels_count=-1)
    await adjust_counts(uow.session, target, parcels_count=1)

    parcel.current_warehouse_id = target.id
    parcel.status = ParcelStatus.IN_WAREHOUSE
    parcel.status_details = build_parcel_status_details(parcel)
    append_parcel_event(uow, parcel, event_type, actor_id=actor_id, note=note, unit=UnitRef(UnitKind.WAREHOUSE, target.id))


async def _lock_warehouses(db: AsyncSession, *warehouse_ids: int) -> dict:
    """Lock warehouses in ascending id order."""
    locked = {}
    for warehouse_id in sorted(set(warehouse_ids)):
        locked[warehouse_id] = await lock_row(db, Warehouse, warehouse_id, "Warehouse")
    return locked


class WarehouseService:

    @staticmethod
    async def create(uow: UnitOfWork, name: str, carrier_id: int) -> Warehouse:
        warehouse = Warehouse(name=name, carrier_id=carrier_id, is_active=True, parcels_count=0)
        uow.session.add(warehouse)
        await uow.session.flush()
        logger.info("Warehouse created", extra={"warehouse_id": warehouse.id, "carrier_id": carrier_id})
        return warehouse

    @staticmethod
    async def get(db: AsyncSession, warehouse_id: int) -> Warehouse:
        warehouse = await db.get(Warehouse, warehouse_id)
        if warehouse is None:
            raise ResourceNotFoundError("Warehouse", warehouse_id)
        return warehouse

    @staticmethod
    async def receive_parcel(
        uow: UnitOfWork, warehouse_id: int, tracking_code: str, actor_id: Optional[int] = None
    ) -> Parcel:
        """
        Take custody of a parcel. A parcel already held elsewhere is transferred.

        Raises:
            InvalidStateError: warehouse inactive, parcel not released from customs
            ConflictError: parcel already in this warehouse
        """
        db = uow.session
        parcel = await lock_parcel(db, tracking_code)
        ensure_not_deleted(parcel)

        previous_id = parcel.current_warehouse_id
        warehouses = await _lock_warehouses(db, warehouse_id, *([previous_id] if previous_id else []))
        warehouse = warehouses[warehouse_id]
        _ensure_active(warehouse)

        if parcel.status not in RECEIVABLE_STATUSES:
            raise InvalidStateError(
                f"Parcel {parcel.tracking_code} with status {parcel.status.value} cannot be received in a warehouse",
                details={
                    "tracking_code": parcel.tracking_code,
                    "status": parcel.status.value,
                    "allowed": sorted(s.value for s in RECEIVABLE_STATUSES),
                },
            )
        if previous_id == warehouse.id:
            raise ConflictError(
                f"Parcel {parcel.tracking_code} is already in warehouse {warehouse.name}",
                details={"tracking_code": parcel.tracking_code, "unit_id": warehouse.id},
            )

        if previous_id is None:
            await _move_custody(uow, parcel, None, warehouse, ParcelEventType.WAREHOUSE_RECEIVED, actor_id,
                                f"Received in warehouse {warehouse.name}")
        else:
            await _move_custody(uow, parcel, warehouses[previous_id], warehouse, ParcelEventType.WAREHOUSE_TRANSFERRED,
                                actor_id, f"Transferred from warehouse {previous_id} to {warehouse.name}")

        await recompute_orders(db, [parcel.order_id])
        await db.flush()
        return parcel

    @staticmethod
    async def transfer_parcel(
        uow: UnitOfWork,
        from_warehouse_id: int,
        to_warehouse_id: int,
        tracking_code: str,
        actor_id: Optional[int] = None,
    ) -> Parcel:
        """
        Move custody between two warehouses.

        Raises:
            ValidationFailureError: source and destination are the same
            InvalidStateError: parcel not in the source warehouse, destination inactive
        """
        if from_warehouse_id == to_warehouse_id:
            raise ValidationFailureError(
                "Source and destination warehouse must differ",
                details={"warehouse_id": from_warehouse_id},
            )

        db = uow.session
        parcel = await lock_parcel(db, tracking_code)
        ensure_not_deleted(parcel)
        warehouses = await _lock_warehouses(db, from_warehouse_id, to_warehouse_id)
        source, target = warehouses[from_warehouse_id], warehouses[to_warehouse_id]

        if parcel.current_warehouse_id != source.id:
            raise InvalidStateError(
                f"Parcel {parcel.tracking_code} is not in warehouse {source.name}",
                details={"tracking_code": parcel.tracking_code, "unit_id": source.id,
                         "current_warehouse_id": parcel.current_warehouse_id},
            )
        _ensure_active(target)

        await _move_custody(uow, parcel, source, target, ParcelEventType.WAREHOUSE_TRANSFERRED, actor_id,
                      f"Transferred from warehouse {source.name} to {target.name}")

        await recompute_orders(db, [parcel.order_id])
        await db.flush()
        return parcel
