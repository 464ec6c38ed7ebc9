"""
Order status aggregation.

An order's status is a pure function of the statuses of its parcels. It is
recomputed after every parcel status change and never edited by hand.
"""

import logging
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cargo_backend.app.models.container import Container
from cargo_backend.app.models.order import Order
from cargo_backend.app.models.parcel import Parcel
from cargo_backend.app.models.parcel_enums import ParcelStatus
from cargo_backend.app.services.status_details import build_order_status_details

logger = logging.getLogger("cargo_backend.orders")

INITIAL_STATUS = ParcelStatus.IN_AGENCY

# Advancement order, lowest first.
BASE_STATUSES = (
    ParcelStatus.IN_AGENCY,
    ParcelStatus.IN_PALLET,
    ParcelStatus.IN_DISPATCH,
    ParcelStatus.RECEIVED_IN_DISPATCH,
    ParcelStatus.IN_WAREHOUSE,
    ParcelStatus.IN_CONTAINER,
    ParcelStatus.IN_TRANSIT,
    ParcelStatus.AT_PORT_OF_ENTRY,
    ParcelStatus.CUSTOMS_INSPECTION,
    ParcelStatus.RELEASED_FROM_CUSTOMS,
    ParcelStatus.OUT_FOR_DELIVERY,
    ParcelStatus.FAILED_DELIVERY,
    ParcelStatus.DELIVERED,
    ParcelStatus.RETURNED_TO_SENDER,
)

STATUS_PRIORITY = {status: rank for rank, status in enumerate(BASE_STATUSES)}

PARTIAL_STATUS = {
    ParcelStatus.IN_PALLET: ParcelStatus.PARTIALLY_IN_PALLET,
    ParcelStatus.IN_DISPATCH: ParcelStatus.PARTIALLY_IN_DISPATCH,
    ParcelStatus.RECEIVED_IN_DISPATCH: ParcelStatus.PARTIALLY_IN_DISPATCH,
    ParcelStatus.IN_CONTAINER: ParcelStatus.PARTIALLY_IN_CONTAINER,
    ParcelStatus.IN_TRANSIT: ParcelStatus.PARTIALLY_IN_TRANSIT,
    ParcelStatus.AT_PORT_OF_ENTRY: ParcelStatus.PARTIALLY_AT_PORT,
    ParcelStatus.CUSTOMS_INSPECTION: ParcelStatus.PARTIALLY_IN_CUSTOMS,
    ParcelStatus.RELEASED_FROM_CUSTOMS: ParcelStatus.PARTIALLY_RELEASED,
    ParcelStatus.OUT_FOR_DELIVERY: ParcelStatus.PARTIALLY_OUT_FOR_DELIVERY,
    ParcelStatus.DELIVERED: ParcelStatus.PARTIALLY_DELIVERED,
}


def reduce_statuses(statuses: Iterable[ParcelStatus]) -> ParcelStatus:
    """
    Reduce a multiset of parcel statuses to one composite order status.

    Rules:
        1. No base statuses → IN_AGENCY
        2. All identical → that status
        3. Mixed → partial counterpart of the most advanced status,
           or the most advanced status itself when it has none
    """
    present = [ParcelStatus(s) for s in statuses]
    present = [s for s in present if s in STATUS_PRIORITY]
    if not present:
        return INITIAL_STATUS

    highest = max(present, key=STATUS_PRIORITY.__getitem__)
    if all(s == highest for s in present):
        return highest

    return PARTIAL_STATUS.get(highest, highest)


async def recompute_orders(db: AsyncSession, order_ids: Iterable[Optional[int]]) -> list[Order]:
    """
    Recompute and persist status and details for each distinct order.

    Orders are locked last and in ascending id order. Parcels without an
    order are ignored.
    """
    ids = sorted({order_id for order_id in order_ids if order_id is not None})
    if not ids:
        return []

    await db.flush()

    orders_result = await db.execute(
        select(Order).where(Order.id.in_(ids)).order_by(Order.id).with_for_update()
    )
    orders = orders_result.scalars().all()

    parcels_result = await db.execute(
        select(Parcel)
        .where(Parcel.order_id.in_(ids), Parcel.deleted_at.is_(None))
        .order_by(Parcel.id)
    )
    parcels_by_order = {}
    for parcel in parcels_result.scalars().all():
        parcels_by_order.setdefault(parcel.order_id, []).append(parcel)

    container_ids = {
        p.container_id for group in parcels_by_order.values() for p in group if p.container_id
    }
    container_names = {}
    if container_ids:
        names = await db.execute(
            select(Container.id, Container.container_name).where(Container.id.in_(container_ids))
        )
        container_names = {cid: name for cid, name in names.all() if name}

    for order in orders:
        parcels = parcels_by_order.get(order.id, [])
        new_status = reduce_statuses(p.status for p in parcels)
        if new_status != order.status:
            logger.debug(
                "Order status changed",
                extra={"order_id": order.id, "from": order.status.value, "to": new_status.value}
            )
        order.status = new_status
        order.status_details = build_order_status_details(parcels, container_names)

    await db.flush()
    return list(orders)


async def recompute_order(db: AsyncSession, order_id: int) -> Optional[Order]:
    orders = await recompute_orders(db, [order_id])
    return orders[0] if orders else None
