"""
Warehouse custody tests.
"""

import pytest
from sqlalchemy import update

from cargo_backend.app.core.exceptions import (
    ConflictError,
    InvalidStateError,
    ResourceNotFoundError,
    ValidationFailureError,
)
from cargo_backend.app.domain.containment.containers import ContainerService
from cargo_backend.app.domain.containment.warehouses import WarehouseService
from cargo_backend.app.models.order import Order
from cargo_backend.app.models.parcel import Parcel
from cargo_backend.app.models.parcel_enums import ParcelStatus, ParcelEventType
from cargo_backend.app.models.unit_enums import ContainerStatus
from cargo_backend.app.models.warehouse import Warehouse
from cargo_backend.app.services.event_trail import get_parcel_history


@pytest.fixture
def released_parcel(make_order, force_parcel_state):
    async def _build():
        order, parcels = await make_order()
        await force_parcel_state(parcels[0].tracking_code, status=ParcelStatus.RELEASED_FROM_CUSTOMS)
        return order, parcels[0].tracking_code
    return _build


@pytest.mark.asyncio
async def test_receive_takes_custody(released_parcel, run, load, db_session):
    order, code = await released_parcel()
    warehouse = await run(WarehouseService.create, "Central", 7)

    await run(WarehouseService.receive_parcel, warehouse.id, code, actor_id=2)

    parcel = await load(Parcel, code)
    assert parcel.current_warehouse_id == warehouse.id
    assert parcel.status == ParcelStatus.IN_WAREHOUSE
    assert parcel.status_details == f"In Warehouse #{warehouse.id}"
    assert (await load(Warehouse, warehouse.id)).parcels_count == 1
    assert (await load(Order, order.id)).status == ParcelStatus.IN_WAREHOUSE

    history = await get_parcel_history(db_session, code)
    assert history[-1].event_type == ParcelEventType.WAREHOUSE_RECEIVED
    assert history[-1].warehouse_id == warehouse.id

    with pytest.raises(ConflictError):
        await run(WarehouseService.receive_parcel, warehouse.id, code)


@pytest.mark.asyncio
async def test_receive_in_other_warehouse_transfers(released_parcel, run, load, db_session):
    _, code = await released_parcel()
    first = await run(WarehouseService.create, "North", 7)
    second = await run(WarehouseService.create, "South", 7)
    await run(WarehouseService.receive_parcel, first.id, code)

    await run(WarehouseService.receive_parcel, second.id, code)

    assert (await load(Parcel, code)).current_warehouse_id == second.id
    assert (await load(Warehouse, first.id)).parcels_count == 0
    assert (await load(Warehouse, second.id)).parcels_count == 1
    history = await get_parcel_history(db_session, code)
    assert history[-1].event_type == ParcelEventType.WAREHOUSE_TRANSFERRED


@pytest.mark.asyncio
async def test_receive_requires_customs_release(make_order, run):
    _, parcels = await make_order()
    warehouse = await run(WarehouseService.create, "Central", 7)

    with pytest.raises(InvalidStateError):
        await run(WarehouseService.receive_parcel, warehouse.id, parcels[0].tracking_code)
    with pytest.raises(ResourceNotFoundError):
        await run(WarehouseService.receive_parcel, 99, parcels[0].tracking_code)


@pytest.mark.asyncio
async def test_cleared_container_parcel_keeps_its_holder(make_order, run, load):
    _, parcels = await make_order()
    code = parcels[0].tracking_code
    container = await run(ContainerService.create, "C1", 4)
    await run(ContainerService.add_parcel, container.id, code)
    for status in (ContainerStatus.DEPARTED, ContainerStatus.AT_PORT, ContainerStatus.CUSTOMS_CLEARED):
        await run(ContainerService.update_status, container.id, status)
    warehouse = await run(WarehouseService.create, "Central", 7)

    await run(WarehouseService.receive_parcel, warehouse.id, code)

    parcel = await load(Parcel, code)
    assert parcel.status == ParcelStatus.IN_WAREHOUSE
    assert parcel.container_id == container.id
    assert parcel.current_warehouse_id == warehouse.id


@pytest.mark.asyncio
async def test_transfer_between_warehouses(released_parcel, run, load, session_factory):
    _, code = await released_parcel()
    source = await run(WarehouseService.create, "North", 7)
    target = await run(WarehouseService.create, "South", 7)
    closed = await run(WarehouseService.create, "Closed", 7)
    async with session_factory() as session:
        await session.execute(update(Warehouse).where(Warehouse.id == closed.id).values(is_active=False))
        await session.commit()

    with pytest.raises(ValidationFailureError):
        await run(WarehouseService.transfer_parcel, source.id, source.id, code)
    with pytest.raises(InvalidStateError):
        await run(WarehouseService.transfer_parcel, source.id, target.id, code)

    await run(WarehouseService.receive_parcel, source.id, code)
    with pytest.raises(InvalidStateError):
        await run(WarehouseService.transfer_parcel, source.id, closed.id, code)

    await run(WarehouseService.transfer_parcel, source.id, target.id, code)
    assert (await load(Parcel, code)).current_warehouse_id == target.id
    assert (await load(Warehouse, source.id)).parcels_count == 0
    assert (await load(Warehouse, target.id)).parcels_count == 1
