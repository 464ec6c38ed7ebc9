"""
Last-mile delivery tests: routes, direct courier assignments and attempts.
"""

import pytest
from datetime import date

from cargo_backend.app.core.exceptions import (
    ConflictError,
    InvalidStateError,
    ResourceNotFoundError,
    ValidationFailureError,
)
from cargo_backend.app.domain.containment.delivery import DeliveryService
from cargo_backend.app.domain.containment.warehouses import WarehouseService
from cargo_backend.app.models.delivery import DeliveryRoute, DeliveryAssignment
from cargo_backend.app.models.order import Order
from cargo_backend.app.models.parcel import Parcel
from cargo_backend.app.models.parcel_enums import ParcelStatus, ParcelEventType
from cargo_backend.app.models.unit_enums import RouteStatus, DeliveryStatus
from cargo_backend.app.models.warehouse import Warehouse
from cargo_backend.app.services.event_trail import get_parcel_history

CARRIER_ID = 7
DELIVERY_DAY = date(2024, 3, 20)


@pytest.fixture
def stocked_warehouse(make_order, force_parcel_state, run):
    """Warehouse of carrier 7 holding every parcel of a fresh order."""
    async def _build(weights=("1", "2")):
        order, parcels = await make_order(weights=list(weights))
        warehouse = await run(WarehouseService.create, "Central", CARRIER_ID)
        codes = []
        for parcel in parcels:
            await force_parcel_state(parcel.tracking_code, status=ParcelStatus.RELEASED_FROM_CUSTOMS)
            await run(WarehouseService.receive_parcel, warehouse.id, parcel.tracking_code)
            codes.append(parcel.tracking_code)
        return order, codes, warehouse
    return _build


@pytest.mark.asyncio
async def test_create_route(stocked_warehouse, run):
    _, _, warehouse = await stocked_warehouse(weights=("1",))

    route = await run(DeliveryService.create_route, CARRIER_ID, warehouse.id, DELIVERY_DAY)

    assert route.status == RouteStatus.PLANNING
    assert route.route_number.startswith(f"RT-{CARRIER_ID}-")
    assert route.route_number.endswith("-001")
    with pytest.raises(ResourceNotFoundError):
        await run(DeliveryService.create_route, CARRIER_ID, 99, DELIVERY_DAY)
    with pytest.raises(ValidationFailureError):
        await run(DeliveryService.create_route, 8, warehouse.id, DELIVERY_DAY)


@pytest.mark.asyncio
async def test_route_lifecycle(stocked_warehouse, run, load, db_session):
    order, codes, warehouse = await stocked_warehouse()
    route = await run(DeliveryService.create_route, CARRIER_ID, warehouse.id, DELIVERY_DAY)

    first = await run(DeliveryService.add_parcel_to_route, route.id, codes[0])
    second = await run(DeliveryService.add_parcel_to_route, route.id, codes[1])
    assert first.status == DeliveryStatus.PENDING
    assert (await load(DeliveryRoute, route.id)).parcels_count == 2
    assert (await load(Parcel, codes[0])).status == ParcelStatus.IN_WAREHOUSE

    with pytest.raises(ConflictError):
        await run(DeliveryService.add_parcel_to_route, route.id, codes[0])
    with pytest.raises(InvalidStateError):
        await run(DeliveryService.record_attempt, first.id, True, recipient_name="Ana")

    await run(DeliveryService.mark_ready, route.id)
    with pytest.raises(InvalidStateError):
        await run(DeliveryService.start_route, route.id)
    with pytest.raises(InvalidStateError):
        await run(DeliveryService.mark_ready, route.id)

    # A READY route still takes changes until it starts
    await run(DeliveryService.remove_parcel_from_route, route.id, codes[1])
    await run(DeliveryService.add_parcel_to_route, route.id, codes[1])

    route_row = await load(DeliveryRoute, route.id)
    assert route_row.status == RouteStatus.READY
    assert route_row.parcels_count == 2
    assignments = await DeliveryService.list_assignments(db_session, route.id)
    assert [a.parcel_id for a in assignments] == [first.parcel_id, second.parcel_id]


@pytest.mark.asyncio
async def test_deliver_whole_route(stocked_warehouse, run, load, db_session):
    order, codes, warehouse = await stocked_warehouse()
    route = await run(DeliveryService.create_route, CARRIER_ID, warehouse.id, DELIVERY_DAY)
    first = await run(DeliveryService.add_parcel_to_route, route.id, codes[0])
    second = await run(DeliveryService.add_parcel_to_route, route.id, codes[1])
    await run(DeliveryService.mark_ready, route.id, courier_id=11)

    started = await run(DeliveryService.start_route, route.id)
    assert started.status == RouteStatus.IN_PROGRESS
    assert started.started_at is not None
    for code in codes:
        assert (await load(Parcel, code)).status == ParcelStatus.OUT_FOR_DELIVERY
    assert (await load(DeliveryAssignment, first.id)).courier_id == 11
    assert (await load(Order, order.id)).status == ParcelStatus.OUT_FOR_DELIVERY

    with pytest.raises(ValidationFailureError):
        await run(DeliveryService.record_attempt, first.id, True)

    delivered = await run(
        DeliveryService.record_attempt, first.id, True,
        recipient_name="Ana Perez", recipient_id_number="X123", signature="sig",
    )
    assert delivered.status == DeliveryStatus.DELIVERED
    assert delivered.attempts == 1
    assert delivered.delivered_at is not None
    parcel = await load(Parcel, codes[0])
    assert parcel.status == ParcelStatus.DELIVERED
    assert parcel.current_warehouse_id is None
    assert (await load(Warehouse, warehouse.id)).parcels_count == 1
    assert (await load(DeliveryRoute, route.id)).status == RouteStatus.IN_PROGRESS
    assert (await load(Order, order.id)).status == ParcelStatus.PARTIALLY_DELIVERED

    await run(DeliveryService.record_attempt, second.id, True, recipient_name="Luis")
    finished = await load(DeliveryRoute, route.id)
    assert finished.status == RouteStatus.COMPLETED
    assert finished.completed_at is not None
    assert (await load(Order, order.id)).status == ParcelStatus.DELIVERED

    with pytest.raises(InvalidStateError):
        await run(DeliveryService.record_attempt, first.id, True, recipient_name="Ana Perez")

    history = await get_parcel_history(db_session, codes[0])
    assert [e.event_type for e in history][-3:] == [
        ParcelEventType.ASSIGNED_TO_ROUTE,
        ParcelEventType.OUT_FOR_DELIVERY,
        ParcelEventType.DELIVERED,
    ]
    assert history[-1].delivery_route_id == route.id


@pytest.mark.asyncio
async def test_failed_attempt_and_reschedule(stocked_warehouse, run, load):
    _, codes, warehouse = await stocked_warehouse(weights=("1",))
    route = await run(DeliveryService.create_route, CARRIER_ID, warehouse.id, DELIVERY_DAY, courier_id=11)
    assignment = await run(DeliveryService.add_parcel_to_route, route.id, codes[0])
    await run(DeliveryService.mark_ready, route.id)
    await run(DeliveryService.start_route, route.id)

    with pytest.raises(InvalidStateError):
        await run(DeliveryService.reschedule, assignment.id)

    failed = await run(DeliveryService.record_attempt, assignment.id, False, notes="Nobody home")
    assert failed.status == DeliveryStatus.FAILED
    assert (await load(Parcel, codes[0])).status == ParcelStatus.FAILED_DELIVERY

    rescheduled = await run(DeliveryService.reschedule, assignment.id, notes="Tomorrow morning")
    assert rescheduled.status == DeliveryStatus.RESCHEDULED
    assert rescheduled.notes == "Tomorrow morning"
    assert (await load(Parcel, codes[0])).status == ParcelStatus.OUT_FOR_DELIVERY

    delivered = await run(DeliveryService.record_attempt, assignment.id, True, recipient_name="Ana")
    assert delivered.attempts == 2
    assert (await load(Parcel, codes[0])).status == ParcelStatus.DELIVERED


@pytest.mark.asyncio
async def test_reschedule_reopens_completed_route(stocked_warehouse, run, load):
    _, codes, warehouse = await stocked_warehouse(weights=("1",))
    route = await run(DeliveryService.create_route, CARRIER_ID, warehouse.id, DELIVERY_DAY, courier_id=11)
    assignment = await run(DeliveryService.add_parcel_to_route, route.id, codes[0])
    await run(DeliveryService.mark_ready, route.id)
    await run(DeliveryService.start_route, route.id)

    await run(DeliveryService.record_attempt, assignment.id, False, notes="Nobody home")
    closed = await load(DeliveryRoute, route.id)
    assert closed.status == RouteStatus.COMPLETED
    assert closed.completed_at is not None

    await run(DeliveryService.reschedule, assignment.id)
    reopened = await load(DeliveryRoute, route.id)
    assert reopened.status == RouteStatus.IN_PROGRESS
    assert reopened.completed_at is None

    await run(DeliveryService.record_attempt, assignment.id, True, recipient_name="Ana")
    finished = await load(DeliveryRoute, route.id)
    assert finished.status == RouteStatus.COMPLETED
    assert finished.completed_at is not None


@pytest.mark.asyncio
async def test_remove_parcel_from_route(stocked_warehouse, run, load, db_session):
    _, codes, warehouse = await stocked_warehouse(weights=("1",))
    route = await run(DeliveryService.create_route, CARRIER_ID, warehouse.id, DELIVERY_DAY)
    await run(DeliveryService.add_parcel_to_route, route.id, codes[0])

    await run(DeliveryService.remove_parcel_from_route, route.id, codes[0])

    assert (await load(DeliveryRoute, route.id)).parcels_count == 0
    assert await DeliveryService.list_assignments(db_session, route.id) == []
    assert (await load(Parcel, codes[0])).status == ParcelStatus.IN_WAREHOUSE
    with pytest.raises(InvalidStateError):
        await run(DeliveryService.remove_parcel_from_route, route.id, codes[0])
    with pytest.raises(InvalidStateError):
        await run(DeliveryService.mark_ready, route.id)
    with pytest.raises(InvalidStateError):
        await run(DeliveryService.delete_route, route.id)

    other = await run(DeliveryService.create_route, CARRIER_ID, warehouse.id, DELIVERY_DAY)
    await run(DeliveryService.add_parcel_to_route, other.id, codes[0])


@pytest.mark.asyncio
async def test_delete_empty_route(stocked_warehouse, run, load):
    _, _, warehouse = await stocked_warehouse(weights=("1",))
    route = await run(DeliveryService.create_route, CARRIER_ID, warehouse.id, DELIVERY_DAY)

    await run(DeliveryService.delete_route, route.id)

    assert await load(DeliveryRoute, route.id) is None


@pytest.mark.asyncio
async def test_direct_courier_assignment(stocked_warehouse, run, load):
    _, codes, warehouse = await stocked_warehouse(weights=("1",))

    assignment = await run(DeliveryService.assign_to_courier, codes[0], 21)
    assert assignment.route_id is None
    assert assignment.courier_id == 21

    route = await run(DeliveryService.create_route, CARRIER_ID, warehouse.id, DELIVERY_DAY)
    with pytest.raises(ConflictError):
        await run(DeliveryService.add_parcel_to_route, route.id, codes[0])

    await run(DeliveryService.record_attempt, assignment.id, True, recipient_name="Ana")
    assert (await load(Parcel, codes[0])).status == ParcelStatus.DELIVERED


@pytest.mark.asyncio
async def test_undeliverable_parcel(make_order, run):
    _, parcels = await make_order()

    with pytest.raises(InvalidStateError):
        await run(DeliveryService.assign_to_courier, parcels[0].tracking_code, 21)
    with pytest.raises(ResourceNotFoundError):
        await run(DeliveryService.record_attempt, 404, False)
