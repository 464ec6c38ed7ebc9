"""
Container and flight tests: loading, status cascade and unit events.
"""

import asyncio
import pytest
from decimal import Decimal
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool

from cargo_backend.app.core.exceptions import (
    ConflictError,
    InvalidStateError,
    ValidationFailureError,
)
from cargo_backend.app.db.session import Base
from cargo_backend.app.db.unit_of_work import run_in_transaction
from cargo_backend.app.domain.containment.containers import ContainerService
from cargo_backend.app.domain.containment.dispatches import DispatchService
from cargo_backend.app.domain.containment.flights import FlightService
from cargo_backend.app.models.container import Container
from cargo_backend.app.models.enums import ServiceType
from cargo_backend.app.models.flight import Flight
from cargo_backend.app.models.order import Order
from cargo_backend.app.models.parcel import Parcel
from cargo_backend.app.models.parcel_enums import ParcelStatus, ParcelEventType
from cargo_backend.app.models.service import Service
from cargo_backend.app.models.unit_enums import ContainerStatus, FlightStatus
from cargo_backend.app.services.event_trail import get_parcel_history
from cargo_backend.app.services.intake import IntakeService, ParcelItem
from cargo_backend.tests.conftest import AIR_SERVICE_ID, MARITIME_SERVICE_ID


@pytest.mark.asyncio
async def test_container_weight_follows_contents(make_order, run, load, force_parcel_state):
    _, parcels = await make_order(weights=["20"])
    code = parcels[0].tracking_code
    await force_parcel_state(code, status=ParcelStatus.IN_WAREHOUSE)
    container = await run(ContainerService.create, "C1", 4)
    assert container.status == ContainerStatus.PENDING
    assert container.total_weight_kg == Decimal("0")

    await run(ContainerService.add_parcel, container.id, code)

    stored = await load(Container, container.id)
    assert stored.status == ContainerStatus.LOADING
    assert stored.total_weight_kg == Decimal("20.00")
    assert (await load(Parcel, code)).status == ParcelStatus.IN_CONTAINER

    await run(ContainerService.remove_parcel, container.id, code)

    stored = await load(Container, container.id)
    assert stored.status == ContainerStatus.LOADING
    assert stored.total_weight_kg == Decimal("0")
    assert stored.parcels_count == 0
    parcel = await load(Parcel, code)
    assert parcel.status == ParcelStatus.IN_WAREHOUSE
    assert parcel.container_id is None


@pytest.mark.asyncio
async def test_concurrent_adds_keep_container_totals(tmp_path):
    """Ten concurrent transactions, each on its own connection, load one container."""
    file_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'containers.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with file_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    try:
        async with factory() as session:
            session.add(Service(id=MARITIME_SERVICE_ID, name="Sea freight", service_type=ServiceType.MARITIME))
            await session.commit()

        items = [ParcelItem(description=f"Box {n}", weight_kg=Decimal(n), service_id=MARITIME_SERVICE_ID)
                 for n in range(1, 11)]
        order = await run_in_transaction(IntakeService.create_order, 1, items, session_factory=factory)
        container = await run_in_transaction(ContainerService.create, "C1", 4, session_factory=factory)
        async with factory() as session:
            codes = (await session.execute(
                select(Parcel.tracking_code).where(Parcel.order_id == order.id)
            )).scalars().all()

        await asyncio.gather(*[
            run_in_transaction(ContainerService.add_parcel, container.id, code, session_factory=factory)
            for code in codes
        ])

        async with factory() as session:
            stored = await session.get(Container, container.id)
            held = (await session.execute(
                select(Parcel.id).where(Parcel.container_id == container.id)
            )).scalars().all()
    finally:
        await file_engine.dispose()

    assert len(held) == 10
    assert stored.parcels_count == 10
    assert stored.total_weight_kg == Decimal("55.00")


@pytest.mark.asyncio
async def test_container_name_in_status_details(make_order, run, load):
    order, parcels = await make_order()
    container = await run(ContainerService.create, "MSCU1234567", 4, container_name="Blue Star")

    await run(ContainerService.add_parcel, container.id, parcels[0].tracking_code)

    assert (await load(Parcel, parcels[0].tracking_code)).status_details == "In Container Blue Star"
    assert (await load(Order, order.id)).status_details == "1 in Container Blue Star"


@pytest.mark.asyncio
async def test_container_takes_maritime_parcels_only(make_order, run):
    _, parcels = await make_order(service_id=AIR_SERVICE_ID)
    container = await run(ContainerService.create, "C1", 4)

    with pytest.raises(ValidationFailureError):
        await run(ContainerService.add_parcel, container.id, parcels[0].tracking_code)


@pytest.mark.asyncio
async def test_duplicate_container_number(run):
    await run(ContainerService.create, "C1", 4)
    with pytest.raises(ConflictError):
        await run(ContainerService.create, "C1", 5)


@pytest.mark.asyncio
async def test_status_cascade_to_parcels(make_order, run, load, db_session):
    order, parcels = await make_order(weights=["1", "2"])
    container = await run(ContainerService.create, "C1", 4)
    await run(ContainerService.add_parcels_by_order, container.id, order.id)

    departed = await run(ContainerService.update_status, container.id, ContainerStatus.DEPARTED, location="Miami")
    assert departed.actual_departure is not None
    for parcel in parcels:
        assert (await load(Parcel, parcel.tracking_code)).status == ParcelStatus.IN_TRANSIT
    assert (await load(Order, order.id)).status == ParcelStatus.IN_TRANSIT

    arrived = await run(ContainerService.update_status, container.id, "AT_PORT")
    assert arrived.actual_arrival is not None
    await run(ContainerService.update_status, container.id, ContainerStatus.CUSTOMS_HOLD, description="X-ray")
    for parcel in parcels:
        assert (await load(Parcel, parcel.tracking_code)).status == ParcelStatus.CUSTOMS_INSPECTION

    await run(ContainerService.update_status, container.id, ContainerStatus.CUSTOMS_CLEARED)
    assert (await load(Order, order.id)).status == ParcelStatus.RELEASED_FROM_CUSTOMS

    history = await get_parcel_history(db_session, parcels[0].tracking_code)
    assert [e.event_type for e in history] == [
        ParcelEventType.BILLED,
        ParcelEventType.LOADED_TO_CONTAINER,
        ParcelEventType.IN_TRANSIT,
        ParcelEventType.ARRIVED_DESTINATION,
        ParcelEventType.CUSTOMS_PROCESSING,
        ParcelEventType.CUSTOMS_RELEASED,
    ]
    assert all(e.container_id == container.id for e in history[1:])

    events = await ContainerService.list_unit_events(db_session, container.id)
    assert [e.status for e in events] == ["PENDING", "DEPARTED", "AT_PORT", "CUSTOMS_HOLD", "CUSTOMS_CLEARED"]
    assert events[1].location == "Miami"
    assert events[3].description == "X-ray"


@pytest.mark.asyncio
async def test_invalid_transitions(make_order, run, load):
    container = await run(ContainerService.create, "C1", 4)

    with pytest.raises(InvalidStateError):
        await run(ContainerService.update_status, container.id, ContainerStatus.DEPARTED)
    with pytest.raises(ValidationFailureError):
        await run(ContainerService.update_status, container.id, "FLOATING")

    await run(ContainerService.update_status, container.id, ContainerStatus.LOADING)
    with pytest.raises(InvalidStateError):
        await run(ContainerService.update_status, container.id, ContainerStatus.DEPARTED)

    assert (await load(Container, container.id)).status == ContainerStatus.LOADING


@pytest.mark.asyncio
async def test_no_changes_after_departure(make_order, run):
    _, parcels = await make_order(weights=["1", "1"])
    container = await run(ContainerService.create, "C1", 4)
    await run(ContainerService.add_parcel, container.id, parcels[0].tracking_code)
    await run(ContainerService.update_status, container.id, ContainerStatus.DEPARTED)

    with pytest.raises(InvalidStateError):
        await run(ContainerService.add_parcel, container.id, parcels[1].tracking_code)
    with pytest.raises(InvalidStateError):
        await run(ContainerService.remove_parcel, container.id, parcels[0].tracking_code)


@pytest.mark.asyncio
async def test_load_by_dispatch_takes_released_parcels(make_order, run, load):
    order, parcels = await make_order(weights=["1", "2"])
    dispatch = await run(DispatchService.create, 1)
    await run(DispatchService.add_parcels_by_order, dispatch.id, order.id)
    await run(DispatchService.dispatch, dispatch.id, 2)
    await run(DispatchService.receive_parcel, dispatch.id, parcels[0].tracking_code)
    container = await run(ContainerService.create, "C1", 4)

    result = await run(ContainerService.add_parcels_by_dispatch, container.id, dispatch.id)

    assert result.added == 1
    assert result.skipped == 1
    assert result.skipped_reasons[0]["tracking_code"] == parcels[1].tracking_code
    assert (await load(Parcel, parcels[0].tracking_code)).container_id == container.id
    assert (await load(Parcel, parcels[1].tracking_code)).dispatch_id == dispatch.id


@pytest.mark.asyncio
async def test_delete_container(run, load):
    container = await run(ContainerService.create, "C1", 4)
    await run(ContainerService.delete, container.id)
    assert await load(Container, container.id) is None


@pytest.mark.asyncio
async def test_flight_lifecycle(make_order, run, load, db_session):
    order, parcels = await make_order(service_id=AIR_SERVICE_ID, weights=["3"])
    code = parcels[0].tracking_code
    flight = await run(FlightService.create, "AWB-001", 4, flight_number="CM 401")

    await run(FlightService.add_parcel, flight.id, code)
    parcel = await load(Parcel, code)
    assert parcel.status == ParcelStatus.IN_TRANSIT
    assert parcel.status_details == f"In Flight #{flight.id}"
    assert (await load(Flight, flight.id)).status == FlightStatus.LOADING

    await run(FlightService.update_status, flight.id, FlightStatus.DEPARTED)
    landed = await run(FlightService.update_status, flight.id, FlightStatus.LANDED)
    assert landed.actual_arrival is not None
    assert (await load(Parcel, code)).status == ParcelStatus.AT_PORT_OF_ENTRY

    with pytest.raises(InvalidStateError):
        await run(FlightService.update_status, flight.id, FlightStatus.UNLOADING)

    history = await get_parcel_history(db_session, code)
    assert [e.event_type for e in history][-3:] == [
        ParcelEventType.LOADED_TO_FLIGHT,
        ParcelEventType.IN_TRANSIT,
        ParcelEventType.ARRIVED_DESTINATION,
    ]


@pytest.mark.asyncio
async def test_flight_takes_air_parcels_only(make_order, run):
    _, parcels = await make_order()
    flight = await run(FlightService.create, "AWB-001", 4)

    with pytest.raises(ValidationFailureError):
        await run(FlightService.add_parcel, flight.id, parcels[0].tracking_code)
