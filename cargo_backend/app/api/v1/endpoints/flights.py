"""
Air Cargo Flight API Endpoints.
"""

from fastapi import APIRouter, Depends, status, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from cargo_backend.app.db.session import get_db, get_session_factory
from cargo_backend.app.db.unit_of_work import run_in_transaction
from cargo_backend.app.domain.containment.flights import FlightService
from cargo_backend.app.schemas.containment import (
    FlightCreate, FlightResponse, UnitStatusUpdate, UnitEventResponse,
    ParcelTransferRequest, OrderTransferRequest, DispatchTransferRequest, BulkTransferResponse
)
from cargo_backend.app.schemas.parcel import ParcelResponse

router = APIRouter(prefix="/flights", tags=["Flights"])


@router.post("", response_model=FlightResponse, status_code=status.HTTP_201_CREATED)
async def create_flight(data: FlightCreate, session_factory=Depends(get_session_factory)):
    flight = await run_in_transaction(
        FlightService.create,
        data.awb_number,
        data.forwarder_id,
        flight_number=data.flight_number,
        actor_id=data.actor_id,
        session_factory=session_factory,
    )
    return FlightResponse.model_validate(flight)


@router.get("/{flight_id}", response_model=FlightResponse)
async def get_flight(flight_id: int = Path(..., description="Flight ID"), db: AsyncSession = Depends(get_db)):
    return FlightResponse.model_validate(await FlightService.get(db, flight_id))


@router.get("/{flight_id}/events", response_model=List[UnitEventResponse])
async def list_flight_events(flight_id: int = Path(..., description="Flight ID"), db: AsyncSession = Depends(get_db)):
    events = await FlightService.list_unit_events(db, flight_id)
    return [UnitEventResponse.model_validate(e) for e in events]


@router.post("/{flight_id}/parcels", response_model=ParcelResponse)
async def load_parcel(
    data: ParcelTransferRequest,
    flight_id: int = Path(..., description="Flight ID"),
    session_factory=Depends(get_session_factory)
):
    parcel = await run_in_transaction(
        FlightService.add_parcel, flight_id, data.tracking_code, actor_id=data.actor_id,
        session_factory=session_factory,
    )
    return ParcelResponse.model_validate(parcel)


@router.post("/{flight_id}/orders", response_model=BulkTransferResponse)
async def load_order(
    data: OrderTransferRequest,
    flight_id: int = Path(..., description="Flight ID"),
    session_factory=Depends(get_session_factory)
):
    result = await run_in_transaction(
        FlightService.add_parcels_by_order, flight_id, data.order_id, actor_id=data.actor_id,
        session_factory=session_factory,
    )
    return BulkTransferResponse.model_validate(result)


@router.post("/{flight_id}/dispatches", response_model=BulkTransferResponse)
async def load_dispatch(
    data: DispatchTransferRequest,
    flight_id: int = Path(..., description="Flight ID"),
    session_factory=Depends(get_session_factory)
):
    result = await run_in_transaction(
        FlightService.add_parcels_by_dispatch, flight_id, data.dispatch_id, actor_id=data.actor_id,
        session_factory=session_factory,
    )
    return BulkTransferResponse.model_validate(result)


@router.delete("/{flight_id}/parcels/{tracking_code}", response_model=ParcelResponse)
async def unload_parcel(
    flight_id: int = Path(..., description="Flight ID"),
    tracking_code: str = Path(..., description="Tracking code"),
    actor_id: Optional[int] = Query(None),
    session_factory=Depends(get_session_factory)
):
    parcel = await run_in_transaction(
        FlightService.remove_parcel, flight_id, tracking_code, actor_id=actor_id, session_factory=session_factory
    )
    return ParcelResponse.model_validate(parcel)


@router.post("/{flight_id}/status", response_model=FlightResponse)
async def update_flight_status(
    data: UnitStatusUpdate,
    flight_id: int = Path(..., description="Flight ID"),
    session_factory=Depends(get_session_factory)
):
    flight = await run_in_transaction(
        FlightService.update_status,
        flight_id,
        data.status,
        actor_id=data.actor_id,
        location=data.location,
        description=data.description,
        reference=data.reference,
        session_factory=session_factory,
        retries=1,
    )
    return FlightResponse.model_validate(flight)


@router.delete("/{flight_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_flight(flight_id: int = Path(..., description="Flight ID"), session_factory=Depends(get_session_factory)):
    await run_in_transaction(FlightService.delete, flight_id, session_factory=session_factory)
