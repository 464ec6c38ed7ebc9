"""
Sea Container API Endpoints.
"""

from fastapi import APIRouter, Depends, status, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from cargo_backend.app.db.session import get_db, get_session_factory
from cargo_backend.app.db.unit_of_work import run_in_transaction
from cargo_backend.app.domain.containment.containers import ContainerService
from cargo_backend.app.schemas.containment import (
    ContainerCreate, ContainerResponse, UnitStatusUpdate, UnitEventResponse,
    ParcelTransferRequest, OrderTransferRequest, DispatchTransferRequest, BulkTransferResponse
)
from cargo_backend.app.schemas.parcel import ParcelResponse

router = APIRouter(prefix="/containers", tags=["Containers"])


@router.post("", response_model=ContainerResponse, status_code=status.HTTP_201_CREATED)
async def create_container(data: ContainerCreate, session_factory=Depends(get_session_factory)):
    container = await run_in_transaction(
        ContainerService.create,
        data.container_number,
        data.forwarder_id,
        container_name=data.container_name,
        actor_id=data.actor_id,
        session_factory=session_factory,
    )
    return ContainerResponse.model_validate(container)


@router.get("/{container_id}", response_model=ContainerResponse)
async def get_container(container_id: int = Path(..., description="Container ID"), db: AsyncSession = Depends(get_db)):
    return ContainerResponse.model_validate(await ContainerService.get(db, container_id))


@router.get("/{container_id}/events", response_model=List[UnitEventResponse])
async def list_container_events(
    container_id: int = Path(..., description="Container ID"),
    db: AsyncSession = Depends(get_db)
):
    events = await ContainerService.list_unit_events(db, container_id)
    return [UnitEventResponse.model_validate(e) for e in events]


@router.post("/{container_id}/parcels", response_model=ParcelResponse)
async def load_parcel(
    data: ParcelTransferRequest,
    container_id: int = Path(..., description="Container ID"),
    session_factory=Depends(get_session_factory)
):
    parcel = await run_in_transaction(
        ContainerService.add_parcel, container_id, data.tracking_code, actor_id=data.actor_id,
        session_factory=session_factory,
    )
    return ParcelResponse.model_validate(parcel)


@router.post("/{container_id}/orders", response_model=BulkTransferResponse)
async def load_order(
    data: OrderTransferRequest,
    container_id: int = Path(..., description="Container ID"),
    session_factory=Depends(get_session_factory)
):
    result = await run_in_transaction(
        ContainerService.add_parcels_by_order, container_id, data.order_id, actor_id=data.actor_id,
        session_factory=session_factory,
    )
    return BulkTransferResponse.model_validate(result)


@router.post("/{container_id}/dispatches", response_model=BulkTransferResponse)
async def load_dispatch(
    data: DispatchTransferRequest,
    container_id: int = Path(..., description="Container ID"),
    session_factory=Depends(get_session_factory)
):
    result = await run_in_transaction(
        ContainerService.add_parcels_by_dispatch, container_id, data.dispatch_id, actor_id=data.actor_id,
        session_factory=session_factory,
    )
    return BulkTransferResponse.model_validate(result)


@router.delete("/{container_id}/parcels/{tracking_code}", response_model=ParcelResponse)
async def unload_parcel(
    container_id: int = Path(..., description="Container ID"),
    tracking_code: str = Path(..., description="Tracking code"),
    actor_id: Optional[int] = Query(None),
    session_factory=Depends(get_session_factory)
):
    parcel = await run_in_transaction(
        ContainerService.remove_parcel, container_id, tracking_code, actor_id=actor_id,
        session_factory=session_factory,
    )
    return ParcelResponse.model_validate(parcel)


@router.post("/{container_id}/status", response_model=ContainerResponse)
async def update_container_status(
    data: UnitStatusUpdate,
    container_id: int = Path(..., description="Container ID"),
    session_factory=Depends(get_session_factory)
):
    """
    Advance the container and cascade the new status to every parcel on board.

    Retried as a whole on timeout, since the cascade can touch many rows.
    """
    container = await run_in_transaction(
        ContainerService.update_status,
        container_id,
        data.status,
        actor_id=data.actor_id,
        location=data.location,
        description=data.description,
        reference=data.reference,
        session_factory=session_factory,
        retries=1,
    )
    return ContainerResponse.model_validate(container)


@router.delete("/{container_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_container(
    container_id: int = Path(..., description="Container ID"),
    session_factory=Depends(get_session_factory)
):
    await run_in_transaction(ContainerService.delete, container_id, session_factory=session_factory)
