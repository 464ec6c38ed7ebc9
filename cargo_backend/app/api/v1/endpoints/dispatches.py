"""
Dispatch API Endpoints.

Loading at the sender agency, sending, and reception at the receiver.
"""

from fastapi import APIRouter, Depends, status, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from cargo_backend.app.db.session import get_db, get_session_factory
from cargo_backend.app.db.unit_of_work import run_in_transaction
from cargo_backend.app.domain.containment.dispatches import DispatchService
from cargo_backend.app.schemas.containment import (
    DispatchCreate, DispatchSend, DispatchResponse,
    ParcelTransferRequest, OrderTransferRequest, PalletTransferRequest, BulkTransferResponse
)
from cargo_backend.app.schemas.parcel import ActorRequest, ParcelResponse

router = APIRouter(prefix="/dispatches", tags=["Dispatches"])


@router.post("", response_model=DispatchResponse, status_code=status.HTTP_201_CREATED)
async def create_dispatch(data: DispatchCreate, session_factory=Depends(get_session_factory)):
    dispatch = await run_in_transaction(
        DispatchService.create, data.sender_agency_id, actor_id=data.actor_id, session_factory=session_factory
    )
    return DispatchResponse.model_validate(dispatch)


@router.get("/{dispatch_id}", response_model=DispatchResponse)
async def get_dispatch(dispatch_id: int = Path(..., description="Dispatch ID"), db: AsyncSession = Depends(get_db)):
    return DispatchResponse.model_validate(await DispatchService.get(db, dispatch_id))


@router.post("/{dispatch_id}/parcels", response_model=ParcelResponse)
async def add_parcel(
    data: ParcelTransferRequest,
    dispatch_id: int = Path(..., description="Dispatch ID"),
    session_factory=Depends(get_session_factory)
):
    parcel = await run_in_transaction(
        DispatchService.add_parcel, dispatch_id, data.tracking_code, actor_id=data.actor_id,
        session_factory=session_factory,
    )
    return ParcelResponse.model_validate(parcel)


@router.post("/{dispatch_id}/orders", response_model=BulkTransferResponse)
async def add_order(
    data: OrderTransferRequest,
    dispatch_id: int = Path(..., description="Dispatch ID"),
    session_factory=Depends(get_session_factory)
):
    result = await run_in_transaction(
        DispatchService.add_parcels_by_order, dispatch_id, data.order_id, actor_id=data.actor_id,
        session_factory=session_factory,
    )
    return BulkTransferResponse.model_validate(result)


@router.post("/{dispatch_id}/pallets", response_model=BulkTransferResponse)
async def add_pallet(
    data: PalletTransferRequest,
    dispatch_id: int = Path(..., description="Dispatch ID"),
    session_factory=Depends(get_session_factory)
):
    """Load a sealed pallet with all its parcels."""
    result = await run_in_transaction(
        DispatchService.add_pallet, dispatch_id, data.pallet_id, actor_id=data.actor_id,
        session_factory=session_factory,
    )
    return BulkTransferResponse.model_validate(result)


@router.delete("/{dispatch_id}/parcels/{tracking_code}", response_model=ParcelResponse)
async def remove_parcel(
    dispatch_id: int = Path(..., description="Dispatch ID"),
    tracking_code: str = Path(..., description="Tracking code"),
    actor_id: Optional[int] = Query(None),
    session_factory=Depends(get_session_factory)
):
    parcel = await run_in_transaction(
        DispatchService.remove_parcel, dispatch_id, tracking_code, actor_id=actor_id,
        session_factory=session_factory,
    )
    return ParcelResponse.model_validate(parcel)


@router.post("/{dispatch_id}/send", response_model=DispatchResponse)
async def send_dispatch(
    data: DispatchSend,
    dispatch_id: int = Path(..., description="Dispatch ID"),
    session_factory=Depends(get_session_factory)
):
    dispatch = await run_in_transaction(
        DispatchService.dispatch, dispatch_id, data.receiver_agency_id, actor_id=data.actor_id,
        session_factory=session_factory,
    )
    return DispatchResponse.model_validate(dispatch)


@router.post("/{dispatch_id}/receive", response_model=ParcelResponse)
async def receive_parcel(
    data: ParcelTransferRequest,
    dispatch_id: int = Path(..., description="Dispatch ID"),
    session_factory=Depends(get_session_factory)
):
    """Scan a parcel in at the receiving agency."""
    parcel = await run_in_transaction(
        DispatchService.receive_parcel, dispatch_id, data.tracking_code, actor_id=data.actor_id,
        session_factory=session_factory,
    )
    return ParcelResponse.model_validate(parcel)


@router.post("/{dispatch_id}/finish-reception", response_model=DispatchResponse)
async def finish_reception(
    data: ActorRequest,
    dispatch_id: int = Path(..., description="Dispatch ID"),
    session_factory=Depends(get_session_factory)
):
    dispatch = await run_in_transaction(
        DispatchService.finish_reception, dispatch_id, actor_id=data.actor_id, session_factory=session_factory
    )
    return DispatchResponse.model_validate(dispatch)


@router.delete("/{dispatch_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_dispatch(
    dispatch_id: int = Path(..., description="Dispatch ID"),
    session_factory=Depends(get_session_factory)
):
    await run_in_transaction(DispatchService.delete, dispatch_id, session_factory=session_factory)
