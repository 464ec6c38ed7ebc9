"""
Pallet API Endpoints.
"""

from fastapi import APIRouter, Depends, status, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from cargo_backend.app.db.session import get_db, get_session_factory
from cargo_backend.app.db.unit_of_work import run_in_transaction
from cargo_backend.app.domain.containment.pallets import PalletService
from cargo_backend.app.schemas.containment import (
    PalletCreate, PalletResponse, ParcelTransferRequest, OrderTransferRequest, BulkTransferResponse
)
from cargo_backend.app.schemas.parcel import ActorRequest, ParcelResponse

router = APIRouter(prefix="/pallets", tags=["Pallets"])


@router.post("", response_model=PalletResponse, status_code=status.HTTP_201_CREATED)
async def create_pallet(data: PalletCreate, session_factory=Depends(get_session_factory)):
    pallet = await run_in_transaction(
        PalletService.create, data.agency_id, actor_id=data.actor_id, session_factory=session_factory
    )
    return PalletResponse.model_validate(pallet)


@router.get("/{pallet_id}", response_model=PalletResponse)
async def get_pallet(pallet_id: int = Path(..., description="Pallet ID"), db: AsyncSession = Depends(get_db)):
    return PalletResponse.model_validate(await PalletService.get(db, pallet_id))


@router.post("/{pallet_id}/parcels", response_model=ParcelResponse)
async def add_parcel(
    data: ParcelTransferRequest,
    pallet_id: int = Path(..., description="Pallet ID"),
    session_factory=Depends(get_session_factory)
):
    parcel = await run_in_transaction(
        PalletService.add_parcel, pallet_id, data.tracking_code, actor_id=data.actor_id,
        session_factory=session_factory,
    )
    return ParcelResponse.model_validate(parcel)


@router.post("/{pallet_id}/orders", response_model=BulkTransferResponse)
async def add_order(
    data: OrderTransferRequest,
    pallet_id: int = Path(..., description="Pallet ID"),
    session_factory=Depends(get_session_factory)
):
    """Add every eligible parcel of an order; ineligible parcels are skipped and reported."""
    result = await run_in_transaction(
        PalletService.add_parcels_by_order, pallet_id, data.order_id, actor_id=data.actor_id,
        session_factory=session_factory,
    )
    return BulkTransferResponse.model_validate(result)


@router.delete("/{pallet_id}/parcels/{tracking_code}", response_model=ParcelResponse)
async def remove_parcel(
    pallet_id: int = Path(..., description="Pallet ID"),
    tracking_code: str = Path(..., description="Tracking code"),
    actor_id: Optional[int] = Query(None),
    session_factory=Depends(get_session_factory)
):
    parcel = await run_in_transaction(
        PalletService.remove_parcel, pallet_id, tracking_code, actor_id=actor_id, session_factory=session_factory
    )
    return ParcelResponse.model_validate(parcel)


@router.post("/{pallet_id}/seal", response_model=PalletResponse)
async def seal_pallet(
    data: ActorRequest,
    pallet_id: int = Path(..., description="Pallet ID"),
    session_factory=Depends(get_session_factory)
):
    pallet = await run_in_transaction(
        PalletService.seal, pallet_id, actor_id=data.actor_id, session_factory=session_factory
    )
    return PalletResponse.model_validate(pallet)


@router.post("/{pallet_id}/unseal", response_model=PalletResponse)
async def unseal_pallet(
    data: ActorRequest,
    pallet_id: int = Path(..., description="Pallet ID"),
    session_factory=Depends(get_session_factory)
):
    pallet = await run_in_transaction(
        PalletService.unseal, pallet_id, actor_id=data.actor_id, session_factory=session_factory
    )
    return PalletResponse.model_validate(pallet)


@router.delete("/{pallet_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_pallet(pallet_id: int = Path(..., description="Pallet ID"), session_factory=Depends(get_session_factory)):
    await run_in_transaction(PalletService.delete, pallet_id, session_factory=session_factory)
