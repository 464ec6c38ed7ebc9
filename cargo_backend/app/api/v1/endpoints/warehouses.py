"""
Warehouse API Endpoints.

Custody of released parcels at the destination carrier.
"""

from fastapi import APIRouter, Depends, status, Path
from sqlalchemy.ext.asyncio import AsyncSession

from cargo_backend.app.db.session import get_db, get_session_factory
from cargo_backend.app.db.unit_of_work import run_in_transaction
from cargo_backend.app.domain.containment.warehouses import WarehouseService
from cargo_backend.app.schemas.containment import ParcelTransferRequest
from cargo_backend.app.schemas.delivery import WarehouseCreate, WarehouseResponse, WarehouseTransferRequest
from cargo_backend.app.schemas.parcel import ParcelResponse

router = APIRouter(prefix="/warehouses", tags=["Warehouses"])


@router.post("", response_model=WarehouseResponse, status_code=status.HTTP_201_CREATED)
async def create_warehouse(data: WarehouseCreate, session_factory=Depends(get_session_factory)):
    warehouse = await run_in_transaction(
        WarehouseService.create, data.name, data.carrier_id, session_factory=session_factory
    )
    return WarehouseResponse.model_validate(warehouse)


@router.get("/{warehouse_id}", response_model=WarehouseResponse)
async def get_warehouse(warehouse_id: int = Path(..., description="Warehouse ID"), db: AsyncSession = Depends(get_db)):
    return WarehouseResponse.model_validate(await WarehouseService.get(db, warehouse_id))


@router.post("/{warehouse_id}/parcels", response_model=ParcelResponse)
async def receive_parcel(
    data: ParcelTransferRequest,
    warehouse_id: int = Path(..., description="Warehouse ID"),
    session_factory=Depends(get_session_factory)
):
    parcel = await run_in_transaction(
        WarehouseService.receive_parcel, warehouse_id, data.tracking_code, actor_id=data.actor_id,
        session_factory=session_factory,
    )
    return ParcelResponse.model_validate(parcel)


@router.post("/{warehouse_id}/transfers", response_model=ParcelResponse)
async def transfer_parcel(
    data: WarehouseTransferRequest,
    warehouse_id: int = Path(..., description="Source warehouse ID"),
    session_factory=Depends(get_session_factory)
):
    parcel = await run_in_transaction(
        WarehouseService.transfer_parcel,
        warehouse_id,
        data.to_warehouse_id,
        data.tracking_code,
        actor_id=data.actor_id,
        session_factory=session_factory,
    )
    return ParcelResponse.model_validate(parcel)
