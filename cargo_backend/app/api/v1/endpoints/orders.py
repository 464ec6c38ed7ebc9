"""
Order Intake API Endpoints.

Orders are created together with their parcels at the origin agency.
"""

from fastapi import APIRouter, Depends, status, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from cargo_backend.app.db.session import get_db, get_session_factory
from cargo_backend.app.db.unit_of_work import run_in_transaction
from cargo_backend.app.schemas.parcel import OrderCreate, OrderResponse, OrderDetailResponse, ParcelResponse
from cargo_backend.app.services.intake import IntakeService, ParcelItem

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("", response_model=OrderDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    order_data: OrderCreate,
    session_factory=Depends(get_session_factory),
    db: AsyncSession = Depends(get_db)
):
    """
    Create an order and its parcels.

    Every parcel gets a tracking code, starts IN_AGENCY and gets a BILLED event.
    """
    items = [
        ParcelItem(description=item.description, weight_kg=item.weight_kg, service_id=item.service_id)
        for item in order_data.items
    ]
    order = await run_in_transaction(
        IntakeService.create_order,
        order_data.agency_id,
        items,
        actor_id=order_data.actor_id,
        code_scheme=order_data.code_scheme,
        session_factory=session_factory,
    )
    parcels = await IntakeService.list_parcels(db, order.id)
    return OrderDetailResponse(
        **OrderResponse.model_validate(order).model_dump(),
        parcels=[ParcelResponse.model_validate(p) for p in parcels],
    )


@router.get("/{order_id}", response_model=OrderDetailResponse)
async def get_order(
    order_id: int = Path(..., description="Order ID"),
    db: AsyncSession = Depends(get_db)
):
    order = await IntakeService.get_order(db, order_id)
    parcels = await IntakeService.list_parcels(db, order_id)
    return OrderDetailResponse(
        **OrderResponse.model_validate(order).model_dump(),
        parcels=[ParcelResponse.model_validate(p) for p in parcels],
    )


@router.delete("/{order_id}", response_model=OrderResponse)
async def delete_order(
    order_id: int = Path(..., description="Order ID"),
    actor_id: Optional[int] = Query(None, description="Acting user"),
    session_factory=Depends(get_session_factory)
):
    """Soft-delete an order whose parcels are all still unattached."""
    order = await run_in_transaction(
        IntakeService.soft_delete_order, order_id, actor_id=actor_id, session_factory=session_factory
    )
    return OrderResponse.model_validate(order)
