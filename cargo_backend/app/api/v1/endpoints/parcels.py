"""
Parcel Tracking API Endpoints.

Internal parcel detail and event history, plus the public customer timeline.
"""

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from cargo_backend.app.db.session import get_db
from cargo_backend.app.schemas.parcel import (
    ParcelResponse, ParcelEventResponse, PublicTrackingEvent, PublicTrackingResponse
)
from cargo_backend.app.services.event_trail import get_parcel_history, get_public_history
from cargo_backend.app.services.hbl import parse_hbl
from cargo_backend.app.services.intake import IntakeService

router = APIRouter(prefix="/parcels", tags=["Parcels"])
public_router = APIRouter(prefix="/tracking", tags=["Public Tracking"])


@router.get("/{tracking_code}", response_model=ParcelResponse)
async def get_parcel(
    tracking_code: str = Path(..., description="Tracking code"),
    db: AsyncSession = Depends(get_db)
):
    parcel = await IntakeService.get_parcel(db, tracking_code)
    return ParcelResponse.model_validate(parcel)


@router.get("/{tracking_code}/events", response_model=List[ParcelEventResponse])
async def list_parcel_events(
    tracking_code: str = Path(..., description="Tracking code"),
    db: AsyncSession = Depends(get_db)
):
    """Full internal history, oldest first."""
    events = await get_parcel_history(db, tracking_code)
    return [ParcelEventResponse.model_validate(e) for e in events]


@public_router.get("/{tracking_code}", response_model=PublicTrackingResponse)
async def track_parcel(
    tracking_code: str = Path(..., description="Tracking code"),
    db: AsyncSession = Depends(get_db)
):
    """
    Public tracking timeline.

    Only customer-visible events are returned, each with a fixed message.
    """
    timeline = await get_public_history(db, tracking_code)
    return PublicTrackingResponse(
        tracking_code=tracking_code,
        events=[PublicTrackingEvent(**entry) for entry in timeline],
    )


@public_router.get("/codes/{code}")
async def decode_tracking_code(code: str = Path(..., description="Order/item tracking code")):
    """Split a deterministic order/item code into provider, period, order and item."""
    parsed = parse_hbl(code)
    return {
        "provider": parsed.provider,
        "year": parsed.year,
        "month": parsed.month,
        "order_id": parsed.order_id,
        "item_no": parsed.item_no,
        "version": parsed.version,
    }
