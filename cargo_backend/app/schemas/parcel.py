"""
Order and parcel Pydantic schemas.

Defines request and response models for intake and parcel tracking.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Literal
from cargo_backend.app.models.enums import ServiceType
from cargo_backend.app.models.parcel_enums import ParcelStatus, ParcelEventType


class ParcelLineItem(BaseModel):
    """One parcel of a new order."""
    description: Optional[str] = Field(None, max_length=500, description="Parcel description")
    weight_kg: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2, description="Weight in kilograms")
    service_id: int = Field(..., description="Shipping service")


class OrderCreate(BaseModel):
    """Schema for creating an order with its parcels."""
    agency_id: int = Field(..., description="Origin agency")
    items: List[ParcelLineItem] = Field(..., min_length=1)
    code_scheme: Literal["sequence", "order"] = Field("sequence", description="Tracking code scheme")
    actor_id: Optional[int] = Field(None, description="Acting user")


class ActorRequest(BaseModel):
    """Body for operations that only record who performed them."""
    actor_id: Optional[int] = None


class ParcelResponse(BaseModel):
    """Schema for parcel response."""
    id: int
    tracking_code: str
    description: Optional[str]
    weight_kg: Decimal
    order_id: Optional[int]
    agency_id: int
    service_id: int
    service_type: ServiceType
    status: ParcelStatus
    status_details: Optional[str]
    pallet_id: Optional[int]
    dispatch_id: Optional[int]
    container_id: Optional[int]
    flight_id: Optional[int]
    current_agency_id: Optional[int]
    current_warehouse_id: Optional[int]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    """Schema for order response."""
    id: int
    agency_id: int
    created_by_id: Optional[int]
    status: ParcelStatus
    status_details: Optional[str]
    deleted_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class OrderDetailResponse(OrderResponse):
    parcels: List[ParcelResponse] = []


class ParcelEventResponse(BaseModel):
    """Internal event trail entry."""
    id: int
    parcel_id: int
    event_type: ParcelEventType
    status: ParcelStatus
    status_details: Optional[str]
    note: Optional[str]
    actor_id: Optional[int]
    pallet_id: Optional[int]
    dispatch_id: Optional[int]
    container_id: Optional[int]
    flight_id: Optional[int]
    warehouse_id: Optional[int]
    delivery_route_id: Optional[int]
    created_at: datetime

    class Config:
        from_attributes = True


class PublicTrackingEvent(BaseModel):
    event_type: ParcelEventType
    status: ParcelStatus
    message: str
    created_at: datetime


class PublicTrackingResponse(BaseModel):
    """Customer-facing timeline."""
    tracking_code: str
    events: List[PublicTrackingEvent]
