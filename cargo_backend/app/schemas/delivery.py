"""
Warehouse and last-mile delivery schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional
from cargo_backend.app.models.unit_enums import RouteStatus, DeliveryStatus


class WarehouseCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    carrier_id: int


class WarehouseResponse(BaseModel):
    id: int
    name: str
    carrier_id: int
    is_active: bool
    parcels_count: int
    created_at: datetime

    class Config:
        from_attributes = True


class WarehouseTransferRequest(BaseModel):
    tracking_code: str = Field(..., min_length=1, max_length=32)
    to_warehouse_id: int
    actor_id: Optional[int] = None


class RouteCreate(BaseModel):
    carrier_id: int
    warehouse_id: int
    scheduled_date: date
    courier_id: Optional[int] = None
    actor_id: Optional[int] = None


class RouteReady(BaseModel):
    courier_id: Optional[int] = None
    actor_id: Optional[int] = None


class RouteResponse(BaseModel):
    id: int
    route_number: str
    carrier_id: int
    warehouse_id: int
    courier_id: Optional[int]
    scheduled_date: date
    status: RouteStatus
    parcels_count: int
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class CourierAssignment(BaseModel):
    """Direct assignment of a parcel to a courier, outside any route."""
    tracking_code: str = Field(..., min_length=1, max_length=32)
    courier_id: int
    actor_id: Optional[int] = None


class DeliveryAttempt(BaseModel):
    """Outcome of one delivery attempt with proof of delivery."""
    success: bool
    recipient_name: Optional[str] = Field(None, max_length=200)
    recipient_id_number: Optional[str] = Field(None, max_length=50)
    signature: Optional[str] = None
    photo_proof: Optional[str] = None
    notes: Optional[str] = None
    actor_id: Optional[int] = None


class RescheduleRequest(BaseModel):
    notes: Optional[str] = None
    actor_id: Optional[int] = None


class AssignmentResponse(BaseModel):
    id: int
    parcel_id: int
    route_id: Optional[int]
    courier_id: Optional[int]
    status: DeliveryStatus
    attempts: int
    last_attempt_at: Optional[datetime]
    delivered_at: Optional[datetime]
    recipient_name: Optional[str]
    notes: Optional[str]

    class Config:
        from_attributes = True
