"""
Containment unit schemas.

Requests and responses for pallets, dispatches, containers, flights and
their parcel transfers.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from cargo_backend.app.models.enums import UnitKind
from cargo_backend.app.models.unit_enums import PalletStatus, DispatchStatus, ContainerStatus, FlightStatus
from cargo_backend.app.schemas.parcel import ParcelResponse


class ParcelTransferRequest(BaseModel):
    """Move a single parcel, identified by tracking code."""
    tracking_code: str = Field(..., min_length=1, max_length=32)
    actor_id: Optional[int] = None


class OrderTransferRequest(BaseModel):
    """Move every parcel of an order."""
    order_id: int
    actor_id: Optional[int] = None


class DispatchTransferRequest(BaseModel):
    """Load every parcel of a dispatch."""
    dispatch_id: int
    actor_id: Optional[int] = None


class PalletTransferRequest(BaseModel):
    """Load a sealed pallet into a dispatch."""
    pallet_id: int
    actor_id: Optional[int] = None


class SkippedParcel(BaseModel):
    tracking_code: str
    error_code: str
    message: str


class BulkTransferResponse(BaseModel):
    """Outcome of a bulk transfer: parcels failing a precondition are skipped, not fatal."""
    added: int
    skipped: int
    parcels: List[ParcelResponse] = []
    skipped_reasons: List[SkippedParcel] = []

    class Config:
        from_attributes = True


class PalletCreate(BaseModel):
    agency_id: int
    actor_id: Optional[int] = None


class PalletResponse(BaseModel):
    id: int
    pallet_number: str
    agency_id: int
    status: PalletStatus
    dispatch_id: Optional[int]
    total_weight_kg: Decimal
    parcels_count: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DispatchCreate(BaseModel):
    sender_agency_id: int
    actor_id: Optional[int] = None


class DispatchSend(BaseModel):
    receiver_agency_id: int
    actor_id: Optional[int] = None


class DispatchResponse(BaseModel):
    id: int
    dispatch_number: str
    sender_agency_id: int
    receiver_agency_id: Optional[int]
    status: DispatchStatus
    total_weight_kg: Decimal
    parcels_count: int
    dispatched_at: Optional[datetime]
    received_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ContainerCreate(BaseModel):
    container_number: str = Field(..., min_length=1, max_length=40)
    container_name: Optional[str] = Field(None, max_length=100)
    forwarder_id: int
    actor_id: Optional[int] = None


class ContainerResponse(BaseModel):
    id: int
    container_number: str
    container_name: Optional[str]
    forwarder_id: int
    status: ContainerStatus
    total_weight_kg: Decimal
    parcels_count: int
    actual_departure: Optional[datetime]
    actual_arrival: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class FlightCreate(BaseModel):
    awb_number: str = Field(..., min_length=1, max_length=40, description="Air waybill number")
    flight_number: Optional[str] = Field(None, max_length=20)
    forwarder_id: int
    actor_id: Optional[int] = None


class FlightResponse(BaseModel):
    id: int
    awb_number: str
    flight_number: Optional[str]
    forwarder_id: int
    status: FlightStatus
    total_weight_kg: Decimal
    parcels_count: int
    actual_departure: Optional[datetime]
    actual_arrival: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class UnitStatusUpdate(BaseModel):
    """Advance a container or flight."""
    status: str = Field(..., description="Target status")
    location: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    reference: Optional[str] = Field(None, max_length=100)
    actor_id: Optional[int] = None


class UnitEventResponse(BaseModel):
    id: int
    unit_kind: UnitKind
    unit_id: int
    status: str
    location: Optional[str]
    description: Optional[str]
    reference: Optional[str]
    actor_id: Optional[int]
    created_at: datetime

    class Config:
        from_attributes = True
