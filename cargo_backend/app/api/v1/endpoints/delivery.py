"""
Last-Mile Delivery API Endpoints.

Route planning, courier assignment and delivery attempts.
"""

from fastapi import APIRouter, Depends, status, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from cargo_backend.app.db.session import get_db, get_session_factory
from cargo_backend.app.db.unit_of_work import run_in_transaction
from cargo_backend.app.domain.containment.delivery import DeliveryService
from cargo_backend.app.schemas.containment import ParcelTransferRequest
from cargo_backend.app.schemas.delivery import (
    RouteCreate, RouteReady, RouteResponse, AssignmentResponse,
    CourierAssignment, DeliveryAttempt, RescheduleRequest
)
from cargo_backend.app.schemas.parcel import ActorRequest, ParcelResponse

router = APIRouter(prefix="/delivery", tags=["Delivery"])


@router.post("/routes", response_model=RouteResponse, status_code=status.HTTP_201_CREATED)
async def create_route(data: RouteCreate, session_factory=Depends(get_session_factory)):
    route = await run_in_transaction(
        DeliveryService.create_route,
        data.carrier_id,
        data.warehouse_id,
        data.scheduled_date,
        courier_id=data.courier_id,
        actor_id=data.actor_id,
        session_factory=session_factory,
    )
    return RouteResponse.model_validate(route)


@router.get("/routes/{route_id}", response_model=RouteResponse)
async def get_route(route_id: int = Path(..., description="Route ID"), db: AsyncSession = Depends(get_db)):
    return RouteResponse.model_validate(await DeliveryService.get(db, route_id))


@router.get("/routes/{route_id}/assignments", response_model=List[AssignmentResponse])
async def list_route_assignments(route_id: int = Path(..., description="Route ID"), db: AsyncSession = Depends(get_db)):
    assignments = await DeliveryService.list_assignments(db, route_id)
    return [AssignmentResponse.model_validate(a) for a in assignments]


@router.post("/routes/{route_id}/parcels", response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
async def add_parcel_to_route(
    data: ParcelTransferRequest,
    route_id: int = Path(..., description="Route ID"),
    session_factory=Depends(get_session_factory)
):
    assignment = await run_in_transaction(
        DeliveryService.add_parcel_to_route, route_id, data.tracking_code, actor_id=data.actor_id,
        session_factory=session_factory,
    )
    return AssignmentResponse.model_validate(assignment)


@router.delete("/routes/{route_id}/parcels/{tracking_code}", response_model=ParcelResponse)
async def remove_parcel_from_route(
    route_id: int = Path(..., description="Route ID"),
    tracking_code: str = Path(..., description="Tracking code"),
    actor_id: Optional[int] = Query(None),
    session_factory=Depends(get_session_factory)
):
    parcel = await run_in_transaction(
        DeliveryService.remove_parcel_from_route, route_id, tracking_code, actor_id=actor_id,
        session_factory=session_factory,
    )
    return ParcelResponse.model_validate(parcel)


@router.post("/routes/{route_id}/ready", response_model=RouteResponse)
async def mark_route_ready(
    data: RouteReady,
    route_id: int = Path(..., description="Route ID"),
    session_factory=Depends(get_session_factory)
):
    route = await run_in_transaction(
        DeliveryService.mark_ready, route_id, courier_id=data.courier_id, actor_id=data.actor_id,
        session_factory=session_factory,
    )
    return RouteResponse.model_validate(route)


@router.post("/routes/{route_id}/start", response_model=RouteResponse)
async def start_route(
    data: ActorRequest,
    route_id: int = Path(..., description="Route ID"),
    session_factory=Depends(get_session_factory)
):
    """Send every parcel of a READY route out for delivery."""
    route = await run_in_transaction(
        DeliveryService.start_route, route_id, actor_id=data.actor_id, session_factory=session_factory
    )
    return RouteResponse.model_validate(route)


@router.delete("/routes/{route_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_route(route_id: int = Path(..., description="Route ID"), session_factory=Depends(get_session_factory)):
    await run_in_transaction(DeliveryService.delete_route, route_id, session_factory=session_factory)


@router.post("/assignments", response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
async def assign_to_courier(data: CourierAssignment, session_factory=Depends(get_session_factory)):
    assignment = await run_in_transaction(
        DeliveryService.assign_to_courier, data.tracking_code, data.courier_id, actor_id=data.actor_id,
        session_factory=session_factory,
    )
    return AssignmentResponse.model_validate(assignment)


@router.post("/assignments/{assignment_id}/attempts", response_model=AssignmentResponse)
async def record_attempt(
    data: DeliveryAttempt,
    assignment_id: int = Path(..., description="Assignment ID"),
    session_factory=Depends(get_session_factory)
):
    assignment = await run_in_transaction(
        DeliveryService.record_attempt,
        assignment_id,
        data.success,
        actor_id=data.actor_id,
        recipient_name=data.recipient_name,
        recipient_id_number=data.recipient_id_number,
        signature=data.signature,
        photo_proof=data.photo_proof,
        notes=data.notes,
        session_factory=session_factory,
    )
    return AssignmentResponse.model_validate(assignment)


@router.post("/assignments/{assignment_id}/reschedule", response_model=AssignmentResponse)
async def reschedule_delivery(
    data: RescheduleRequest,
    assignment_id: int = Path(..., description="Assignment ID"),
    session_factory=Depends(get_session_factory)
):
    assignment = await run_in_transaction(
        DeliveryService.reschedule, assignment_id, actor_id=data.actor_id, notes=data.notes,
        session_factory=session_factory,
    )
    return AssignmentResponse.model_validate(assignment)
