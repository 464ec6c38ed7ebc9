"""
Dispatch Service (Domain Logic).

Moves parcels between agencies.

Flow:
    1. DRAFT/LOADING: parcels and sealed pallets are loaded at the sender
    2. DISPATCHED: the receiver agency is fixed, contents are frozen
    3. RECEIVING: the receiver scans parcels in one by one
    4. RECEIVED (everything scanned) or DISCREPANCY (reception closed short)

A received dispatch releases its parcels, so they can be loaded into the
next unit (another dispatch, a container or a flight).
"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from cargo_backend.app.core.exceptions import (
    ConflictError,
    InvalidStateError,
    ResourceNotFoundError,
    ValidationFailureError,
)
from cargo_backend.app.db.unit_of_work import UnitOfWork
from cargo_backend.app.domain.containment.pallets import PALLET_RULE
from cargo_backend.app.domain.containment.transfer import (
    PRECONDITION_ERRORS,
    BulkTransferResult,
    ContainmentRule,
    add_parcel_to_unit,
    add_parcels_to_unit,
    attach,
    check_entry,
    delete_empty_unit,
    ensure_not_deleted,
    ensure_unit_status,
    lock_parcel,
    lock_for_entry,
    lock_parcels,
    lock_unit,
    remove_parcel_from_unit,
)
from cargo_backend.app.models.dispatch import Dispatch
from cargo_backend.app.models.enums import UnitKind, CounterScope
from cargo_backend.app.models.order import Order
from cargo_backend.app.models.parcel import Parcel
from cargo_backend.app.models.parcel_event import ParcelEvent
from cargo_backend.app.models.parcel_enums import ParcelStatus, ParcelEventType
from cargo_backend.app.models.unit_enums import DispatchStatus, PalletStatus
from cargo_backend.app.models.mixins import utcnow
from cargo_backend.app.services.event_trail import UnitRef, append_parcel_event
from cargo_backend.app.services.order_status import recompute_orders
from cargo_backend.app.services.sequence import next_unit_number, today
from cargo_backend.app.services.status_details import build_parcel_status_details

logger = logging.getLogger("cargo_backend.dispatches")

DISPATCHABLE_STATUSES = frozenset({
    ParcelStatus.IN_AGENCY,
    ParcelStatus.IN_PALLET,
    ParcelStatus.IN_DISPATCH,
    ParcelStatus.RECEIVED_IN_DISPATCH,
    ParcelStatus.IN_WAREHOUSE,
})

# Statuses a parcel may return to when taken out of a dispatch.
RESTORABLE_STATUSES = (ParcelStatus.IN_AGENCY, ParcelStatus.IN_WAREHOUSE)

RECEPTION_STATUSES = frozenset({DispatchStatus.DISPATCHED, DispatchStatus.RECEIVING})

ADDED_DURING_RECEPTION_NOTE = "Added during reception (not in original dispatch)"


def _held_by_sender(parcel: Parcel, dispatch: Dispatch, upstream) -> Optional[str]:
    holder_agency = parcel.current_agency_id or parcel.agency_id
    if isinstance(upstream, Dispatch) and upstream.receiver_agency_id is not None:
        holder_agency = upstream.receiver_agency_id
    if holder_agency != dispatch.sender_agency_id:
        return (
            f"Parcel {parcel.tracking_code} is held by agency {holder_agency}, "
            f"dispatch {dispatch.dispatch_number} ships from agency {dispatch.sender_agency_id}"
        )
    return None


DISPATCH_RULE = ContainmentRule(
    kind=UnitKind.DISPATCH,
    label="Dispatch",
    number_attr="dispatch_number",
    allowed_statuses=DISPATCHABLE_STATUSES,
    accepting_statuses=frozenset({DispatchStatus.DRAFT, DispatchStatus.LOADING}),
    loaded_status=ParcelStatus.IN_DISPATCH,
    removed_status=None,
    added_event=ParcelEventType.ADDED_TO_DISPATCH,
    removed_event=ParcelEventType.REMOVED_FROM_DISPATCH,
    initial_status=DispatchStatus.DRAFT,
    in_progress_status=DispatchStatus.LOADING,
    empty_status=DispatchStatus.DRAFT,
    compatibility=_held_by_sender,
)


async def previous_status(db: AsyncSession, parcel: Parcel) -> ParcelStatus:
    """Most recent agency or warehouse status in the parcel's history, IN_AGENCY if none."""
    result = await db.execute(
        select(ParcelEvent.status)
        .where(ParcelEvent.parcel_id == parcel.id, ParcelEvent.status.in_(RESTORABLE_STATUSES))
        .order_by(ParcelEvent.created_at.desc(), ParcelEvent.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none() or ParcelStatus.IN_AGENCY


async def _received_count(db: AsyncSession, dispatch_id: int) -> int:
    result = await db.execute(
        select(func.count(Parcel.id)).where(
            Parcel.dispatch_id == dispatch_id,
            Parcel.status == ParcelStatus.RECEIVED_IN_DISPATCH,
        )
    )
    return result.scalar_one()


class DispatchService:

    @staticmethod
    async def create(uow: UnitOfWork, sender_agency_id: int, actor_id: Optional[int] = None) -> Dispatch:
        day = today()
        sequence = await next_unit_number(uow.session, CounterScope.DISPATCH, sender_agency_id, day)
        dispatch = Dispatch(
            dispatch_number=f"D-{sender_agency_id:02d}-{day:%Y%m%d}-{sequence:04d}",
            sender_agency_id=sender_agency_id,
            status=DispatchStatus.DRAFT,
            total_weight_kg=Decimal("0"),
            parcels_count=0,
            created_by_id=actor_id,
        )
        uow.session.add(dispatch)
        await uow.session.flush()
        logger.info("Dispatch created", extra={"dispatch_id": dispatch.id, "dispatch_number": dispatch.dispatch_number})
        return dispatch

    @staticmethod
    async def get(db: AsyncSession, dispatch_id: int) -> Dispatch:
        dispatch = await db.get(Dispatch, dispatch_id)
        if dispatch is None:
            raise ResourceNotFoundError("Dispatch", dispatch_id)
        return dispatch

    @staticmethod
    async def add_parcel(uow: UnitOfWork, dispatch_id: int, tracking_code: str, actor_id: Optional[int] = None) -> Parcel:
        return await add_parcel_to_unit(uow, DISPATCH_RULE, dispatch_id, tracking_code, actor_id)

    @staticmethod
    async def add_parcels_by_order(
        uow: UnitOfWork, dispatch_id: int, order_id: int, actor_id: Optional[int] = None
    ) -> BulkTransferResult:
        if await uow.session.get(Order, order_id) is None:
            raise ResourceNotFoundError("Order", order_id)
        parcels = await lock_parcels(uow.session, Parcel.order_id == order_id)
        return await add_parcels_to_unit(uow, DISPATCH_RULE, dispatch_id, parcels, actor_id)

    @staticmethod
    async def add_pallet(
        uow: UnitOfWork, dispatch_id: int, pallet_id: int, actor_id: Optional[int] = None
    ) -> BulkTransferResult:
        """
        Load every parcel of a sealed pallet and record the pallet on the dispatch.

        Raises:
            InvalidStateError: pallet not SEALED, dispatch not accepting
            ConflictError: pallet already loaded into a dispatch
            ValidationFailureError: pallet from another agency
        """
        db = uow.session
        parcels = await lock_parcels(db, Parcel.pallet_id == pallet_id)
        dispatch, locked = await lock_for_entry(
            db, DISPATCH_RULE, dispatch_id, parcels, extra=[(UnitKind.PALLET, pallet_id)]
        )
        pallet = locked[(UnitKind.PALLET, pallet_id)]

        ensure_unit_status(DISPATCH_RULE, dispatch, DISPATCH_RULE.accepting_statuses, "add parcels to")
        ensure_unit_status(PALLET_RULE, pallet, {PalletStatus.SEALED}, "dispatch")
        if pallet.dispatch_id is not None:
            raise ConflictError(
                f"Pallet {pallet.pallet_number} is already in dispatch {pallet.dispatch_id}",
                details={"unit": UnitKind.PALLET.value, "unit_id": pallet.id, "dispatch_id": pallet.dispatch_id},
            )
        if pallet.agency_id != dispatch.sender_agency_id:
            raise ValidationFailureError(
                f"Pallet {pallet.pallet_number} belongs to agency {pallet.agency_id}",
                details={"unit": UnitKind.PALLET.value, "unit_id": pallet.id, "dispatch_id": dispatch.id},
            )

        result = BulkTransferResult()
        for parcel in parcels:
            try:
                upstream = check_entry(parcel, dispatch, DISPATCH_RULE, locked)
            except PRECONDITION_ERRORS as exc:
                result.skip(parcel, exc)
                continue
            await attach(
                uow, parcel, dispatch, DISPATCH_RULE, actor_id,
                upstream=upstream,
                note=f"Added to dispatch {dispatch.dispatch_number} with pallet {pallet.pallet_number}",
            )
            result.added += 1
            result.parcels.append(parcel)

        pallet.dispatch_id = dispatch.id
        await recompute_orders(db, [p.order_id for p in result.parcels])
        await db.flush()
        logger.info(
            "Pallet loaded into dispatch",
            extra={"dispatch_id": dispatch.id, "pallet_id": pallet.id, "added": result.added, "skipped": result.skipped}
        )
        return result

    @staticmethod
    async def remove_parcel(uow: UnitOfWork, dispatch_id: int, tracking_code: str, actor_id: Optional[int] = None) -> Parcel:
        """Take a parcel out of a loading dispatch, restoring the status it had before."""
        db = uow.session
        parcel = await lock_parcel(db, tracking_code)
        restored = await previous_status(db, parcel)
        return await remove_parcel_from_unit(uow, DISPATCH_RULE, dispatch_id, tracking_code, actor_id, status=restored)

    @staticmethod
    async def dispatch(
        uow: UnitOfWork, dispatch_id: int, receiver_agency_id: int, actor_id: Optional[int] = None
    ) -> Dispatch:
        """
        Send a loaded dispatch to the receiver agency.

        Raises:
            InvalidStateError: dispatch not DRAFT/LOADING, or empty
            ValidationFailureError: receiver is the sender
        """
        db = uow.session
        dispatch = await lock_unit(db, DISPATCH_RULE, dispatch_id)
        ensure_unit_status(DISPATCH_RULE, dispatch, DISPATCH_RULE.accepting_statuses, "send")
        if dispatch.parcels_count < 1:
            raise InvalidStateError(
                f"Dispatch {dispatch.dispatch_number} is empty",
                details={"unit": UnitKind.DISPATCH.value, "unit_id": dispatch.id, "parcels_count": 0},
            )
        if receiver_agency_id == dispatch.sender_agency_id:
            raise ValidationFailureError(
                "Receiver agency must differ from the sender",
                details={"unit_id": dispatch.id, "receiver_agency_id": receiver_agency_id},
            )

        dispatch.receiver_agency_id = receiver_agency_id
        dispatch.status = DispatchStatus.DISPATCHED
        dispatch.dispatched_at = utcnow()
        await db.flush()
        logger.info(
            "Dispatch sent",
            extra={"dispatch_id": dispatch.id, "receiver_agency_id": receiver_agency_id, "parcels": dispatch.parcels_count}
        )
        return dispatch

    @staticmethod
    async def receive_parcel(
        uow: UnitOfWork, dispatch_id: int, tracking_code: str, actor_id: Optional[int] = None
    ) -> Parcel:
        """
        Scan a parcel in at the receiving agency.

        A parcel of this dispatch becomes RECEIVED_IN_DISPATCH. A parcel that
        arrives without being in any unit is added to the dispatch as received.

        Raises:
            InvalidStateError: dispatch not DISPATCHED/RECEIVING, parcel status not receivable
            ConflictError: parcel already received, or held by another unit
        """
        db = uow.session
        parcel = await lock_parcel(db, tracking_code)
        dispatch, locked = await lock_for_entry(db, DISPATCH_RULE, dispatch_id, [parcel])

        ensure_not_deleted(parcel)
        ensure_unit_status(DISPATCH_RULE, dispatch, RECEPTION_STATUSES, "receive parcels into")

        unit_ref = UnitRef(UnitKind.DISPATCH, dispatch.id)
        if parcel.dispatch_id == dispatch.id:
            if parcel.status == ParcelStatus.RECEIVED_IN_DISPATCH:
                raise ConflictError(
                    f"Parcel {parcel.tracking_code} was already received",
                    details={"tracking_code": parcel.tracking_code, "unit_id": dispatch.id},
                )
            parcel.status = ParcelStatus.RECEIVED_IN_DISPATCH
            parcel.current_agency_id = dispatch.receiver_agency_id
            parcel.status_details = build_parcel_status_details(parcel)
            append_parcel_event(
                uow, parcel, ParcelEventType.RECEIVED_IN_DISPATCH,
                actor_id=actor_id,
                note=f"Received in dispatch {dispatch.dispatch_number}",
                unit=unit_ref,
            )
        else:
            upstream = check_entry(
                parcel, dispatch, DISPATCH_RULE, locked, check_accepting=False, check_compatibility=False
            )
            await attach(
                uow, parcel, dispatch, DISPATCH_RULE, actor_id,
                upstream=upstream,
                status=ParcelStatus.RECEIVED_IN_DISPATCH,
                event_type=ParcelEventType.RECEIVED_IN_DISPATCH,
                note=ADDED_DURING_RECEPTION_NOTE,
            )
            parcel.current_agency_id = dispatch.receiver_agency_id

        await db.flush()
        await DispatchService._refresh_reception_status(db, dispatch, actor_id)
        await recompute_orders(db, [parcel.order_id])
        return parcel

    @staticmethod
    async def _refresh_reception_status(db: AsyncSession, dispatch: Dispatch, actor_id: Optional[int]) -> None:
        received = await _received_count(db, dispatch.id)
        if received == 0:
            dispatch.status = DispatchStatus.DISPATCHED
        elif received >= dispatch.parcels_count:
            dispatch.status = DispatchStatus.RECEIVED
            dispatch.received_at = utcnow()
            dispatch.received_by_id = actor_id
        else:
            dispatch.status = DispatchStatus.RECEIVING
        await db.flush()

    @staticmethod
    async def finish_reception(uow: UnitOfWork, dispatch_id: int, actor_id: Optional[int] = None) -> Dispatch:
        """
        Close reception. Parcels never scanned leave the dispatch in DISCREPANCY.

        Raises:
            InvalidStateError: dispatch not DISPATCHED/RECEIVING
        """
        db = uow.session
        dispatch = await lock_unit(db, DISPATCH_RULE, dispatch_id)
        ensure_unit_status(DISPATCH_RULE, dispatch, RECEPTION_STATUSES, "close reception of")

        received = await _received_count(db, dispatch.id)
        missing = dispatch.parcels_count - received
        dispatch.status = DispatchStatus.RECEIVED if missing <= 0 else DispatchStatus.DISCREPANCY
        dispatch.received_at = utcnow()
        dispatch.received_by_id = actor_id
        await db.flush()

        if missing > 0:
            logger.warning(
                "Dispatch closed with missing parcels",
                extra={"dispatch_id": dispatch.id, "received": received, "missing": missing}
            )
        return dispatch

    @staticmethod
    async def delete(uow: UnitOfWork, dispatch_id: int) -> None:
        await delete_empty_unit(uow, DISPATCH_RULE, dispatch_id)
