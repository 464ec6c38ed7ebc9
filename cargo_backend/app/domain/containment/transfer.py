"""
Containment transfer protocol.

Shared machinery for moving parcels into and out of pallets, dispatches,
containers and flights. Every unit kind is described by a ContainmentRule;
the unit services only add their own lifecycle on top.

Each transfer is split in two phases:
    1. preconditions (`check_entry`, `check_exit`): read-only, raise a typed error
    2. effect (`attach`, `detach`): parcel holder and status, event, unit aggregate

Rows are locked parcels first, then every unit involved in canonical
(kind, id) order, then the event is written and the order recomputed last.
Unit aggregates are incremented in SQL, never read-modify-written.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from sqlalchemy import select, exists, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from cargo_backend.app.core.exceptions import (
    AppException,
    ConflictError,
    InvalidStateError,
    ResourceNotFoundError,
    ValidationFailureError,
)
from cargo_backend.app.db.unit_of_work import UnitOfWork
from cargo_backend.app.models.container import Container
from cargo_backend.app.models.dispatch import Dispatch
from cargo_backend.app.models.enums import UnitKind
from cargo_backend.app.models.flight import Flight
from cargo_backend.app.models.pallet import Pallet
from cargo_backend.app.models.parcel import Parcel, HOLDER_COLUMNS
from cargo_backend.app.models.parcel_event import ParcelEvent
from cargo_backend.app.models.parcel_enums import ParcelStatus, ParcelEventType
from cargo_backend.app.models.unit_enums import PalletStatus, DispatchStatus
from cargo_backend.app.services.event_trail import UnitRef, append_parcel_event
from cargo_backend.app.services.order_status import recompute_orders
from cargo_backend.app.services.status_details import build_parcel_status_details

logger = logging.getLogger("cargo_backend.transfers")

HOLDER_MODELS = {
    UnitKind.PALLET: Pallet,
    UnitKind.DISPATCH: Dispatch,
    UnitKind.CONTAINER: Container,
    UnitKind.FLIGHT: Flight,
}

# Unit rows are always locked in this kind order, then by id.
LOCK_ORDER = {kind: position for position, kind in enumerate(HOLDER_MODELS)}

# Errors that make a bulk transfer skip a parcel instead of aborting.
PRECONDITION_ERRORS = (ConflictError, InvalidStateError, ValidationFailureError)

Compatibility = Callable[[Parcel, Any, Optional[Any]], Optional[str]]


@dataclass(frozen=True)
class ContainmentRule:
    """Entry and exit rules of one containment unit kind."""
    kind: UnitKind
    label: str
    number_attr: str
    allowed_statuses: FrozenSet[ParcelStatus]
    accepting_statuses: FrozenSet[Any]
    loaded_status: ParcelStatus
    removed_status: Optional[ParcelStatus]
    added_event: ParcelEventType
    removed_event: ParcelEventType
    initial_status: Any
    in_progress_status: Any = None
    empty_status: Any = None
    compatibility: Optional[Compatibility] = None

    @property
    def model(self):
        return HOLDER_MODELS[self.kind]

    @property
    def column(self) -> str:
        return HOLDER_COLUMNS[self.kind]

    def number_of(self, unit) -> str:
        return getattr(unit, self.number_attr)


@dataclass
class BulkTransferResult:
    added: int = 0
    skipped: int = 0
    parcels: List[Parcel] = field(default_factory=list)
    skipped_reasons: List[Dict[str, Any]] = field(default_factory=list)

    def skip(self, parcel: Parcel, error: AppException) -> None:
        self.skipped += 1
        self.skipped_reasons.append({
            "tracking_code": parcel.tracking_code,
            "error_code": error.error_code,
            "message": error.message,
        })


def current_holder(parcel: Parcel) -> Tuple[Optional[UnitKind], Optional[int]]:
    for kind, column in HOLDER_COLUMNS.items():
        unit_id = getattr(parcel, column)
        if unit_id is not None:
            return kind, unit_id
    return None, None


def holder_releases(kind: UnitKind, unit, parcel: Parcel) -> bool:
    """
    Whether an upstream holder has handed the parcel on.

    A sealed pallet releases to whatever unit it is loaded into. A dispatch
    releases once its reception is closed or the parcel has been received.
    Containers and flights never release.
    """
    if kind == UnitKind.PALLET:
        return unit.status == PalletStatus.SEALED
    if kind == UnitKind.DISPATCH:
        return (
            unit.status in (DispatchStatus.RECEIVED, DispatchStatus.DISCREPANCY)
            or parcel.status == ParcelStatus.RECEIVED_IN_DISPATCH
        )
    return False


async def lock_parcel(db: AsyncSession, tracking_code: str) -> Parcel:
    result = await db.execute(
        select(Parcel)
        .where(Parcel.tracking_code == tracking_code)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    parcel = result.scalar_one_or_none()
    if parcel is None:
        raise ResourceNotFoundError("Parcel", tracking_code)
    return parcel


async def lock_parcels(db: AsyncSession, *criteria) -> List[Parcel]:
    """Lock every live parcel matching `criteria`, in id order."""
    result = await db.execute(
        select(Parcel)
        .where(Parcel.deleted_at.is_(None), *criteria)
        .order_by(Parcel.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def lock_row(db: AsyncSession, model, row_id: int, label: str):
    result = await db.execute(
        select(model)
        .where(model.id == row_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    row = result.scalar_one_or_none()
    if row is None:
        raise ResourceNotFoundError(label, row_id)
    return row


async def lock_unit(db: AsyncSession, rule: ContainmentRule, unit_id: int):
    return await lock_row(db, rule.model, unit_id, rule.label)


async def lock_units(db: AsyncSession, refs: Iterable[Tuple[UnitKind, int]]) -> Dict[Tuple[UnitKind, int], Any]:
    """
    Lock several unit rows in the canonical order: kind (`LOCK_ORDER`), then id.

    Every transfer that touches more than one unit goes through here, so two
    transfers never wait on each other's units in opposite orders.
    """
    locked = {}
    for kind, unit_id in sorted(set(refs), key=lambda ref: (LOCK_ORDER[ref[0]], ref[1])):
        locked[(kind, unit_id)] = await lock_row(db, HOLDER_MODELS[kind], unit_id, kind.value.title())
    return locked


async def lock_for_entry(
    db: AsyncSession,
    rule: ContainmentRule,
    unit_id: int,
    parcels: Iterable[Parcel],
    extra: Iterable[Tuple[UnitKind, int]] = (),
):
    """
    Lock the destination unit together with every current holder of `parcels`.

    Parcels must already be locked. Returns the destination row and the map of
    all locked units, which `check_entry` reads upstream holders from.
    """
    refs = [(rule.kind, unit_id), *extra]
    for parcel in parcels:
        kind, holder_id = current_holder(parcel)
        if kind is not None:
            refs.append((kind, holder_id))
    locked = await lock_units(db, refs)
    return locked[(rule.kind, unit_id)], locked


def ensure_not_deleted(parcel: Parcel) -> None:
    if parcel.deleted_at is not None:
        raise ValidationFailureError(
            f"Parcel {parcel.tracking_code} has been deleted",
            details={"tracking_code": parcel.tracking_code},
        )


def ensure_status(parcel: Parcel, allowed: Iterable[ParcelStatus], operation: str) -> None:
    if parcel.status not in allowed:
        raise InvalidStateError(
            f"Parcel {parcel.tracking_code} with status {parcel.status.value} cannot be {operation}",
            details={
                "tracking_code": parcel.tracking_code,
                "status": parcel.status.value,
                "allowed": sorted(s.value for s in allowed),
            },
        )


def ensure_unit_status(rule: ContainmentRule, unit, allowed: Iterable[Any], operation: str) -> None:
    if unit.status not in allowed:
        raise InvalidStateError(
            f"Cannot {operation} {rule.label.lower()} {rule.number_of(unit)} in status {unit.status.value}",
            details={
                "unit": rule.kind.value,
                "unit_id": unit.id,
                "status": unit.status.value,
                "allowed": sorted(s.value for s in allowed),
            },
        )



def check_entry(
    parcel: Parcel,
    unit,
    rule: ContainmentRule,
    locked: Dict[Tuple[UnitKind, int], Any],
    check_accepting: bool = True,
    check_compatibility: bool = True,
):
    """
    Verify that `parcel` may enter `unit`. Mutates nothing.

    `locked` is the unit map from `lock_for_entry`; it holds the parcel's
    current holder.

    Returns:
        The upstream holder the parcel will be handed over from, or None.

    Raises:
        ValidationFailureError: deleted parcel, incompatible parcel
        InvalidStateError: parcel status not allowed, unit not accepting
        ConflictError: parcel held by another unit that has not released it
    """
    ensure_not_deleted(parcel)
    ensure_status(parcel, rule.allowed_statuses, f"added to a {rule.label.lower()}")

    upstream = None
    kind, holder_id = current_holder(parcel)
    if kind is not None:
        if kind == rule.kind and holder_id == unit.id:
            raise ConflictError(
                f"Parcel {parcel.tracking_code} is already in {rule.label.lower()} {rule.number_of(unit)}",
                details={"tracking_code": parcel.tracking_code, "unit": kind.value, "unit_id": holder_id},
            )
        holder = locked[(kind, holder_id)]
        if not holder_releases(kind, holder, parcel):
            raise ConflictError(
                f"Parcel {parcel.tracking_code} is already in {kind.value.lower()} {holder_id}",
                details={"tracking_code": parcel.tracking_code, "unit": kind.value, "unit_id": holder_id},
            )
        upstream = (kind, holder)

    if check_accepting:
        ensure_unit_status(rule, unit, rule.accepting_statuses, "add parcels to")

    if check_compatibility and rule.compatibility is not None:
        problem = rule.compatibility(parcel, unit, upstream[1] if upstream else None)
        if problem:
            raise ValidationFailureError(
                problem,
                details={"tracking_code": parcel.tracking_code, "unit": rule.kind.value, "unit_id": unit.id},
            )
    return upstream


def check_exit(parcel: Parcel, unit, rule: ContainmentRule) -> None:
    """
    Verify that `parcel` may be removed from `unit`. Mutates nothing.

    Raises:
        InvalidStateError: parcel not in this unit, unit no longer mutable
    """
    if getattr(parcel, rule.column) != unit.id:
        raise InvalidStateError(
            f"Parcel {parcel.tracking_code} is not in {rule.label.lower()} {rule.number_of(unit)}",
            details={"tracking_code": parcel.tracking_code, "unit": rule.kind.value, "unit_id": unit.id},
        )
    ensure_unit_status(rule, unit, rule.accepting_statuses, "remove parcels from")


async def adjust_counts(db: AsyncSession, row, **deltas) -> None:
    """
    Apply `column = column + delta` in a single UPDATE and load the results onto `row`.

    The arithmetic runs in the database, so concurrent transfers into the same
    row never overwrite each other's totals.
    """
    table = type(row).__table__
    result = await db.execute(
        update(table)
        .where(table.c.id == row.id)
        .values({table.c[name]: table.c[name] + delta for name, delta in deltas.items()})
        .returning(*(table.c[name] for name in deltas))
    )
    for name, value in zip(deltas, result.one()):
        set_committed_value(row, name, value)


async def _add_to_aggregate(db: AsyncSession, unit, weight: Decimal, pieces: int) -> None:
    await adjust_counts(db, unit, total_weight_kg=weight * pieces, parcels_count=pieces)


async def _release_from_upstream(db: AsyncSession, parcel: Parcel, kind: UnitKind, holder) -> None:
    setattr(parcel, HOLDER_COLUMNS[kind], None)
    if kind == UnitKind.DISPATCH and holder.receiver_agency_id is not None:
        parcel.current_agency_id = holder.receiver_agency_id
    await _add_to_aggregate(db, holder, parcel.weight_kg, -1)


def _container_name(unit) -> Optional[str]:
    return unit.display_name if isinstance(unit, Container) else None


async def attach(
    uow: UnitOfWork,
    parcel: Parcel,
    unit,
    rule: ContainmentRule,
    actor_id: Optional[int] = None,
    upstream=None,
    status: Optional[ParcelStatus] = None,
    event_type: Optional[ParcelEventType] = None,
    note: Optional[str] = None,
) -> ParcelEvent:
    """Put a parcel into a unit. Preconditions must have passed `check_entry`."""
    db = uow.session
    if upstream is not None:
        await _release_from_upstream(db, parcel, *upstream)

    setattr(parcel, rule.column, unit.id)
    parcel.status = status or rule.loaded_status
    parcel.status_details = build_parcel_status_details(parcel, _container_name(unit))

    event = append_parcel_event(
        uow,
        parcel,
        event_type or rule.added_event,
        actor_id=actor_id,
        note=note or f"Added to {rule.label.lower()} {rule.number_of(unit)}",
        unit=UnitRef(rule.kind, unit.id),
    )

    await _add_to_aggregate(db, unit, parcel.weight_kg, 1)
    if rule.in_progress_status is not None and unit.status == rule.initial_status:
        unit.status = rule.in_progress_status

    logger.debug(
        "Parcel attached",
        extra={"tracking_code": parcel.tracking_code, "unit": rule.kind.value, "unit_id": unit.id}
    )
    return event


async def detach(
    uow: UnitOfWork,
    parcel: Parcel,
    unit,
    rule: ContainmentRule,
    actor_id: Optional[int] = None,
    status: Optional[ParcelStatus] = None,
    note: Optional[str] = None,
) -> ParcelEvent:
    """Take a parcel out of a unit. The removal event keeps the unit reference."""
    setattr(parcel, rule.column, None)
    parcel.status = status or rule.removed_status
    parcel.status_details = build_parcel_status_details(parcel)

    event = append_parcel_event(
        uow,
        parcel,
        rule.removed_event,
        actor_id=actor_id,
        note=note or f"Removed from {rule.label.lower()} {rule.number_of(unit)}",
        unit=UnitRef(rule.kind, unit.id),
    )

    await _add_to_aggregate(uow.session, unit, parcel.weight_kg, -1)
    if rule.empty_status is not None and unit.parcels_count == 0:
        unit.status = rule.empty_status

    logger.debug(
        "Parcel detached",
        extra={"tracking_code": parcel.tracking_code, "unit": rule.kind.value, "unit_id": unit.id}
    )
    return event


async def add_parcel_to_unit(
    uow: UnitOfWork,
    rule: ContainmentRule,
    unit_id: int,
    tracking_code: str,
    actor_id: Optional[int] = None,
) -> Parcel:
    """Single-parcel add: every precondition failure raises."""
    db = uow.session
    parcel = await lock_parcel(db, tracking_code)
    unit, locked = await lock_for_entry(db, rule, unit_id, [parcel])

    upstream = check_entry(parcel, unit, rule, locked)
    await attach(uow, parcel, unit, rule, actor_id, upstream=upstream)

    await recompute_orders(db, [parcel.order_id])
    await db.flush()
    return parcel


async def add_parcels_to_unit(
    uow: UnitOfWork,
    rule: ContainmentRule,
    unit_id: int,
    parcels: List[Parcel],
    actor_id: Optional[int] = None,
) -> BulkTransferResult:
    """
    Bulk add of already locked parcels.

    Parcels failing a precondition are skipped and counted; any failure while
    applying effects aborts the whole transaction. Orders are recomputed once
    each at the end.
    """
    db = uow.session
    unit, locked = await lock_for_entry(db, rule, unit_id, parcels)
    ensure_unit_status(rule, unit, rule.accepting_statuses, "add parcels to")

    result = BulkTransferResult()
    for parcel in parcels:
        try:
            upstream = check_entry(parcel, unit, rule, locked)
        except PRECONDITION_ERRORS as exc:
            result.skip(parcel, exc)
            continue
        await attach(uow, parcel, unit, rule, actor_id, upstream=upstream)
        result.added += 1
        result.parcels.append(parcel)

    await recompute_orders(db, [p.order_id for p in result.parcels])
    await db.flush()
    logger.info(
        "Bulk transfer finished",
        extra={"unit": rule.kind.value, "unit_id": unit_id, "added": result.added, "skipped": result.skipped}
    )
    return result


async def remove_parcel_from_unit(
    uow: UnitOfWork,
    rule: ContainmentRule,
    unit_id: int,
    tracking_code: str,
    actor_id: Optional[int] = None,
    status: Optional[ParcelStatus] = None,
) -> Parcel:
    db = uow.session
    parcel = await lock_parcel(db, tracking_code)
    unit = await lock_unit(db, rule, unit_id)

    check_exit(parcel, unit, rule)
    await detach(uow, parcel, unit, rule, actor_id, status=status)

    await recompute_orders(db, [parcel.order_id])
    await db.flush()
    return parcel


async def delete_empty_unit(uow: UnitOfWork, rule: ContainmentRule, unit_id: int) -> None:
    """
    Delete a unit that is empty, still in its initial status and has no parcel history.

    Raises:
        InvalidStateError: the unit holds parcels, has moved on, or is referenced by events
    """
    db = uow.session
    unit = await lock_unit(db, rule, unit_id)
    initial = rule.initial_status
    if unit.parcels_count or unit.status != initial:
        raise InvalidStateError(
            f"{rule.label} {rule.number_of(unit)} can only be deleted while empty and {initial.value}",
            details={
                "unit": rule.kind.value,
                "unit_id": unit.id,
                "status": unit.status.value,
                "parcels_count": unit.parcels_count,
            },
        )

    event_column = getattr(ParcelEvent, rule.column)
    referenced = await db.execute(select(exists().where(event_column == unit.id)))
    if referenced.scalar():
        raise InvalidStateError(
            f"{rule.label} {rule.number_of(unit)} has parcel history and cannot be deleted",
            details={"unit": rule.kind.value, "unit_id": unit.id},
        )

    await db.delete(unit)
    logger.info("Unit deleted", extra={"unit": rule.kind.value, "unit_id": unit_id})
