"""
Parcel Intake Service.

Creates orders with their parcels at the origin agency and issues the
parcels' tracking codes in the same transaction.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy import select, exists

from cargo_backend.app.core.config import settings
from cargo_backend.app.core.exceptions import (
    InvalidStateError,
    ResourceNotFoundError,
    ValidationFailureError,
)
from cargo_backend.app.db.unit_of_work import UnitOfWork
from cargo_backend.app.domain.containment.transfer import lock_parcels, lock_row
from cargo_backend.app.models.delivery import DeliveryAssignment
from cargo_backend.app.models.mixins import utcnow
from cargo_backend.app.models.order import Order
from cargo_backend.app.models.parcel import Parcel, HOLDER_COLUMNS
from cargo_backend.app.models.parcel_enums import ParcelStatus, ParcelEventType
from cargo_backend.app.models.service import Service
from cargo_backend.app.services.event_trail import append_parcel_event
from cargo_backend.app.services.hbl import MAX_ITEMS_PER_ORDER, build_hbl
from cargo_backend.app.services.order_status import recompute_orders
from cargo_backend.app.services.sequence import issue_tracking_codes
from cargo_backend.app.services.status_details import status_text

logger = logging.getLogger("cargo_backend.intake")

SEQUENCE_SCHEME = "sequence"
ORDER_SCHEME = "order"
CODE_SCHEMES = (SEQUENCE_SCHEME, ORDER_SCHEME)


@dataclass(frozen=True)
class ParcelItem:
    description: Optional[str]
    weight_kg: Decimal
    service_id: int


def _validate_items(items: Sequence[ParcelItem], code_scheme: str) -> None:
    if code_scheme not in CODE_SCHEMES:
        raise ValidationFailureError(
            f"Unknown code scheme {code_scheme}", details={"code_scheme": code_scheme, "allowed": list(CODE_SCHEMES)}
        )
    if not items:
        raise ValidationFailureError("An order needs at least one parcel", details={"items": 0})
    if code_scheme == ORDER_SCHEME and len(items) > MAX_ITEMS_PER_ORDER:
        raise ValidationFailureError(
            f"An order can carry at most {MAX_ITEMS_PER_ORDER} parcels",
            details={"items": len(items), "max_items": MAX_ITEMS_PER_ORDER},
        )
    for position, item in enumerate(items, start=1):
        if Decimal(item.weight_kg) <= 0:
            raise ValidationFailureError(
                "Parcel weight must be positive", details={"item_no": position, "weight_kg": str(item.weight_kg)}
            )


class IntakeService:

    @staticmethod
    async def create_order(
        uow: UnitOfWork,
        agency_id: int,
        items: Sequence[ParcelItem],
        actor_id: Optional[int] = None,
        code_scheme: str = SEQUENCE_SCHEME,
    ) -> Order:
        """
        Create an order and its IN_AGENCY parcels.

        Args:
            code_scheme: "sequence" issues agency/day counter codes,
                "order" derives codes from the order id and item position

        Raises:
            ValidationFailureError: no items, non-positive weight, too many items for the order scheme
            ResourceNotFoundError: unknown or inactive service
        """
        _validate_items(items, code_scheme)
        db = uow.session

        service_ids = sorted({item.service_id for item in items})
        result = await db.execute(select(Service).where(Service.id.in_(service_ids), Service.is_active.is_(True)))
        services = {service.id: service for service in result.scalars().all()}
        for service_id in service_ids:
            if service_id not in services:
                raise ResourceNotFoundError("Service", service_id)

        order = Order(
            agency_id=agency_id,
            created_by_id=actor_id,
            status=ParcelStatus.IN_AGENCY,
            status_details=status_text(ParcelStatus.IN_AGENCY),
        )
        db.add(order)
        await db.flush()

        codes = await IntakeService._issue_codes(db, order, items, code_scheme)

        parcels: List[Parcel] = []
        for item, code in zip(items, codes):
            parcel = Parcel(
                tracking_code=code,
                description=item.description,
                weight_kg=Decimal(item.weight_kg),
                order_id=order.id,
                agency_id=agency_id,
                current_agency_id=agency_id,
                service_id=item.service_id,
                service_type=services[item.service_id].service_type,
                status=ParcelStatus.IN_AGENCY,
                status_details=status_text(ParcelStatus.IN_AGENCY),
            )
            db.add(parcel)
            parcels.append(parcel)
        await db.flush()

        for parcel in parcels:
            append_parcel_event(uow, parcel, ParcelEventType.BILLED, actor_id=actor_id)

        await recompute_orders(db, [order.id])
        logger.info(
            "Order created",
            extra={"order_id": order.id, "agency_id": agency_id, "parcels": len(parcels), "code_scheme": code_scheme}
        )
        return order

    @staticmethod
    async def _issue_codes(db, order: Order, items: Sequence[ParcelItem], code_scheme: str) -> List[str]:
        if code_scheme == ORDER_SCHEME:
            return [
                build_hbl(settings.hbl_provider_code, order.id, item_no)
                for item_no in range(1, len(items) + 1)
            ]

        # One block per service; codes keep the item order within each service.
        codes: List[Optional[str]] = [None] * len(items)
        for service_id in sorted({item.service_id for item in items}):
            positions = [i for i, item in enumerate(items) if item.service_id == service_id]
            block = await issue_tracking_codes(db, order.agency_id, service_id, len(positions))
            for position, code in zip(positions, block):
                codes[position] = code
        return codes

    @staticmethod
    async def get_order(db, order_id: int) -> Order:
        order = await db.get(Order, order_id)
        if order is None or order.deleted_at is not None:
            raise ResourceNotFoundError("Order", order_id)
        return order

    @staticmethod
    async def list_parcels(db, order_id: int) -> List[Parcel]:
        await IntakeService.get_order(db, order_id)
        result = await db.execute(
            select(Parcel).where(Parcel.order_id == order_id, Parcel.deleted_at.is_(None)).order_by(Parcel.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_parcel(db, tracking_code: str) -> Parcel:
        result = await db.execute(select(Parcel).where(Parcel.tracking_code == tracking_code))
        parcel = result.scalar_one_or_none()
        if parcel is None:
            raise ResourceNotFoundError("Parcel", tracking_code)
        return parcel

    @staticmethod
    async def soft_delete_order(uow: UnitOfWork, order_id: int, actor_id: Optional[int] = None) -> Order:
        """
        Mark an order and its parcels deleted.

        Raises:
            InvalidStateError: a parcel is held by a unit, in a warehouse or assigned for delivery
        """
        db = uow.session
        parcels = await lock_parcels(db, Parcel.order_id == order_id)
        order = await lock_row(db, Order, order_id, "Order")
        if order.deleted_at is not None:
            raise InvalidStateError(f"Order {order_id} is already deleted", details={"order_id": order_id})

        for parcel in parcels:
            held = [column for column in HOLDER_COLUMNS.values() if getattr(parcel, column) is not None]
            assigned = await db.execute(select(exists().where(DeliveryAssignment.parcel_id == parcel.id)))
            if held or parcel.current_warehouse_id is not None or assigned.scalar():
                raise InvalidStateError(
                    f"Parcel {parcel.tracking_code} is in a containment unit; remove it before deleting the order",
                    details={"order_id": order_id, "tracking_code": parcel.tracking_code, "status": parcel.status.value},
                )

        now = utcnow()
        for parcel in parcels:
            parcel.deleted_at = now
        order.deleted_at = now
        await db.flush()
        logger.info("Order deleted", extra={"order_id": order_id, "parcels": len(parcels), "actor_id": actor_id})
        return order
