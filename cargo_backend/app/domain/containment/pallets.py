"""
Pallet Service (Domain Logic).

Pallets group agency parcels before they are dispatched. OPEN pallets accept
and release parcels; SEALED pallets are frozen and can be loaded into a
dispatch as a whole.
"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from cargo_backend.app.core.exceptions import InvalidStateError, ResourceNotFoundError
from cargo_backend.app.db.unit_of_work import UnitOfWork
from cargo_backend.app.domain.containment.transfer import (
    BulkTransferResult,
    ContainmentRule,
    add_parcel_to_unit,
    add_parcels_to_unit,
    delete_empty_unit,
    ensure_unit_status,
    lock_parcels,
    lock_unit,
    remove_parcel_from_unit,
)
from cargo_backend.app.models.enums import UnitKind, CounterScope
from cargo_backend.app.models.order import Order
from cargo_backend.app.models.pallet import Pallet
from cargo_backend.app.models.parcel import Parcel
from cargo_backend.app.models.parcel_enums import ParcelStatus, ParcelEventType
from cargo_backend.app.models.unit_enums import PalletStatus
from cargo_backend.app.services.sequence import next_unit_number, today

logger = logging.getLogger("cargo_backend.pallets")


def _same_agency(parcel: Parcel, pallet: Pallet, upstream) -> Optional[str]:
    holder_agency = parcel.current_agency_id or parcel.agency_id
    if holder_agency != pallet.agency_id:
        return f"Parcel {parcel.tracking_code} is held by agency {holder_agency}, pallet belongs to agency {pallet.agency_id}"
    return None


PALLET_RULE = ContainmentRule(
    kind=UnitKind.PALLET,
    label="Pallet",
    number_attr="pallet_number",
    allowed_statuses=frozenset({ParcelStatus.IN_AGENCY}),
    accepting_statuses=frozenset({PalletStatus.OPEN}),
    loaded_status=ParcelStatus.IN_PALLET,
    removed_status=ParcelStatus.IN_AGENCY,
    added_event=ParcelEventType.ADDED_TO_PALLET,
    removed_event=ParcelEventType.REMOVED_FROM_PALLET,
    initial_status=PalletStatus.OPEN,
    compatibility=_same_agency,
)


class PalletService:

    @staticmethod
    async def create(uow: UnitOfWork, agency_id: int, actor_id: Optional[int] = None) -> Pallet:
        """Create an empty OPEN pallet numbered P-{agency}-{YYYYMMDD}-{seq}."""
        day = today()
        sequence = await next_unit_number(uow.session, CounterScope.PALLET, agency_id, day)
        pallet = Pallet(
            pallet_number=f"P-{agency_id:02d}-{day:%Y%m%d}-{sequence:04d}",
            agency_id=agency_id,
            status=PalletStatus.OPEN,
            total_weight_kg=Decimal("0"),
            parcels_count=0,
            created_by_id=actor_id,
        )
        uow.session.add(pallet)
        await uow.session.flush()
        logger.info("Pallet created", extra={"pallet_id": pallet.id, "pallet_number": pallet.pallet_number})
        return pallet

    @staticmethod
    async def get(db: AsyncSession, pallet_id: int) -> Pallet:
        pallet = await db.get(Pallet, pallet_id)
        if pallet is None:
            raise ResourceNotFoundError("Pallet", pallet_id)
        return pallet

    @staticmethod
    async def add_parcel(uow: UnitOfWork, pallet_id: int, tracking_code: str, actor_id: Optional[int] = None) -> Parcel:
        return await add_parcel_to_unit(uow, PALLET_RULE, pallet_id, tracking_code, actor_id)

    @staticmethod
    async def add_parcels_by_order(
        uow: UnitOfWork, pallet_id: int, order_id: int, actor_id: Optional[int] = None
    ) -> BulkTransferResult:
        if await uow.session.get(Order, order_id) is None:
            raise ResourceNotFoundError("Order", order_id)
        parcels = await lock_parcels(uow.session, Parcel.order_id == order_id)
        return await add_parcels_to_unit(uow, PALLET_RULE, pallet_id, parcels, actor_id)

    @staticmethod
    async def remove_parcel(uow: UnitOfWork, pallet_id: int, tracking_code: str, actor_id: Optional[int] = None) -> Parcel:
        return await remove_parcel_from_unit(uow, PALLET_RULE, pallet_id, tracking_code, actor_id)

    @staticmethod
    async def seal(uow: UnitOfWork, pallet_id: int, actor_id: Optional[int] = None) -> Pallet:
        """
        Seal an OPEN pallet. No parcel can be added or removed afterwards.

        Raises:
            InvalidStateError: pallet not OPEN or empty
        """
        pallet = await lock_unit(uow.session, PALLET_RULE, pallet_id)
        ensure_unit_status(PALLET_RULE, pallet, {PalletStatus.OPEN}, "seal")
        if pallet.parcels_count < 1:
            raise InvalidStateError(
                f"Pallet {pallet.pallet_number} is empty and cannot be sealed",
                details={"unit": UnitKind.PALLET.value, "unit_id": pallet.id, "parcels_count": 0},
            )
        pallet.status = PalletStatus.SEALED
        await uow.session.flush()
        logger.info("Pallet sealed", extra={"pallet_id": pallet.id, "actor_id": actor_id})
        return pallet

    @staticmethod
    async def unseal(uow: UnitOfWork, pallet_id: int, actor_id: Optional[int] = None) -> Pallet:
        """
        Reopen a SEALED pallet that has not been loaded into a dispatch.

        Raises:
            InvalidStateError: pallet not SEALED or already attached to a dispatch
        """
        pallet = await lock_unit(uow.session, PALLET_RULE, pallet_id)
        ensure_unit_status(PALLET_RULE, pallet, {PalletStatus.SEALED}, "unseal")
        if pallet.dispatch_id is not None:
            raise InvalidStateError(
                f"Pallet {pallet.pallet_number} is in dispatch {pallet.dispatch_id} and cannot be unsealed",
                details={"unit": UnitKind.PALLET.value, "unit_id": pallet.id, "dispatch_id": pallet.dispatch_id},
            )
        pallet.status = PalletStatus.OPEN
        await uow.session.flush()
        logger.info("Pallet unsealed", extra={"pallet_id": pallet.id, "actor_id": actor_id})
        return pallet

    @staticmethod
    async def delete(uow: UnitOfWork, pallet_id: int) -> None:
        await delete_empty_unit(uow, PALLET_RULE, pallet_id)
