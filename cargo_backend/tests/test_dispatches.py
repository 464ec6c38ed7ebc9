"""
Dispatch loading, sending and reception tests.
"""

import pytest
from decimal import Decimal

from cargo_backend.app.core.exceptions import (
    ConflictError,
    InvalidStateError,
    ValidationFailureError,
)
from cargo_backend.app.domain.containment.dispatches import DispatchService, ADDED_DURING_RECEPTION_NOTE
from cargo_backend.app.domain.containment.pallets import PalletService
from cargo_backend.app.domain.containment import transfer
from cargo_backend.app.models.enums import UnitKind
from cargo_backend.app.models.dispatch import Dispatch
from cargo_backend.app.models.order import Order
from cargo_backend.app.models.pallet import Pallet
from cargo_backend.app.models.parcel import Parcel
from cargo_backend.app.models.parcel_enums import ParcelStatus, ParcelEventType
from cargo_backend.app.models.unit_enums import DispatchStatus
from cargo_backend.app.services.event_trail import get_parcel_history


@pytest.fixture
def sent_dispatch(make_order, run):
    """Dispatch from agency 1 to agency 2 carrying the parcels of one order."""
    async def _build(weights=("2", "3")):
        order, parcels = await make_order(weights=list(weights))
        dispatch = await run(DispatchService.create, 1)
        await run(DispatchService.add_parcels_by_order, dispatch.id, order.id)
        await run(DispatchService.dispatch, dispatch.id, 2)
        return dispatch, order, parcels
    return _build


@pytest.mark.asyncio
async def test_add_parcel_starts_loading(make_order, run, load):
    order, parcels = await make_order(weights=["2.5"])
    dispatch = await run(DispatchService.create, 1)
    assert dispatch.status == DispatchStatus.DRAFT
    assert dispatch.dispatch_number.startswith("D-01-")

    await run(DispatchService.add_parcel, dispatch.id, parcels[0].tracking_code)

    stored = await load(Dispatch, dispatch.id)
    assert stored.status == DispatchStatus.LOADING
    assert stored.parcels_count == 1
    assert stored.total_weight_kg == Decimal("2.50")
    parcel = await load(Parcel, parcels[0].tracking_code)
    assert parcel.status == ParcelStatus.IN_DISPATCH
    assert parcel.dispatch_id == dispatch.id
    assert (await load(Order, order.id)).status == ParcelStatus.IN_DISPATCH


@pytest.mark.asyncio
async def test_parcel_must_be_held_by_sender(make_order, run):
    _, parcels = await make_order(agency_id=2)
    dispatch = await run(DispatchService.create, 1)

    with pytest.raises(ValidationFailureError):
        await run(DispatchService.add_parcel, dispatch.id, parcels[0].tracking_code)


@pytest.mark.asyncio
async def test_add_sealed_pallet(make_order, run, load):
    _, parcels = await make_order(weights=["1", "4"])
    pallet = await run(PalletService.create, 1)
    for parcel in parcels:
        await run(PalletService.add_parcel, pallet.id, parcel.tracking_code)
    dispatch = await run(DispatchService.create, 1)

    with pytest.raises(InvalidStateError):
        await run(DispatchService.add_pallet, dispatch.id, pallet.id)

    await run(PalletService.seal, pallet.id)
    result = await run(DispatchService.add_pallet, dispatch.id, pallet.id)
    assert result.added == 2
    assert result.skipped == 0

    stored = await load(Dispatch, dispatch.id)
    assert stored.parcels_count == 2
    assert stored.total_weight_kg == Decimal("5.00")
    stored_pallet = await load(Pallet, pallet.id)
    assert stored_pallet.dispatch_id == dispatch.id
    assert stored_pallet.parcels_count == 0
    for parcel in parcels:
        reloaded = await load(Parcel, parcel.tracking_code)
        assert reloaded.pallet_id is None
        assert reloaded.dispatch_id == dispatch.id
        assert reloaded.status == ParcelStatus.IN_DISPATCH

    other = await run(DispatchService.create, 1)
    with pytest.raises(ConflictError):
        await run(DispatchService.add_pallet, other.id, pallet.id)
    with pytest.raises(InvalidStateError):
        await run(PalletService.unseal, pallet.id)


@pytest.mark.asyncio
async def test_parcel_on_open_pallet_conflicts(make_order, run):
    _, parcels = await make_order()
    pallet = await run(PalletService.create, 1)
    await run(PalletService.add_parcel, pallet.id, parcels[0].tracking_code)
    dispatch = await run(DispatchService.create, 1)

    with pytest.raises(ConflictError):
        await run(DispatchService.add_parcel, dispatch.id, parcels[0].tracking_code)


@pytest.mark.asyncio
async def test_remove_parcel_restores_previous_status(make_order, run, load):
    _, parcels = await make_order()
    code = parcels[0].tracking_code
    dispatch = await run(DispatchService.create, 1)
    await run(DispatchService.add_parcel, dispatch.id, code)

    await run(DispatchService.remove_parcel, dispatch.id, code)

    parcel = await load(Parcel, code)
    assert parcel.status == ParcelStatus.IN_AGENCY
    assert parcel.dispatch_id is None
    stored = await load(Dispatch, dispatch.id)
    assert stored.status == DispatchStatus.DRAFT
    assert stored.parcels_count == 0


@pytest.mark.asyncio
async def test_send_checks(make_order, run):
    _, parcels = await make_order()
    dispatch = await run(DispatchService.create, 1)

    with pytest.raises(InvalidStateError):
        await run(DispatchService.dispatch, dispatch.id, 2)

    await run(DispatchService.add_parcel, dispatch.id, parcels[0].tracking_code)
    with pytest.raises(ValidationFailureError):
        await run(DispatchService.dispatch, dispatch.id, 1)

    sent = await run(DispatchService.dispatch, dispatch.id, 2)
    assert sent.status == DispatchStatus.DISPATCHED
    assert sent.receiver_agency_id == 2
    assert sent.dispatched_at is not None

    with pytest.raises(InvalidStateError):
        await run(DispatchService.remove_parcel, dispatch.id, parcels[0].tracking_code)


@pytest.mark.asyncio
async def test_full_reception(sent_dispatch, run, load):
    dispatch, order, parcels = await sent_dispatch()

    await run(DispatchService.receive_parcel, dispatch.id, parcels[0].tracking_code)
    assert (await load(Dispatch, dispatch.id)).status == DispatchStatus.RECEIVING
    assert (await load(Order, order.id)).status == ParcelStatus.PARTIALLY_IN_DISPATCH

    with pytest.raises(ConflictError):
        await run(DispatchService.receive_parcel, dispatch.id, parcels[0].tracking_code)

    await run(DispatchService.receive_parcel, dispatch.id, parcels[1].tracking_code, actor_id=8)
    stored = await load(Dispatch, dispatch.id)
    assert stored.status == DispatchStatus.RECEIVED
    assert stored.received_by_id == 8
    assert (await load(Order, order.id)).status == ParcelStatus.RECEIVED_IN_DISPATCH


@pytest.mark.asyncio
async def test_finish_reception_with_missing_parcels(sent_dispatch, run, load):
    dispatch, _, parcels = await sent_dispatch(weights=("1", "1", "1"))
    await run(DispatchService.receive_parcel, dispatch.id, parcels[0].tracking_code)

    closed = await run(DispatchService.finish_reception, dispatch.id, actor_id=3)

    assert closed.status == DispatchStatus.DISCREPANCY
    assert closed.received_at is not None
    with pytest.raises(InvalidStateError):
        await run(DispatchService.finish_reception, dispatch.id)
    with pytest.raises(InvalidStateError):
        await run(DispatchService.receive_parcel, dispatch.id, parcels[1].tracking_code)


@pytest.mark.asyncio
async def test_unexpected_parcel_is_added_during_reception(sent_dispatch, make_order, run, load, db_session):
    dispatch, _, _ = await sent_dispatch(weights=("1",))
    _, extras = await make_order(agency_id=5, weights=["6"])
    code = extras[0].tracking_code

    await run(DispatchService.receive_parcel, dispatch.id, code)

    parcel = await load(Parcel, code)
    assert parcel.dispatch_id == dispatch.id
    assert parcel.status == ParcelStatus.RECEIVED_IN_DISPATCH
    stored = await load(Dispatch, dispatch.id)
    assert stored.parcels_count == 2
    assert stored.status == DispatchStatus.RECEIVING

    history = await get_parcel_history(db_session, code)
    assert history[-1].event_type == ParcelEventType.RECEIVED_IN_DISPATCH
    assert history[-1].note == ADDED_DURING_RECEPTION_NOTE


@pytest.mark.asyncio
async def test_received_dispatch_releases_to_next_dispatch(sent_dispatch, run, load):
    first, _, parcels = await sent_dispatch(weights=("2",))
    code = parcels[0].tracking_code
    await run(DispatchService.receive_parcel, first.id, code)

    onward = await run(DispatchService.create, 2)
    await run(DispatchService.add_parcel, onward.id, code)

    parcel = await load(Parcel, code)
    assert parcel.dispatch_id == onward.id
    assert parcel.status == ParcelStatus.IN_DISPATCH
    assert (await load(Dispatch, first.id)).parcels_count == 0
    assert (await load(Dispatch, onward.id)).parcels_count == 1


@pytest.mark.asyncio
async def test_delete_dispatch(run, load):
    dispatch = await run(DispatchService.create, 1)
    await run(DispatchService.delete, dispatch.id)
    assert await load(Dispatch, dispatch.id) is None


@pytest.mark.asyncio
async def test_custody_stays_with_receiver_after_removal(sent_dispatch, run, load):
    first, _, parcels = await sent_dispatch(weights=("2",))
    code = parcels[0].tracking_code
    await run(DispatchService.receive_parcel, first.id, code)
    assert (await load(Parcel, code)).current_agency_id == 2

    onward = await run(DispatchService.create, 2)
    await run(DispatchService.add_parcel, onward.id, code)
    await run(DispatchService.remove_parcel, onward.id, code)

    parcel = await load(Parcel, code)
    assert parcel.status == ParcelStatus.IN_AGENCY
    assert parcel.dispatch_id is None
    assert parcel.agency_id == 1
    assert parcel.current_agency_id == 2

    back_home = await run(DispatchService.create, 1)
    with pytest.raises(ValidationFailureError):
        await run(DispatchService.add_parcel, back_home.id, code)

    await run(DispatchService.add_parcel, onward.id, code)
    assert (await load(Parcel, code)).dispatch_id == onward.id

    await run(DispatchService.remove_parcel, onward.id, code)
    pallet = await run(PalletService.create, 2)
    await run(PalletService.add_parcel, pallet.id, code)
    assert (await load(Parcel, code)).pallet_id == pallet.id


@pytest.mark.asyncio
async def test_units_are_locked_in_kind_order(make_order, run, mocker):
    _, parcels = await make_order()
    code = parcels[0].tracking_code
    pallet = await run(PalletService.create, 1)
    await run(PalletService.add_parcel, pallet.id, code)
    await run(PalletService.seal, pallet.id)
    dispatch = await run(DispatchService.create, 1)

    spy = mocker.spy(transfer, "lock_row")
    await run(DispatchService.add_parcel, dispatch.id, code)

    assert [(c.args[1], c.args[2]) for c in spy.call_args_list] == [(Pallet, pallet.id), (Dispatch, dispatch.id)]


@pytest.mark.asyncio
async def test_lock_units_sorts_by_kind_then_id(mocker):
    lock_row = mocker.patch.object(transfer, "lock_row", new=mocker.AsyncMock(side_effect=lambda db, model, row_id, label: (model, row_id)))

    locked = await transfer.lock_units(None, [
        (UnitKind.FLIGHT, 1),
        (UnitKind.DISPATCH, 9),
        (UnitKind.PALLET, 5),
        (UnitKind.DISPATCH, 2),
        (UnitKind.DISPATCH, 9),
    ])

    assert [c.args[2] for c in lock_row.call_args_list] == [5, 2, 9, 1]
    assert [c.args[3] for c in lock_row.call_args_list] == ["Pallet", "Dispatch", "Dispatch", "Flight"]
    assert locked[(UnitKind.DISPATCH, 9)] == (Dispatch, 9)
