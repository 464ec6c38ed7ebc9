"""
Human-readable status detail strings for parcels and orders.
"""

from collections import OrderedDict
from typing import Dict, Iterable, Optional

from cargo_backend.app.models.parcel import Parcel
from cargo_backend.app.models.parcel_enums import ParcelStatus

STATUS_TEXT = {
    ParcelStatus.IN_AGENCY: "In agency",
    ParcelStatus.IN_PALLET: "In pallet",
    ParcelStatus.IN_DISPATCH: "In dispatch",
    ParcelStatus.RECEIVED_IN_DISPATCH: "Received in dispatch",
    ParcelStatus.IN_WAREHOUSE: "In warehouse",
    ParcelStatus.IN_CONTAINER: "In container",
    ParcelStatus.IN_TRANSIT: "In transit",
    ParcelStatus.AT_PORT_OF_ENTRY: "At port of entry",
    ParcelStatus.CUSTOMS_INSPECTION: "Customs inspection",
    ParcelStatus.RELEASED_FROM_CUSTOMS: "Released from customs",
    ParcelStatus.OUT_FOR_DELIVERY: "Out for delivery",
    ParcelStatus.FAILED_DELIVERY: "Delivery failed",
    ParcelStatus.DELIVERED: "Delivered",
    ParcelStatus.RETURNED_TO_SENDER: "Returned to sender",
    ParcelStatus.CANCELLED: "Cancelled",
}

# Statuses for which the holding unit is the best description of where a parcel is.
HELD_STATUSES = frozenset({
    ParcelStatus.IN_PALLET,
    ParcelStatus.IN_DISPATCH,
    ParcelStatus.RECEIVED_IN_DISPATCH,
    ParcelStatus.IN_WAREHOUSE,
    ParcelStatus.IN_CONTAINER,
    ParcelStatus.IN_TRANSIT,
})


def status_text(status: ParcelStatus) -> str:
    return STATUS_TEXT.get(ParcelStatus(status), str(status))


def _holder_label(parcel: Parcel, container_name: Optional[str]) -> Optional[str]:
    if parcel.container_id is not None:
        return f"In Container {container_name or f'#{parcel.container_id}'}"
    if parcel.flight_id is not None:
        return f"In Flight #{parcel.flight_id}"
    if parcel.dispatch_id is not None:
        if parcel.status == ParcelStatus.RECEIVED_IN_DISPATCH:
            return f"Received in Dispatch #{parcel.dispatch_id}"
        return f"In Dispatch #{parcel.dispatch_id}"
    if parcel.pallet_id is not None:
        return f"In Pallet #{parcel.pallet_id}"
    if parcel.current_warehouse_id is not None:
        return f"In Warehouse #{parcel.current_warehouse_id}"
    return None


def build_parcel_status_details(parcel: Parcel, container_name: Optional[str] = None) -> str:
    """
    Describe where a parcel is.

    Holder precedence: container, flight, dispatch, pallet, warehouse. Once a
    parcel is past its holder's phase (customs, delivery) the status text wins.
    """
    if parcel.status in HELD_STATUSES:
        label = _holder_label(parcel, container_name)
        if label:
            return label
    return status_text(parcel.status)


def build_order_status_details(
    parcels: Iterable[Parcel],
    container_names: Optional[Dict[int, str]] = None,
) -> str:
    """
    Summarize an order's parcels, e.g. "2 in Dispatch #5, 1 in Container MSCU1234567".

    Groups keep the order of first appearance.
    """
    parcels = list(parcels)
    container_names = container_names or {}
    if not parcels:
        return status_text(ParcelStatus.IN_AGENCY)

    groups: "OrderedDict[str, int]" = OrderedDict()
    for parcel in parcels:
        label = build_parcel_status_details(parcel, container_names.get(parcel.container_id))
        groups[label] = groups.get(label, 0) + 1

    if len(groups) == 1 and status_text(ParcelStatus.IN_AGENCY) in groups:
        return "All in agency"

    return ", ".join(f"{count} {_lower_first(label)}" for label, count in groups.items())


def _lower_first(label: str) -> str:
    return label[:1].lower() + label[1:]
