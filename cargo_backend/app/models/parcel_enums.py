"""
Parcel status and event type enumerations.
"""

import enum


class ParcelStatus(str, enum.Enum):
    """
    Parcel status enumeration.

    Base statuses are the ones a parcel itself can hold, listed here in
    advancement order. PARTIALLY_* values only ever appear on orders, as the
    composite of mixed parcel statuses.
    """
    IN_AGENCY = "IN_AGENCY"
    IN_PALLET = "IN_PALLET"
    IN_DISPATCH = "IN_DISPATCH"
    RECEIVED_IN_DISPATCH = "RECEIVED_IN_DISPATCH"
    IN_WAREHOUSE = "IN_WAREHOUSE"
    IN_CONTAINER = "IN_CONTAINER"
    IN_TRANSIT = "IN_TRANSIT"
    AT_PORT_OF_ENTRY = "AT_PORT_OF_ENTRY"
    CUSTOMS_INSPECTION = "CUSTOMS_INSPECTION"
    RELEASED_FROM_CUSTOMS = "RELEASED_FROM_CUSTOMS"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    FAILED_DELIVERY = "FAILED_DELIVERY"
    DELIVERED = "DELIVERED"
    RETURNED_TO_SENDER = "RETURNED_TO_SENDER"
    CANCELLED = "CANCELLED"

    # Order-only composite statuses
    PARTIALLY_IN_PALLET = "PARTIALLY_IN_PALLET"
    PARTIALLY_IN_DISPATCH = "PARTIALLY_IN_DISPATCH"
    PARTIALLY_IN_CONTAINER = "PARTIALLY_IN_CONTAINER"
    PARTIALLY_IN_TRANSIT = "PARTIALLY_IN_TRANSIT"
    PARTIALLY_AT_PORT = "PARTIALLY_AT_PORT"
    PARTIALLY_IN_CUSTOMS = "PARTIALLY_IN_CUSTOMS"
    PARTIALLY_RELEASED = "PARTIALLY_RELEASED"
    PARTIALLY_OUT_FOR_DELIVERY = "PARTIALLY_OUT_FOR_DELIVERY"
    PARTIALLY_DELIVERED = "PARTIALLY_DELIVERED"


class ParcelEventType(str, enum.Enum):
    """
    Parcel event types.

    Public (customer-visible):
        BILLED, IN_TRANSIT, ARRIVED_DESTINATION, CUSTOMS_PROCESSING,
        CUSTOMS_RELEASED, OUT_FOR_DELIVERY, DELIVERED, DELIVERY_FAILED,
        DELIVERY_RESCHEDULED
    Everything else is internal operations detail.
    """
    BILLED = "BILLED"
    IN_TRANSIT = "IN_TRANSIT"
    ARRIVED_DESTINATION = "ARRIVED_DESTINATION"
    CUSTOMS_PROCESSING = "CUSTOMS_PROCESSING"
    CUSTOMS_RELEASED = "CUSTOMS_RELEASED"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    DELIVERY_FAILED = "DELIVERY_FAILED"
    DELIVERY_RESCHEDULED = "DELIVERY_RESCHEDULED"

    ADDED_TO_PALLET = "ADDED_TO_PALLET"
    REMOVED_FROM_PALLET = "REMOVED_FROM_PALLET"
    ADDED_TO_DISPATCH = "ADDED_TO_DISPATCH"
    REMOVED_FROM_DISPATCH = "REMOVED_FROM_DISPATCH"
    RECEIVED_IN_DISPATCH = "RECEIVED_IN_DISPATCH"
    LOADED_TO_CONTAINER = "LOADED_TO_CONTAINER"
    REMOVED_FROM_CONTAINER = "REMOVED_FROM_CONTAINER"
    LOADED_TO_FLIGHT = "LOADED_TO_FLIGHT"
    REMOVED_FROM_FLIGHT = "REMOVED_FROM_FLIGHT"
    WAREHOUSE_RECEIVED = "WAREHOUSE_RECEIVED"
    WAREHOUSE_TRANSFERRED = "WAREHOUSE_TRANSFERRED"
    ASSIGNED_TO_ROUTE = "ASSIGNED_TO_ROUTE"
    ASSIGNED_TO_MESSENGER = "ASSIGNED_TO_MESSENGER"
    NOTE_ADDED = "NOTE_ADDED"
    STATUS_CORRECTED = "STATUS_CORRECTED"
