"""
Containment unit status enumerations.
"""

import enum


class PalletStatus(str, enum.Enum):
    """OPEN ⇄ SEALED. Only OPEN pallets accept or release parcels."""
    OPEN = "OPEN"
    SEALED = "SEALED"


class DispatchStatus(str, enum.Enum):
    """
    Dispatch status enumeration.

    Status flow:
        DRAFT → LOADING → DISPATCHED → RECEIVING → RECEIVED | DISCREPANCY
    """
    DRAFT = "DRAFT"
    LOADING = "LOADING"
    DISPATCHED = "DISPATCHED"
    RECEIVING = "RECEIVING"
    RECEIVED = "RECEIVED"
    DISCREPANCY = "DISCREPANCY"
    CANCELLED = "CANCELLED"


class ContainerStatus(str, enum.Enum):
    """
    Sea container status enumeration.

    Status flow:
        PENDING → LOADING → DEPARTED → IN_TRANSIT → AT_PORT
        → CUSTOMS_HOLD ⇄ CUSTOMS_CLEARED → UNLOADING
    """
    PENDING = "PENDING"
    LOADING = "LOADING"
    DEPARTED = "DEPARTED"
    IN_TRANSIT = "IN_TRANSIT"
    AT_PORT = "AT_PORT"
    CUSTOMS_HOLD = "CUSTOMS_HOLD"
    CUSTOMS_CLEARED = "CUSTOMS_CLEARED"
    UNLOADING = "UNLOADING"


class FlightStatus(str, enum.Enum):
    """Same flow as containers, arriving as LANDED instead of AT_PORT."""
    PENDING = "PENDING"
    LOADING = "LOADING"
    DEPARTED = "DEPARTED"
    IN_TRANSIT = "IN_TRANSIT"
    LANDED = "LANDED"
    CUSTOMS_HOLD = "CUSTOMS_HOLD"
    CUSTOMS_CLEARED = "CUSTOMS_CLEARED"
    UNLOADING = "UNLOADING"


class RouteStatus(str, enum.Enum):
    PLANNING = "PLANNING"
    READY = "READY"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class DeliveryStatus(str, enum.Enum):
    PENDING = "PENDING"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"
    RESCHEDULED = "RESCHEDULED"
