"""
Shared enumerations.
"""

import enum


class ServiceType(str, enum.Enum):
    """Transport mode of a shipping service."""
    MARITIME = "MARITIME"
    AIR = "AIR"


class UnitKind(str, enum.Enum):
    """
    Containment unit kinds.

    PALLET, DISPATCH, CONTAINER and FLIGHT are exclusive holders (a parcel
    references at most one of them). WAREHOUSE custody and DELIVERY_ROUTE
    assignment are tracked independently.
    """
    PALLET = "PALLET"
    DISPATCH = "DISPATCH"
    CONTAINER = "CONTAINER"
    FLIGHT = "FLIGHT"
    WAREHOUSE = "WAREHOUSE"
    DELIVERY_ROUTE = "DELIVERY_ROUTE"


class CounterScope(str, enum.Enum):
    TRACKING = "TRACKING"
    PALLET = "PALLET"
    DISPATCH = "DISPATCH"
    ROUTE = "ROUTE"
