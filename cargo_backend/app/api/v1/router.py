"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from cargo_backend.app.api.v1.endpoints import (
    orders, parcels,
    pallets, dispatches,
    containers, flights,
    warehouses, delivery
)

router = APIRouter()

# Intake and tracking
router.include_router(orders.router)
router.include_router(parcels.router)
router.include_router(parcels.public_router)

# Origin agency
router.include_router(pallets.router)
router.include_router(dispatches.router)

# International transport
router.include_router(containers.router)
router.include_router(flights.router)

# Destination carrier
router.include_router(warehouses.router)
router.include_router(delivery.router)
