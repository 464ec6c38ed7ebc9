"""
Parcel database model.
"""

from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, ForeignKey, Enum, CheckConstraint
)
from cargo_backend.app.db.session import Base
from cargo_backend.app.models.enums import ServiceType, UnitKind
from cargo_backend.app.models.mixins import TimestampMixin
from cargo_backend.app.models.parcel_enums import ParcelStatus

HOLDER_COLUMNS = {
    UnitKind.PALLET: "pallet_id",
    UnitKind.DISPATCH: "dispatch_id",
    UnitKind.CONTAINER: "container_id",
    UnitKind.FLIGHT: "flight_id",
}


def _at_most_one(columns) -> str:
    return " + ".join(f"(CASE WHEN {c} IS NULL THEN 0 ELSE 1 END)" for c in columns) + " <= 1"


class Parcel(TimestampMixin, Base):
    """
    Parcel model.

    A parcel is held by at most one of pallet, dispatch, container or flight
    at any time. Warehouse custody (`current_warehouse_id`) is tracked
    independently of that holder. `current_agency_id` is the agency holding the
    parcel outside a warehouse; it moves to the receiver when a dispatch hands
    the parcel over. Parcels are never physically deleted.
    """
    __tablename__ = "parcels"
    __table_args__ = (
        CheckConstraint(_at_most_one(HOLDER_COLUMNS.values()), name="ck_parcels_single_holder"),
        CheckConstraint("weight_kg > 0", name="ck_parcels_positive_weight"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tracking_code = Column(String(32), unique=True, nullable=False, index=True)
    description = Column(String(500), nullable=True)
    weight_kg = Column(Numeric(10, 2), nullable=False)

    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)
    agency_id = Column(Integer, nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    service_type = Column(Enum(ServiceType), nullable=False)

    status = Column(Enum(ParcelStatus), default=ParcelStatus.IN_AGENCY, nullable=False, index=True)
    status_details = Column(String(255), nullable=True)

    # Exclusive holder
    pallet_id = Column(Integer, ForeignKey("pallets.id"), nullable=True, index=True)
    dispatch_id = Column(Integer, ForeignKey("dispatches.id"), nullable=True, index=True)
    container_id = Column(Integer, ForeignKey("containers.id"), nullable=True, index=True)
    flight_id = Column(Integer, ForeignKey("flights.id"), nullable=True, index=True)

    # Physical custody
    current_agency_id = Column(Integer, nullable=True, index=True)
    current_warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=True, index=True)

    deleted_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Parcel(id={self.id}, code='{self.tracking_code}', status='{self.status.value}')>"
