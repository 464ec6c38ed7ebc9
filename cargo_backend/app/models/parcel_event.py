"""
Parcel event database model.

The per-parcel event trail. Rows are append-only: the mapper refuses any
update or delete of an existing row.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum, CheckConstraint, event
from cargo_backend.app.core.exceptions import ImmutableEventError
from cargo_backend.app.db.session import Base
from cargo_backend.app.models.mixins import utcnow
from cargo_backend.app.models.parcel import _at_most_one
from cargo_backend.app.models.parcel_enums import ParcelStatus, ParcelEventType

UNIT_COLUMNS = (
    "pallet_id", "dispatch_id", "container_id", "flight_id", "warehouse_id", "delivery_route_id",
)


class ParcelEvent(Base):
    __tablename__ = "parcel_events"
    __table_args__ = (
        CheckConstraint(_at_most_one(UNIT_COLUMNS), name="ck_parcel_events_single_unit"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    parcel_id = Column(Integer, ForeignKey("parcels.id"), nullable=False, index=True)
    event_type = Column(Enum(ParcelEventType), nullable=False, index=True)
    status = Column(Enum(ParcelStatus), nullable=False)
    status_details = Column(String(255), nullable=True)
    note = Column(Text, nullable=True)
    actor_id = Column(Integer, nullable=True)

    # Unit that triggered the event (at most one)
    pallet_id = Column(Integer, ForeignKey("pallets.id"), nullable=True)
    dispatch_id = Column(Integer, ForeignKey("dispatches.id"), nullable=True)
    container_id = Column(Integer, ForeignKey("containers.id"), nullable=True)
    flight_id = Column(Integer, ForeignKey("flights.id"), nullable=True)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=True)
    delivery_route_id = Column(Integer, ForeignKey("delivery_routes.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<ParcelEvent(id={self.id}, parcel_id={self.parcel_id}, type='{self.event_type.value}')>"


@event.listens_for(ParcelEvent, "before_update")
@event.listens_for(ParcelEvent, "before_delete")
def _refuse_event_mutation(mapper, connection, target):
    raise ImmutableEventError(target.id)
