"""
Order database model.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum
from cargo_backend.app.db.session import Base
from cargo_backend.app.models.mixins import TimestampMixin
from cargo_backend.app.models.parcel_enums import ParcelStatus


class Order(TimestampMixin, Base):
    """
    Customer order grouping one or more parcels.

    `status` and `status_details` are derived from the order's parcels and are
    only ever written by the order status aggregator.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    agency_id = Column(Integer, nullable=False, index=True)
    created_by_id = Column(Integer, nullable=True)

    status = Column(Enum(ParcelStatus), default=ParcelStatus.IN_AGENCY, nullable=False, index=True)
    status_details = Column(String(500), nullable=True)

    deleted_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Order(id={self.id}, agency_id={self.agency_id}, status='{self.status.value}')>"
