"""
Dispatch database model.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum
from cargo_backend.app.db.session import Base
from cargo_backend.app.models.mixins import TimestampMixin, AggregateMixin
from cargo_backend.app.models.unit_enums import DispatchStatus


class Dispatch(TimestampMixin, AggregateMixin, Base):
    """
    Inter-agency shipment of parcels from a sender agency to a receiver.

    Aggregates hold the declared weight and piece count loaded at the sender.
    """
    __tablename__ = "dispatches"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    dispatch_number = Column(String(40), unique=True, nullable=False, index=True)
    sender_agency_id = Column(Integer, nullable=False, index=True)
    receiver_agency_id = Column(Integer, nullable=True, index=True)
    status = Column(Enum(DispatchStatus), default=DispatchStatus.DRAFT, nullable=False, index=True)
    created_by_id = Column(Integer, nullable=True)
    received_by_id = Column(Integer, nullable=True)
    dispatched_at = Column(DateTime(timezone=True), nullable=True)
    received_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Dispatch(id={self.id}, number='{self.dispatch_number}', status='{self.status.value}')>"
