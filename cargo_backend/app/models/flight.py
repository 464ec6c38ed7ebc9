"""
Air cargo flight database model.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum
from cargo_backend.app.db.session import Base
from cargo_backend.app.models.mixins import TimestampMixin, AggregateMixin
from cargo_backend.app.models.unit_enums import FlightStatus


class Flight(TimestampMixin, AggregateMixin, Base):
    __tablename__ = "flights"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    awb_number = Column(String(40), unique=True, nullable=False, index=True)
    flight_number = Column(String(20), nullable=True)
    forwarder_id = Column(Integer, nullable=False, index=True)
    status = Column(Enum(FlightStatus), default=FlightStatus.PENDING, nullable=False, index=True)
    actual_departure = Column(DateTime(timezone=True), nullable=True)
    actual_arrival = Column(DateTime(timezone=True), nullable=True)
    created_by_id = Column(Integer, nullable=True)

    def __repr__(self):
        return f"<Flight(id={self.id}, awb='{self.awb_number}', status='{self.status.value}')>"
