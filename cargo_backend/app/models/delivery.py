"""
Last-mile delivery models: routes and per-parcel assignments.
"""

from sqlalchemy import Column, Integer, String, Text, Date, DateTime, ForeignKey, Enum
from cargo_backend.app.db.session import Base
from cargo_backend.app.models.mixins import TimestampMixin
from cargo_backend.app.models.unit_enums import RouteStatus, DeliveryStatus


class DeliveryRoute(TimestampMixin, Base):
    __tablename__ = "delivery_routes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    route_number = Column(String(40), unique=True, nullable=False, index=True)
    carrier_id = Column(Integer, nullable=False, index=True)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=False)
    courier_id = Column(Integer, nullable=True, index=True)
    scheduled_date = Column(Date, nullable=False)
    status = Column(Enum(RouteStatus), default=RouteStatus.PLANNING, nullable=False, index=True)
    parcels_count = Column(Integer, default=0, nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_by_id = Column(Integer, nullable=True)

    def __repr__(self):
        return f"<DeliveryRoute(id={self.id}, number='{self.route_number}', status='{self.status.value}')>"


class DeliveryAssignment(TimestampMixin, Base):
    """
    Delivery assignment for one parcel.

    Belongs to a route, or is assigned straight to a courier when `route_id`
    is empty. The unique parcel reference allows one assignment per parcel.
    """
    __tablename__ = "delivery_assignments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    parcel_id = Column(Integer, ForeignKey("parcels.id"), unique=True, nullable=False)
    route_id = Column(Integer, ForeignKey("delivery_routes.id"), nullable=True, index=True)
    courier_id = Column(Integer, nullable=True, index=True)
    assigned_by_id = Column(Integer, nullable=True)
    status = Column(Enum(DeliveryStatus), default=DeliveryStatus.PENDING, nullable=False, index=True)

    attempts = Column(Integer, default=0, nullable=False)
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    # Proof of delivery
    recipient_name = Column(String(200), nullable=True)
    recipient_id_number = Column(String(50), nullable=True)
    signature = Column(Text, nullable=True)
    photo_proof = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    def __repr__(self):
        return f"<DeliveryAssignment(id={self.id}, parcel_id={self.parcel_id}, status='{self.status.value}')>"
