"""
Pallet database model.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, Enum
from cargo_backend.app.db.session import Base
from cargo_backend.app.models.mixins import TimestampMixin, AggregateMixin
from cargo_backend.app.models.unit_enums import PalletStatus


class Pallet(TimestampMixin, AggregateMixin, Base):
    """Agency-side grouping of parcels, later moved into a dispatch as a whole."""
    __tablename__ = "pallets"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    pallet_number = Column(String(40), unique=True, nullable=False, index=True)
    agency_id = Column(Integer, nullable=False, index=True)
    status = Column(Enum(PalletStatus), default=PalletStatus.OPEN, nullable=False)
    dispatch_id = Column(Integer, ForeignKey("dispatches.id"), nullable=True, index=True)
    created_by_id = Column(Integer, nullable=True)

    def __repr__(self):
        return f"<Pallet(id={self.id}, number='{self.pallet_number}', status='{self.status.value}')>"
