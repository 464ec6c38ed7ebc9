"""
Carrier warehouse database model.
"""

from sqlalchemy import Column, Integer, String, Boolean
from cargo_backend.app.db.session import Base
from cargo_backend.app.models.mixins import TimestampMixin


class Warehouse(TimestampMixin, Base):
    """Destination-side warehouse holding custody of released parcels."""
    __tablename__ = "warehouses"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    carrier_id = Column(Integer, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    parcels_count = Column(Integer, default=0, nullable=False)

    def __repr__(self):
        return f"<Warehouse(id={self.id}, name='{self.name}', carrier_id={self.carrier_id})>"
