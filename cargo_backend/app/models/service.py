"""
Shipping service model.
"""

from sqlalchemy import Column, Integer, String, Enum, Boolean
from cargo_backend.app.db.session import Base
from cargo_backend.app.models.enums import ServiceType


class Service(Base):
    """A shipping product offered to agencies (sea freight, air cargo)."""
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    service_type = Column(Enum(ServiceType), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<Service(id={self.id}, name='{self.name}', type='{self.service_type.value}')>"
