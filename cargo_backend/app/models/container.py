"""
Sea container database model.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum
from cargo_backend.app.db.session import Base
from cargo_backend.app.models.mixins import TimestampMixin, AggregateMixin
from cargo_backend.app.models.unit_enums import ContainerStatus


class Container(TimestampMixin, AggregateMixin, Base):
    __tablename__ = "containers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    container_number = Column(String(40), unique=True, nullable=False, index=True)
    container_name = Column(String(100), nullable=True)
    forwarder_id = Column(Integer, nullable=False, index=True)
    status = Column(Enum(ContainerStatus), default=ContainerStatus.PENDING, nullable=False, index=True)
    actual_departure = Column(DateTime(timezone=True), nullable=True)
    actual_arrival = Column(DateTime(timezone=True), nullable=True)
    created_by_id = Column(Integer, nullable=True)

    @property
    def display_name(self) -> str:
        return self.container_name or f"#{self.id}"

    def __repr__(self):
        return f"<Container(id={self.id}, number='{self.container_number}', status='{self.status.value}')>"
