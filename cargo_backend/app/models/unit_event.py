"""
Unit-level status event model for containers and flights.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, Enum, Index, event
from cargo_backend.app.core.exceptions import ImmutableEventError
from cargo_backend.app.db.session import Base
from cargo_backend.app.models.enums import UnitKind
from cargo_backend.app.models.mixins import utcnow


class UnitEvent(Base):
    """Append-only log of status changes on a container or flight."""
    __tablename__ = "unit_events"
    __table_args__ = (
        Index("ix_unit_events_unit", "unit_kind", "unit_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    unit_kind = Column(Enum(UnitKind), nullable=False)
    unit_id = Column(Integer, nullable=False)
    status = Column(String(30), nullable=False)
    location = Column(String(200), nullable=True)
    description = Column(Text, nullable=True)
    reference = Column(String(100), nullable=True)
    actor_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<UnitEvent(id={self.id}, unit={self.unit_kind.value}#{self.unit_id}, status='{self.status}')>"


@event.listens_for(UnitEvent, "before_update")
@event.listens_for(UnitEvent, "before_delete")
def _refuse_unit_event_mutation(mapper, connection, target):
    raise ImmutableEventError(target.id)
