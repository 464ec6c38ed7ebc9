"""
Sequence counter model.
"""

from sqlalchemy import Column, Integer, Date, Enum, UniqueConstraint
from cargo_backend.app.db.session import Base
from cargo_backend.app.models.enums import CounterScope


class Counter(Base):
    """
    Keyed atomic counter, one row per (scope, owner, day).

    Created lazily on first use, only ever incremented, never deleted.
    """
    __tablename__ = "counters"
    __table_args__ = (
        UniqueConstraint("scope", "owner_id", "day", name="uq_counters_scope_owner_day"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    scope = Column(Enum(CounterScope), nullable=False)
    owner_id = Column(Integer, nullable=False)
    day = Column(Date, nullable=False)
    value = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<Counter(scope='{self.scope.value}', owner_id={self.owner_id}, day={self.day}, value={self.value})>"
