"""
Column mixins shared by the tracking models.
"""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Column, Integer, Numeric, DateTime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class AggregateMixin:
    """
    Running totals over the parcels currently attached to a unit.

    Maintained incrementally by the transfer protocol and never recomputed
    from scratch on the write path.
    """
    total_weight_kg = Column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    parcels_count = Column(Integer, default=0, nullable=False)
