"""
Class model: a scheduled class with a fixed number of seats.

Key design decisions:
- Occupancy is NOT stored; it is always COUNT(applications) for the class,
  read inside the admission transaction, so there is no counter to drift
- `capacity` has no update path once the class exists
- Index on `start_at` for the default listing order, on `end_at` for the
  "hide expired classes" filter
"""

import uuid

from sqlalchemy import Column, String, Integer, Uuid, Index, CheckConstraint
from sqlalchemy.orm import relationship

from enrollment.db.base import Base, TimestampMixin, UTCDateTime


class MClass(Base, TimestampMixin):
    __tablename__ = "classes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(100), nullable=False)
    description = Column(String(500), nullable=False, default="")
    capacity = Column(Integer, nullable=False)
    start_at = Column(UTCDateTime(), nullable=False)
    end_at = Column(UTCDateTime(), nullable=False)
    host_id = Column(Uuid, nullable=False, index=True)

    # Rows are removed with explicit bulk deletes; never loaded through here
    applications = relationship(
        "Application",
        back_populates="mclass",
        passive_deletes=True,
        lazy="raise",
    )

    __table_args__ = (
        CheckConstraint("capacity > 0", name="check_class_capacity_positive"),
        CheckConstraint("start_at < end_at", name="check_class_schedule_order"),
        Index("ix_classes_start_at", "start_at"),
        Index("ix_classes_end_at", "end_at"),
    )

    def __repr__(self) -> str:
        return f"<MClass(id={self.id}, title={self.title}, capacity={self.capacity})>"
