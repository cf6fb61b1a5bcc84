"""
Application model: one user's admitted seat in one class.

Key design decisions:
- Unique constraint on (user_id, class_id) is the final guard against
  duplicate admission, even when two inserts race past the duplicate check
- No status column: cancelling deletes the row, so occupancy is a plain COUNT
- `applied_at` is set in Python for microsecond ordering on every backend
"""

import uuid

from sqlalchemy import Column, ForeignKey, Index, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from enrollment.db.base import Base, UTCDateTime, utcnow


class Application(Base):
    __tablename__ = "applications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False)
    class_id = Column(Uuid, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False)
    applied_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    mclass = relationship("MClass", back_populates="applications", lazy="raise")

    __table_args__ = (
        UniqueConstraint("user_id", "class_id", name="uq_user_class_application"),
        # Class roster listing and occupancy COUNT
        Index("ix_applications_class_applied", "class_id", "applied_at"),
        # "My applications", newest first
        Index("ix_applications_user_applied", "user_id", "applied_at"),
    )

    def __repr__(self) -> str:
        return f"<Application(id={self.id}, user={self.user_id}, class={self.class_id})>"
