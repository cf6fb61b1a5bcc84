"""
Pydantic schemas for application records.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from enrollment.schemas.mclass import ClassBrief


class ApplicationRecord(BaseModel):
    id: UUID
    user_id: UUID
    class_id: UUID
    applied_at: datetime

    model_config = {"from_attributes": True}


class ApplicationSummary(ApplicationRecord):
    # Populated for a user's own history, omitted on class rosters
    mclass: Optional[ClassBrief] = None

    @classmethod
    def without_class(cls, application) -> "ApplicationSummary":
        """Roster entry; reads only the application's own columns."""
        return cls(
            id=application.id,
            user_id=application.user_id,
            class_id=application.class_id,
            applied_at=application.applied_at,
        )
