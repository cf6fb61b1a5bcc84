"""
Pydantic schemas for class-related request/response validation.
"""

import re
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, computed_field, field_validator

_TAG_RE = re.compile(r"<[^>]*>")


def _sanitize(value: str) -> str:
    return _TAG_RE.sub("", value).replace("\0", "").strip()


class ClassCreate(BaseModel):
    title: str = Field(..., min_length=3, max_length=100)
    description: str = Field("", max_length=500)
    capacity: int = Field(..., gt=0, le=100000)
    start_at: datetime
    end_at: datetime

    @field_validator("title", "description", mode="before")
    @classmethod
    def strip_markup(cls, value):
        if isinstance(value, str):
            return _sanitize(value)
        return value


class ClassResponse(BaseModel):
    id: UUID
    title: str
    description: str
    capacity: int
    start_at: datetime
    end_at: datetime
    host_id: UUID
    created_at: datetime
    current_participants: int = 0
    available_spots: int = 0
    is_fully_booked: bool = False

    model_config = {"from_attributes": True}

    @classmethod
    def from_class(cls, mclass, occupancy: int) -> "ClassResponse":
        response = cls.model_validate(mclass)
        return response.model_copy(update={
            "current_participants": occupancy,
            "available_spots": max(0, mclass.capacity - occupancy),
            "is_fully_booked": occupancy >= mclass.capacity,
        })


class ClassBrief(BaseModel):
    id: UUID
    title: str
    start_at: datetime
    end_at: datetime
    host_id: UUID

    model_config = {"from_attributes": True}


class Occupancy(BaseModel):
    class_id: UUID
    current: int
    max: int

    @computed_field
    @property
    def available(self) -> int:
        return max(0, self.max - self.current)

    @computed_field
    @property
    def is_full(self) -> bool:
        return self.current >= self.max
