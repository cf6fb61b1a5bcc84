"""
Shared schemas: the calling actor and paginated results.
"""

import math
from typing import Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel

T = TypeVar("T")


class Actor(BaseModel):
    """Authenticated caller, as resolved by the auth collaborator."""

    user_id: UUID
    is_admin: bool = False

    model_config = {"frozen": True}


class Page(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, items: list, total: int, page: int, page_size: int) -> "Page":
        total_pages = math.ceil(total / page_size) if page_size else 0
        return cls(
            items=items,
            total=total,
            page=page,
            page_size=page_size,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )
