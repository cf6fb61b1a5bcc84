"""
Class registry: data access for class records.

Every function takes the caller's AsyncSession and never commits, so the
admission controller can compose them into one transaction.
"""

from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from enrollment.core.exceptions import ClassNotFound, InvalidClassSchedule
from enrollment.core.logging import get_logger
from enrollment.db.base import utcnow
from enrollment.models.application import Application
from enrollment.models.mclass import MClass
from enrollment.schemas.mclass import ClassCreate
from enrollment.services import application_ledger

logger = get_logger(__name__)

MIN_CLASS_DURATION = timedelta(minutes=30)
MAX_CLASS_DURATION = timedelta(hours=8)


def _occupancy_column():
    return (
        select(func.count(Application.id))
        .where(Application.class_id == MClass.id)
        .correlate(MClass)
        .scalar_subquery()
    )


def validate_schedule(start_at: datetime, end_at: datetime, now: Optional[datetime] = None) -> None:
    """Raise InvalidClassSchedule unless the class is in the future and 30m..8h long."""
    now = now or utcnow()
    if start_at.tzinfo is None or end_at.tzinfo is None:
        raise InvalidClassSchedule("Start and end must be timezone-aware")
    if start_at <= now:
        raise InvalidClassSchedule("Start date must be in the future", start_at=start_at.isoformat())
    if end_at <= start_at:
        raise InvalidClassSchedule("End date must be after start date")

    duration = end_at - start_at
    if duration < MIN_CLASS_DURATION:
        raise InvalidClassSchedule("Class duration must be at least 30 minutes")
    if duration > MAX_CLASS_DURATION:
        raise InvalidClassSchedule("Class duration must not exceed 8 hours")


async def create_class(
    session: AsyncSession,
    data: ClassCreate,
    host_id: UUID,
    now: Optional[datetime] = None,
) -> MClass:
    validate_schedule(data.start_at, data.end_at, now)

    mclass = MClass(
        title=data.title,
        description=data.description,
        capacity=data.capacity,
        start_at=data.start_at,
        end_at=data.end_at,
        host_id=host_id,
    )
    session.add(mclass)
    await session.flush()

    logger.info("class_created", class_id=str(mclass.id), title=mclass.title, capacity=mclass.capacity)
    return mclass


async def get_class(session: AsyncSession, class_id: UUID) -> MClass:
    result = await session.execute(select(MClass).where(MClass.id == class_id))
    mclass = result.scalar_one_or_none()
    if not mclass:
        raise ClassNotFound(class_id)
    return mclass


async def get_class_for_update(session: AsyncSession, class_id: UUID) -> MClass:
    """
    Load a class and take a row lock on it (SELECT ... FOR UPDATE).

    Every transaction that changes a class's occupancy goes through here
    first, so on PostgreSQL concurrent admitters from other processes queue on
    the row. SQLite has no row locks; its BEGIN IMMEDIATE covers the same need.
    """
    result = await session.execute(
        select(MClass)
        .where(MClass.id == class_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    mclass = result.scalar_one_or_none()
    if not mclass:
        raise ClassNotFound(class_id)
    return mclass


async def list_classes(
    session: AsyncSession,
    page: int = 1,
    page_size: int = 10,
    include_expired: bool = False,
    now: Optional[datetime] = None,
) -> tuple[list[tuple[MClass, int]], int]:
    """
    List classes ordered by start time, each with its current occupancy.
    Without include_expired, classes that have already ended are hidden.
    """
    occupancy = _occupancy_column()

    query = select(MClass)
    if not include_expired:
        query = query.where(MClass.end_at >= (now or utcnow()))

    count_query = select(func.count()).select_from(query.subquery())
    total = (await session.execute(count_query)).scalar()

    rows = await session.execute(
        query
        .add_columns(occupancy)
        .order_by(MClass.start_at.asc(), MClass.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return [(mclass, count) for mclass, count in rows.all()], total


async def get_occupancy(session: AsyncSession, class_id: UUID) -> tuple[int, int]:
    """Current application count and capacity, read in one statement."""
    occupancy = _occupancy_column()
    result = await session.execute(
        select(MClass.capacity, occupancy).where(MClass.id == class_id)
    )
    row = result.one_or_none()
    if row is None:
        raise ClassNotFound(class_id)
    capacity, current = row
    return current, capacity


async def delete_class(session: AsyncSession, class_id: UUID) -> int:
    """
    Delete a class and all of its applications in the caller's transaction.
    Returns the number of applications removed.
    """
    await get_class_for_update(session, class_id)

    removed = await application_ledger.delete_for_class(session, class_id)
    await session.execute(delete(MClass).where(MClass.id == class_id))

    logger.info("class_deleted", class_id=str(class_id), applications_removed=removed)
    return removed
