"""
Application ledger: data access for application records.

The (user_id, class_id) unique constraint lives in the database, and
`create` reports a violation as DuplicateApplication instead of leaking the
driver's IntegrityError. Like the class registry, nothing here commits.
"""

from uuid import UUID

from sqlalchemy import select, func, delete as sa_delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from enrollment.core.exceptions import ApplicationNotFound, DuplicateApplication
from enrollment.models.application import Application


async def create(session: AsyncSession, user_id: UUID, class_id: UUID) -> Application:
    application = Application(user_id=user_id, class_id=class_id)
    session.add(application)
    try:
        await session.flush()
    except IntegrityError as e:
        raise DuplicateApplication(class_id, user_id, e) from e
    return application


async def delete(session: AsyncSession, user_id: UUID, class_id: UUID) -> None:
    result = await session.execute(
        sa_delete(Application).where(
            Application.user_id == user_id,
            Application.class_id == class_id,
        )
    )
    if result.rowcount == 0:
        raise ApplicationNotFound(class_id, user_id)


async def delete_for_class(session: AsyncSession, class_id: UUID) -> int:
    result = await session.execute(sa_delete(Application).where(Application.class_id == class_id))
    return result.rowcount


async def exists(session: AsyncSession, user_id: UUID, class_id: UUID) -> bool:
    result = await session.execute(
        select(Application.id).where(
            Application.user_id == user_id,
            Application.class_id == class_id,
        )
    )
    return result.first() is not None


async def count_for_class(session: AsyncSession, class_id: UUID) -> int:
    result = await session.execute(
        select(func.count(Application.id)).where(Application.class_id == class_id)
    )
    return result.scalar_one()


async def list_for_class(
    session: AsyncSession,
    class_id: UUID,
    page: int = 1,
    page_size: int = 10,
) -> tuple[list[Application], int]:
    """Class roster, first applicant first."""
    total = await count_for_class(session, class_id)
    result = await session.execute(
        select(Application)
        .where(Application.class_id == class_id)
        .order_by(Application.applied_at.asc(), Application.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def list_for_user(
    session: AsyncSession,
    user_id: UUID,
    page: int = 1,
    page_size: int = 10,
) -> tuple[list[Application], int]:
    """A user's applications, most recent first, with the class loaded."""
    total = (
        await session.execute(
            select(func.count(Application.id)).where(Application.user_id == user_id)
        )
    ).scalar_one()
    result = await session.execute(
        select(Application)
        .options(joinedload(Application.mclass))
        .where(Application.user_id == user_id)
        .order_by(Application.applied_at.desc(), Application.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total
