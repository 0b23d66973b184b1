import logging
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from townbook.dependencies.database import side_session
from townbook.models.notification import Notification

logger = logging.getLogger(__name__)


async def create_notification(
    db: AsyncSession,
    user_id: int,
    title: str,
    message: str,
    related_reservation_id: Optional[int] = None,
) -> Optional[Notification]:
    """Сповіщення має інформаційний характер: помилка не скасовує основну дію."""
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        related_reservation_id=related_reservation_id,
        is_read=False,
    )
    try:
        async with side_session(db) as notify_db:
            notify_db.add(notification)
            await notify_db.commit()
    except SQLAlchemyError as e:
        logger.error(f"Error creating notification for user {user_id}: {e}")
        return None

    return notification


async def get_user_notifications(db: AsyncSession, user_id: int) -> list[Notification]:
    result = await db.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc()),
    )
    return result.scalars().all()


async def get_unread_count(db: AsyncSession, user_id: int) -> int:
    return await db.scalar(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False)),
    )


async def mark_notification_as_read(
    db: AsyncSession,
    notification_id: int,
    user_id: int,
) -> Notification:
    notification = await db.get(Notification, notification_id)
    if not notification or notification.user_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )

    notification.is_read = True
    await db.commit()
    return notification


async def mark_all_as_read(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True),
    )
    await db.commit()
    return result.rowcount
