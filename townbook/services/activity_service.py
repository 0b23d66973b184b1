import logging
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from townbook.dependencies.database import side_session
from townbook.models.activity import Activity
from townbook.models.profile import Profile
from townbook.models.reservation import Reservation

logger = logging.getLogger(__name__)


async def log_activity(
    db: AsyncSession,
    actor: Optional[Profile],
    action: str,
    description: str,
    item_id: Optional[int] = None,
    item_type: Optional[str] = None,
    is_processed: bool = True,
) -> Optional[Activity]:
    """
    Додає запис у журнал дій. Викликається тільки після того, як основна
    зміна вже збережена; помилка запису логується і не піднімається далі.
    """
    activity = Activity(
        user_id=actor.id if actor else None,
        user_name=(actor.name or actor.email) if actor else "system",
        action=action,
        description=description,
        item_id=item_id,
        item_type=item_type,
        is_processed=is_processed,
    )
    try:
        async with side_session(db) as log_db:
            log_db.add(activity)
            await log_db.commit()
    except SQLAlchemyError as e:
        logger.error(f"Non-critical error recording activity '{action}': {e}")
        return None

    return activity


async def list_activities(
    db: AsyncSession,
    search: Optional[str] = None,
    action: Optional[str] = None,
    item_type: Optional[str] = None,
    user_id: Optional[int] = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[int, list[Activity]]:
    query = select(Activity)

    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(
                Activity.description.ilike(pattern),
                Activity.user_name.ilike(pattern),
                Activity.action.ilike(pattern),
            ),
        )
    if action:
        query = query.where(Activity.action == action)
    if item_type:
        query = query.where(Activity.item_type == item_type)
    if user_id is not None:
        query = query.where(Activity.user_id == user_id)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    result = await db.execute(
        query.order_by(Activity.timestamp.desc(), Activity.id.desc())
        .limit(per_page)
        .offset((page - 1) * per_page),
    )
    return total, result.scalars().all()


async def get_action_types(db: AsyncSession) -> list[str]:
    result = await db.execute(select(Activity.action).distinct().order_by(Activity.action))
    return list(result.scalars().all())


async def get_user_history(db: AsyncSession, user_id: int, limit: int = 50) -> dict:
    activities = await db.execute(
        select(Activity)
        .where(Activity.user_id == user_id)
        .order_by(Activity.timestamp.desc(), Activity.id.desc())
        .limit(limit),
    )
    reservations = await db.execute(
        select(Reservation)
        .where(Reservation.user_id == user_id)
        .order_by(Reservation.created_at.desc(), Reservation.id.desc())
        .limit(limit),
    )
    return {
        "activities": activities.scalars().all(),
        "reservations": reservations.scalars().all(),
    }
