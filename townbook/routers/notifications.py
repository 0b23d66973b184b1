from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from townbook.dependencies.database import get_db
from townbook.models.profile import Profile
from townbook.schemas.schemas import NotificationResponse
from townbook.services.notification_service import (
    get_unread_count,
    get_user_notifications,
    mark_all_as_read,
    mark_notification_as_read,
)
from townbook.services.user_service import get_current_user

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=list[NotificationResponse])
async def read_notifications(
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    return await get_user_notifications(db, user.id)


@router.get("/unread-count", response_model=dict)
async def read_unread_count(
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    return {"count": await get_unread_count(db, user.id)}


@router.patch("/read-all", response_model=dict)
async def read_all(
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    updated = await mark_all_as_read(db, user.id)
    return {"message": "All notifications marked as read", "updated": updated}


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
async def read_one(
    notification_id: int,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    return await mark_notification_as_read(db, notification_id, user.id)
