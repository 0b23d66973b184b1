from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from townbook.dependencies.database import get_db
from townbook.exceptions.pagination import paginate_response
from townbook.models.profile import STAFF_ROLES, Profile
from townbook.schemas.schemas import ActivityResponse, UserHistoryResponse
from townbook.services.activity_service import (
    get_action_types,
    get_user_history,
    list_activities,
)
from townbook.services.user_service import get_current_user, librarian_required

router = APIRouter(prefix="/activities", tags=["Activities"])


@router.get("", response_model=dict)
async def read_activities(
    search: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    item_type: Optional[str] = Query(None, alias="itemType"),
    user_id: Optional[int] = Query(None, alias="userId"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    _: Profile = Depends(librarian_required),
):
    """📜 Журнал дій, найновіші спочатку."""
    total, activities = await list_activities(db, search, action, item_type, user_id, page, per_page)
    items = [
        ActivityResponse.model_validate(a).model_dump(mode="json", by_alias=True)
        for a in activities
    ]
    return paginate_response(total, page, per_page, items)


@router.get("/actions", response_model=list[str])
async def read_action_types(
    db: AsyncSession = Depends(get_db),
    _: Profile = Depends(librarian_required),
):
    return await get_action_types(db)


@router.get("/history", response_model=UserHistoryResponse)
async def read_history(
    user_id: Optional[int] = Query(None, alias="userId"),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    """Історія користувача. Чужу історію бачить тільки бібліотекар."""
    target_id = user.id
    if user_id is not None and user.role in STAFF_ROLES:
        target_id = user_id
    return await get_user_history(db, target_id, limit)
