import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import and_, exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from townbook.dependencies.database import get_db
from townbook.exceptions.pagination import paginate_response
from townbook.models.profile import Profile, UserRole
from townbook.models.reservation import (
    ACTIVE_STATUSES,
    ItemType,
    Reservation,
    ReservationStatus,
)
from townbook.schemas.schemas import (
    MemberResponse,
    ProfileResponse,
    ProfileUpdate,
    SelfProfileUpdate,
)
from townbook.services.activity_service import log_activity
from townbook.services.user_service import get_current_user, librarian_required

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/members", tags=["Members"])


@router.get("", response_model=dict)
async def read_members(
    search: Optional[str] = Query(None),
    role: Optional[UserRole] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    _: Profile = Depends(librarian_required),
):
    """📋 Профілі з кількістю прочитаних книг і активних бронювань."""
    books_read = (
        select(func.count())
        .where(
            Reservation.user_id == Profile.id,
            Reservation.item_type == ItemType.BOOK,
            Reservation.status == ReservationStatus.COMPLETED,
        )
        .correlate(Profile)
        .scalar_subquery()
    )
    active_reservations = (
        select(func.count())
        .where(
            Reservation.user_id == Profile.id,
            Reservation.status.in_(ACTIVE_STATUSES),
        )
        .correlate(Profile)
        .scalar_subquery()
    )

    query = select(Profile)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(Profile.name.ilike(pattern), Profile.email.ilike(pattern)))
    if role:
        query = query.where(Profile.role == role)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    result = await db.execute(
        query.add_columns(books_read.label("books_read"), active_reservations.label("active"))
        .order_by(Profile.name, Profile.id)
        .limit(per_page)
        .offset((page - 1) * per_page),
    )

    items = []
    for profile, read_count, active_count in result.all():
        member = MemberResponse.model_validate(profile)
        member.books_read = read_count
        member.active_reservations = active_count
        items.append(member.model_dump(mode="json", by_alias=True))

    return paginate_response(total, page, per_page, items)


@router.patch("/me", response_model=ProfileResponse)
async def update_me(
    data: SelfProfileUpdate,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    user.name = data.name.strip()
    await db.commit()
    await db.refresh(user)
    return user


@router.patch("/{profile_id}", response_model=ProfileResponse)
async def update_member(
    profile_id: int,
    data: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    librarian: Profile = Depends(librarian_required),
):
    profile = await db.get(Profile, profile_id)
    if not profile:
        raise HTTPException(status_code=404, detail="User not found")

    touches_admin = data.role == UserRole.ADMIN or profile.role == UserRole.ADMIN
    if data.role is not None and touches_admin and librarian.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only an admin can grant or revoke the admin role",
        )

    if data.name is not None:
        profile.name = data.name.strip()
    if data.role is not None:
        profile.role = data.role

    await db.commit()
    await db.refresh(profile)

    await log_activity(
        db,
        librarian,
        "update",
        f'updated profile "{profile.email}"',
        item_id=profile.id,
        item_type="profile",
    )
    return profile


@router.delete("/{profile_id}", response_model=dict)
async def delete_member(
    profile_id: int,
    db: AsyncSession = Depends(get_db),
    librarian: Profile = Depends(librarian_required),
):
    if profile_id == librarian.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account.")

    profile = await db.get(Profile, profile_id)
    if not profile:
        raise HTTPException(status_code=404, detail="User not found")

    if profile.role == UserRole.ADMIN and librarian.role != UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="Only an admin can delete an admin")

    has_active = await db.scalar(
        select(
            exists().where(
                and_(
                    Reservation.user_id == profile_id,
                    Reservation.status.in_(ACTIVE_STATUSES),
                ),
            ),
        ),
    )
    if has_active:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cannot delete a user with pending or approved reservations.",
        )

    email = profile.email
    await db.delete(profile)
    await db.commit()

    logger.info(f"Profile {profile_id} deleted by {librarian.id}")
    await log_activity(db, librarian, "delete", f'deleted profile "{email}"', profile_id, "profile")
    return {"message": "User deleted successfully", "id": profile_id}
