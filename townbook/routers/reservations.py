from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from townbook.dependencies.database import get_db
from townbook.models.profile import Profile
from townbook.models.reservation import Reservation, ReservationStatus
from townbook.schemas.schemas import ReservationCreate, ReservationResponse
from townbook.services import lifecycle_service
from townbook.services.user_service import get_current_user

router = APIRouter(prefix="/reservations", tags=["Reservations"])


@router.post("", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    data: ReservationCreate,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    """Запит на бронювання книги або кімнати. Бібліотекар підтверджує або відхиляє його."""
    return await lifecycle_service.create_reservation(db, user, data)


@router.get("/me", response_model=list[ReservationResponse])
async def read_my_reservations(
    reservation_status: Optional[ReservationStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    query = select(Reservation).where(Reservation.user_id == user.id)
    if reservation_status:
        query = query.where(Reservation.status == reservation_status)

    result = await db.execute(query.order_by(Reservation.created_at.desc(), Reservation.id.desc()))
    return result.scalars().all()


@router.delete("/{reservation_id}", response_model=dict)
async def cancel_reservation(
    reservation_id: int,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    """Скасування власного бронювання (поки книгу не видано)."""
    await lifecycle_service.cancel_reservation(db, reservation_id, user)
    return {"message": "Reservation cancelled successfully", "id": reservation_id}


@router.patch("/{reservation_id}/return", response_model=ReservationResponse)
async def return_reservation(
    reservation_id: int,
    db: AsyncSession = Depends(get_db),
    user: Profile = Depends(get_current_user),
):
    return await lifecycle_service.complete_return(db, reservation_id, user)
