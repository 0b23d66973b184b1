import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from townbook.dependencies.database import get_db
from townbook.exceptions.pagination import paginate_response
from townbook.models.profile import Profile
from townbook.models.reservation import ItemType, Reservation, ReservationStatus
from townbook.schemas.schemas import (
    ApproveRequest,
    BatchItemResult,
    BulkUpdateRequest,
    ReconciliationReport,
    ReservationResponse,
    ReservationWithUserResponse,
)
from townbook.services import lifecycle_service
from townbook.services.user_service import librarian_required

router = APIRouter(prefix="/reservations", tags=["Librarian Reservations"])

logger = logging.getLogger(__name__)


def _serialize(reservations) -> list[dict]:
    return [
        ReservationWithUserResponse.model_validate(r).model_dump(mode="json", by_alias=True)
        for r in reservations
    ]


@router.get("/librarian/all", response_model=dict)
async def read_all_reservations(
    reservation_status: Optional[str] = Query(
        None,
        alias="status",
        pattern="^(Pending|Approved|Declined|Completed|Overdue)$",
    ),
    item_type: Optional[ItemType] = Query(None, alias="itemType"),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    _: Profile = Depends(librarian_required),
):
    query = select(Reservation).join(Reservation.user)

    if reservation_status == "Overdue":
        # прострочене: підтверджене бронювання з минулою датою завершення
        query = query.where(
            Reservation.status == ReservationStatus.APPROVED,
            Reservation.end_date < datetime.now(),
        )
    elif reservation_status:
        query = query.where(Reservation.status == ReservationStatus(reservation_status))
    if item_type:
        query = query.where(Reservation.item_type == item_type)
    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(
                Reservation.title.ilike(pattern),
                Profile.name.ilike(pattern),
                Profile.email.ilike(pattern),
            ),
        )

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    result = await db.execute(
        query.options(joinedload(Reservation.user))
        .order_by(Reservation.created_at.desc(), Reservation.id.desc())
        .limit(per_page)
        .offset((page - 1) * per_page),
    )
    return paginate_response(total, page, per_page, _serialize(result.scalars().all()))


@router.get("/librarian/pending", response_model=list[ReservationWithUserResponse])
async def read_pending_reservations(
    db: AsyncSession = Depends(get_db),
    _: Profile = Depends(librarian_required),
):
    result = await db.execute(
        select(Reservation)
        .options(joinedload(Reservation.user))
        .where(Reservation.status == ReservationStatus.PENDING)
        .order_by(Reservation.created_at.asc(), Reservation.id.asc()),
    )
    return result.scalars().all()


@router.patch("/{reservation_id}/approve", response_model=ReservationResponse)
async def approve_reservation(
    reservation_id: int,
    data: Optional[ApproveRequest] = None,
    db: AsyncSession = Depends(get_db),
    librarian: Profile = Depends(librarian_required),
):
    """Бібліотекар підтверджує запит; можна вказати конкретний примірник."""
    copy_id = data.copy_id if data else None
    return await lifecycle_service.approve(db, reservation_id, librarian, copy_id=copy_id)


@router.patch("/{reservation_id}/decline", response_model=ReservationResponse)
async def decline_reservation(
    reservation_id: int,
    db: AsyncSession = Depends(get_db),
    librarian: Profile = Depends(librarian_required),
):
    return await lifecycle_service.decline(db, reservation_id, librarian)


@router.patch("/{reservation_id}/checkout", response_model=ReservationResponse)
async def checkout_reservation(
    reservation_id: int,
    db: AsyncSession = Depends(get_db),
    librarian: Profile = Depends(librarian_required),
):
    """Видача книги читачу."""
    return await lifecycle_service.checkout(db, reservation_id, librarian)


@router.patch("/{reservation_id}/return/librarian", response_model=ReservationResponse)
async def return_reservation_by_librarian(
    reservation_id: int,
    db: AsyncSession = Depends(get_db),
    librarian: Profile = Depends(librarian_required),
):
    return await lifecycle_service.complete_return(db, reservation_id, librarian)


@router.post("/batch/approve", response_model=list[BatchItemResult])
async def batch_approve(
    request: BulkUpdateRequest,
    db: AsyncSession = Depends(get_db),
    librarian: Profile = Depends(librarian_required),
):
    return await lifecycle_service.batch_approve(db, request.ids, librarian)


@router.post("/batch/decline", response_model=list[BatchItemResult])
async def batch_decline(
    request: BulkUpdateRequest,
    db: AsyncSession = Depends(get_db),
    librarian: Profile = Depends(librarian_required),
):
    return await lifecycle_service.batch_decline(db, request.ids, librarian)


@router.post("/reconcile", response_model=ReconciliationReport)
async def reconcile(
    db: AsyncSession = Depends(get_db),
    librarian: Profile = Depends(librarian_required),
):
    """Ручний запуск звірки статусів інвентаря з підтвердженими бронюваннями."""
    report = await lifecycle_service.reconcile_inventory(db)
    logger.info(f"Reconciliation started by {librarian.id}: {report}")
    return report
