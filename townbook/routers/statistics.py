import json
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from townbook.config import config
from townbook.dependencies.cache import get_redis
from townbook.dependencies.database import get_db
from townbook.models.activity import Activity
from townbook.models.book import Book, BookCopy, CopyStatus
from townbook.models.profile import Profile
from townbook.models.reservation import ACTIVE_STATUSES, Reservation, ReservationStatus
from townbook.models.room import Room
from townbook.services.user_service import librarian_required

router = APIRouter(prefix="/stats", tags=["Statistics"])

DASHBOARD_CACHE_KEY = "stats:dashboard"


async def collect_dashboard_stats(db: AsyncSession) -> dict:
    total_books = await db.scalar(select(func.count()).select_from(Book))
    total_rooms = await db.scalar(select(func.count()).select_from(Room))

    active_reservations = await db.scalar(
        select(func.count())
        .select_from(Reservation)
        .where(Reservation.status.in_(ACTIVE_STATUSES)),
    )
    pending_approvals = await db.scalar(
        select(func.count())
        .select_from(Reservation)
        .where(Reservation.status == ReservationStatus.PENDING),
    )
    overdue_items = await db.scalar(
        select(func.count())
        .select_from(Reservation)
        .where(
            Reservation.status == ReservationStatus.APPROVED,
            Reservation.end_date < datetime.now(),
        ),
    )

    # Книги, у яких є хоча б один вільний примірник
    available_books = await db.scalar(
        select(func.count(func.distinct(BookCopy.book_id))).where(
            BookCopy.status == CopyStatus.AVAILABLE,
        ),
    )

    return {
        "totalBooks": total_books,
        "totalRooms": total_rooms,
        "activeReservations": active_reservations,
        "availableBooks": available_books,
        "pendingApprovals": pending_approvals,
        "overdueItems": overdue_items,
    }


@router.get("")
async def get_statistics(
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
    _: Profile = Depends(librarian_required),
):
    cached_data = await redis.get(DASHBOARD_CACHE_KEY)
    if cached_data:
        return json.loads(cached_data)

    stats = await collect_dashboard_stats(db)
    await redis.set(DASHBOARD_CACHE_KEY, json.dumps(stats), ex=config.STATS_CACHE_SECONDS)
    return stats


@router.get("/analytics")
async def get_analytics(
    top: int = Query(5, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
    _: Profile = Depends(librarian_required),
):
    by_item_type = await db.execute(
        select(Reservation.item_type, func.count()).group_by(Reservation.item_type),
    )
    by_status = await db.execute(
        select(Reservation.status, func.count()).group_by(Reservation.status),
    )

    # Найпопулярніші книги за записами про завершене читання
    top_books = await db.execute(
        select(Activity.item_id, func.count().label("reads"))
        .where(Activity.action == "completed_reading", Activity.item_id.is_not(None))
        .group_by(Activity.item_id)
        .order_by(func.count().desc(), Activity.item_id)
        .limit(top),
    )
    top_rows = top_books.all()
    titles = {}
    if top_rows:
        result = await db.execute(
            select(Book.id, Book.title).where(Book.id.in_([row[0] for row in top_rows])),
        )
        titles = dict(result.all())

    by_action = await db.execute(
        select(Activity.action, func.count()).group_by(Activity.action).order_by(Activity.action),
    )

    return {
        "reservationsByItemType": {
            item_type.value: count for item_type, count in by_item_type.all()
        },
        "reservationsByStatus": {
            status.value: count for status, count in by_status.all()
        },
        "topBooks": [
            {"bookId": book_id, "title": titles.get(book_id), "reads": reads}
            for book_id, reads in top_rows
        ],
        "activityByAction": dict(by_action.all()),
    }
