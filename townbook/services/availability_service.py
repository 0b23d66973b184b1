import json
import logging
import math
from datetime import date, datetime, time
from typing import Optional

from sqlalchemy import exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from townbook.models.book import BookCopy, CopyStatus
from townbook.models.reservation import (
    ACTIVE_STATUSES,
    ItemType,
    Reservation,
    ReservationStatus,
)
from townbook.models.room import RoomAvailability

logger = logging.getLogger(__name__)


def parse_slots(raw) -> list[dict]:
    """Приводить збережені слоти (рядок JSON або список) до списку словників."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            logger.error(f"Error parsing slots data: {e}")
            return []

    if not isinstance(raw, list):
        return []

    return [
        {
            "startTime": slot.get("startTime") or "",
            "endTime": slot.get("endTime") or "",
            "isAvailable": bool(slot.get("isAvailable")),
        }
        for slot in raw
        if isinstance(slot, dict)
    ]


def slot_bounds(day: date, slot: dict) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.fromisoformat(slot["startTime"]))
    end = datetime.combine(day, time.fromisoformat(slot["endTime"]))
    return start, end


def slot_matches(reservation: Reservation, slot: dict) -> bool:
    """Слот розкладу досі має ті самі години, що й бронювання кімнати."""
    try:
        start, end = slot_bounds(reservation.start_date.date(), slot)
    except ValueError:
        return False
    return start == reservation.start_date and end == reservation.end_date


async def get_available_book_copies_count(db: AsyncSession, book_id: int) -> int:
    return await db.scalar(
        select(func.count())
        .select_from(BookCopy)
        .where(BookCopy.book_id == book_id, BookCopy.status == CopyStatus.AVAILABLE),
    )


async def get_copies_summary(db: AsyncSession, book_id: int) -> dict:
    result = await db.execute(
        select(BookCopy.status, func.count())
        .where(BookCopy.book_id == book_id)
        .group_by(BookCopy.status),
    )
    by_status = dict(result.all())
    return {
        "total": sum(by_status.values()),
        "available": by_status.get(CopyStatus.AVAILABLE, 0),
    }


async def has_active_reservations(db: AsyncSession, item_type: ItemType, item_id: int) -> bool:
    """Чи є у предмета бронювання в статусі Pending або Approved."""
    return await db.scalar(
        select(
            exists().where(
                Reservation.item_type == item_type,
                Reservation.item_id == item_id,
                Reservation.status.in_(ACTIVE_STATUSES),
            ),
        ),
    )


async def get_room_schedule(
    db: AsyncSession,
    room_id: int,
    day: date,
) -> Optional[RoomAvailability]:
    result = await db.execute(
        select(RoomAvailability).where(
            RoomAvailability.room_id == room_id,
            RoomAvailability.date == day,
        ),
    )
    return result.scalars().first()


async def get_free_slots(db: AsyncSession, room_id: int, day: date) -> list[dict]:
    schedule = await get_room_schedule(db, room_id, day)
    if not schedule:
        return []

    return [
        {"index": index, **slot}
        for index, slot in enumerate(parse_slots(schedule.slots))
        if slot["isAvailable"]
    ]


async def is_slot_claimed(
    db: AsyncSession,
    room_id: int,
    day: date,
    slot_index: int,
    exclude_reservation_id: Optional[int] = None,
) -> bool:
    """Чи утримує слот підтверджене бронювання."""
    query = select(Reservation.id, Reservation.start_date).where(
        Reservation.item_type == ItemType.ROOM,
        Reservation.item_id == room_id,
        Reservation.slot_index == slot_index,
        Reservation.status == ReservationStatus.APPROVED,
    )
    if exclude_reservation_id is not None:
        query = query.where(Reservation.id != exclude_reservation_id)

    result = await db.execute(query)
    return any(start.date() == day for _, start in result.all())


def days_overdue(end_date: datetime, now: Optional[datetime] = None) -> int:
    now = now or datetime.now()
    return math.ceil((now - end_date).total_seconds() / 86400)


def is_overdue(reservation: Reservation, now: Optional[datetime] = None) -> bool:
    now = now or datetime.now()
    return (
        reservation.status == ReservationStatus.APPROVED
        and reservation.end_date is not None
        and reservation.end_date < now
    )


def display_status(reservation: Reservation, now: Optional[datetime] = None) -> str:
    if is_overdue(reservation, now):
        return "Overdue"
    return ReservationStatus(reservation.status).value
