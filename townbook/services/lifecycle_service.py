"""
Життєвий цикл бронювання: Pending -> Approved/Declined, Approved -> Completed
(повернення) або видалення (скасування). Declined і Completed є кінцевими.

Зміна бронювання і його одиниці інвентаря (примірника книги або слоту кімнати)
завжди комітяться однією транзакцією. Записи в журнал дій і сповіщення йдуть
після коміту і не впливають на результат операції.
"""

import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from townbook.config import config
from townbook.dependencies.database import side_session
from townbook.exceptions.lifecycle import (
    InvalidTransition,
    ItemNotFound,
    NoAvailableCopy,
    ReservationForbidden,
    ReservationNotFound,
    SlotConflict,
    commit_changes,
)
from townbook.models.book import Book, BookCopy, CopyStatus
from townbook.models.profile import STAFF_ROLES, Profile
from townbook.models.reservation import (
    ACTIVE_STATUSES,
    ItemType,
    Reservation,
    ReservationStatus,
)
from townbook.models.room import Room
from townbook.services.activity_service import log_activity
from townbook.services.availability_service import (
    get_available_book_copies_count,
    get_room_schedule,
    is_slot_claimed,
    parse_slots,
    slot_bounds,
    slot_matches,
)
from townbook.services.notification_service import create_notification

logger = logging.getLogger(__name__)


async def _load_reservation(db: AsyncSession, reservation_id: int) -> Reservation:
    result = await db.execute(
        select(Reservation)
        .options(joinedload(Reservation.copy))
        .where(Reservation.id == reservation_id),
    )
    reservation = result.scalars().first()
    if not reservation:
        raise ReservationNotFound(reservation_id)
    return reservation


def _ensure_owner_or_staff(reservation: Reservation, actor: Profile):
    if actor.role in STAFF_ROLES:
        return
    if reservation.user_id != actor.id:
        raise ReservationForbidden()


def _require_status(reservation: Reservation, expected: ReservationStatus, action: str):
    if reservation.status != expected:
        raise InvalidTransition(
            f"Cannot {action} reservation {reservation.id}: "
            f"it is {ReservationStatus(reservation.status).value}, "
            f"expected {expected.value}",
        )


async def _set_slot_availability(
    db: AsyncSession,
    reservation: Reservation,
    is_available: bool,
) -> bool:
    """Змінює лише слот цього бронювання. Повертає False, якщо слоту з такими годинами вже немає."""
    day = reservation.start_date.date()
    schedule = await get_room_schedule(db, reservation.item_id, day)
    if schedule is None:
        return False

    slots = parse_slots(schedule.slots)
    index = reservation.slot_index
    if index is None or not 0 <= index < len(slots) or not slot_matches(reservation, slots[index]):
        return False

    slots[index]["isAvailable"] = is_available
    schedule.slots = slots
    return True


async def create_reservation(db: AsyncSession, actor: Profile, data) -> Reservation:
    """Запит учасника на бронювання книги або кімнати (статус Pending)."""

    active_count = await db.scalar(
        select(func.count())
        .select_from(Reservation)
        .where(
            Reservation.user_id == actor.id,
            Reservation.status.in_(ACTIVE_STATUSES),
        ),
    )
    if active_count >= config.MAX_ACTIVE_RESERVATIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"You can have up to {config.MAX_ACTIVE_RESERVATIONS} pending or approved "
            "reservations in total. Please complete or cancel an existing one to proceed.",
        )

    duplicate = await db.scalar(
        select(
            exists().where(
                Reservation.user_id == actor.id,
                Reservation.item_type == data.item_type,
                Reservation.item_id == data.item_id,
                Reservation.status.in_(ACTIVE_STATUSES),
            ),
        ),
    )
    if duplicate:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You already have an active reservation for this item.",
        )

    if data.item_type == ItemType.BOOK:
        book = await db.get(Book, data.item_id)
        if not book:
            raise ItemNotFound("book", data.item_id)

        if await get_available_book_copies_count(db, book.id) == 0:
            raise NoAvailableCopy(book.id)

        title = book.title
        start_date = data.start_date
        end_date = data.end_date or start_date + timedelta(days=config.DEFAULT_BOOK_LOAN_DAYS)
        slot_index = None
    else:
        room = await db.get(Room, data.item_id)
        if not room:
            raise ItemNotFound("room", data.item_id)

        if data.slot_index is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="slotIndex is required for room reservations",
            )

        day = data.start_date.date()
        schedule = await get_room_schedule(db, room.id, day)
        slots = parse_slots(schedule.slots) if schedule else []
        if not 0 <= data.slot_index < len(slots):
            raise SlotConflict(f"Room {room.id} has no slot {data.slot_index} on {day}")

        slot = slots[data.slot_index]
        if not slot["isAvailable"] or await is_slot_claimed(db, room.id, day, data.slot_index):
            raise SlotConflict()

        title = room.name
        start_date, end_date = slot_bounds(day, slot)
        slot_index = data.slot_index

    if end_date <= start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="End date must be after start date",
        )

    reservation = Reservation(
        user_id=actor.id,
        item_id=data.item_id,
        item_type=data.item_type,
        title=title,
        start_date=start_date,
        end_date=end_date,
        status=ReservationStatus.PENDING,
        notes=data.notes,
        slot_index=slot_index,
    )
    db.add(reservation)
    await commit_changes(db)
    await db.refresh(reservation)

    logger.info(f"User {actor.id} requested {reservation.item_type.value} '{title}' (reservation {reservation.id})")

    await log_activity(
        db,
        actor,
        "reserve",
        f'requested "{title}"',
        item_id=reservation.item_id,
        item_type=reservation.item_type.value,
    )
    return reservation


async def _pick_available_copy(
    db: AsyncSession,
    book_id: int,
    copy_id: Optional[int],
) -> BookCopy:
    not_bound = ~exists().where(
        Reservation.copy_id == BookCopy.id,
        Reservation.status == ReservationStatus.APPROVED,
    )
    query = select(BookCopy).where(
        BookCopy.book_id == book_id,
        BookCopy.status == CopyStatus.AVAILABLE,
        not_bound,
    )
    if copy_id is not None:
        query = query.where(BookCopy.id == copy_id)

    result = await db.execute(query.order_by(BookCopy.id).limit(1))
    copy = result.scalars().first()
    if not copy:
        raise NoAvailableCopy(book_id)
    return copy


async def approve(
    db: AsyncSession,
    reservation_id: int,
    actor: Profile,
    copy_id: Optional[int] = None,
) -> Reservation:
    """Бібліотекар підтверджує запит і закріплює за ним одиницю інвентаря."""

    reservation = await _load_reservation(db, reservation_id)
    _require_status(reservation, ReservationStatus.PENDING, "approve")

    if reservation.item_type == ItemType.BOOK:
        copy = await _pick_available_copy(db, reservation.item_id, copy_id)
        copy.status = CopyStatus.RESERVED
        reservation.copy_id = copy.id
        reservation.copy = copy
    else:
        day = reservation.start_date.date()
        if await is_slot_claimed(
            db,
            reservation.item_id,
            day,
            reservation.slot_index,
            exclude_reservation_id=reservation.id,
        ):
            raise SlotConflict()

        schedule = await get_room_schedule(db, reservation.item_id, day)
        slots = parse_slots(schedule.slots) if schedule else []
        index = reservation.slot_index
        if index is None or not 0 <= index < len(slots) or not slots[index]["isAvailable"]:
            raise SlotConflict()
        if not slot_matches(reservation, slots[index]):
            # розклад на цю дату переписали після запиту
            raise SlotConflict(
                f"Slot {index} of room {reservation.item_id} on {day} no longer matches "
                f"the requested time {reservation.start_date:%H:%M}-{reservation.end_date:%H:%M}",
            )

        slots[index]["isAvailable"] = False
        schedule.slots = slots

    reservation.status = ReservationStatus.APPROVED
    await commit_changes(db)

    logger.info(f"Reservation {reservation.id} approved by {actor.id} (copy {reservation.copy_id})")

    await log_activity(
        db,
        actor,
        "approval",
        f'approved reservation of "{reservation.title}"',
        item_id=reservation.item_id,
        item_type=reservation.item_type.value,
    )
    await create_notification(
        db,
        reservation.user_id,
        "Reservation approved",
        f'Your reservation of "{reservation.title}" has been approved.',
        related_reservation_id=reservation.id,
    )
    return reservation


async def decline(db: AsyncSession, reservation_id: int, actor: Profile) -> Reservation:
    """Відхилення запиту. Інвентар не змінюється: за Pending нічого не закріплено."""

    reservation = await _load_reservation(db, reservation_id)
    _require_status(reservation, ReservationStatus.PENDING, "decline")

    reservation.status = ReservationStatus.DECLINED
    await commit_changes(db)

    logger.info(f"Reservation {reservation.id} declined by {actor.id}")

    await log_activity(
        db,
        actor,
        "decline",
        f'declined reservation of "{reservation.title}"',
        item_id=reservation.item_id,
        item_type=reservation.item_type.value,
    )
    await create_notification(
        db,
        reservation.user_id,
        "Reservation declined",
        f'Your reservation of "{reservation.title}" has been declined.',
        related_reservation_id=reservation.id,
    )
    return reservation


async def checkout(db: AsyncSession, reservation_id: int, actor: Profile) -> Reservation:
    """Видача книги: примірник reserved -> checked-out."""

    reservation = await _load_reservation(db, reservation_id)
    if reservation.item_type != ItemType.BOOK:
        raise InvalidTransition("Only book reservations can be checked out")
    _require_status(reservation, ReservationStatus.APPROVED, "check out")

    copy = reservation.copy
    if not copy or copy.status != CopyStatus.RESERVED:
        raise InvalidTransition("Book copy is not in 'reserved' status and cannot be issued.")

    copy.status = CopyStatus.CHECKED_OUT
    await commit_changes(db)

    logger.info(f"Reservation {reservation.id}: copy {copy.id} checked out")

    await log_activity(
        db,
        actor,
        "checkout",
        f'checked out "{reservation.title}"',
        item_id=reservation.item_id,
        item_type=ItemType.BOOK.value,
    )
    return reservation


async def _complete_book_return(
    db: AsyncSession,
    reservation: Reservation,
    actor: Profile,
) -> Reservation:
    copy = reservation.copy
    if copy is not None:
        copy.status = CopyStatus.AVAILABLE

    reservation.status = ReservationStatus.COMPLETED
    reservation.completed_at = datetime.now()
    await commit_changes(db)

    logger.info(f"Reservation {reservation.id} completed, copy {reservation.copy_id} is available again")

    await log_activity(
        db,
        actor,
        "return",
        f'returned book "{reservation.title}"',
        item_id=reservation.item_id,
        item_type=ItemType.BOOK.value,
    )
    await log_activity(
        db,
        actor,
        "completed_reading",
        f'completed reading book "{reservation.title}"',
        item_id=reservation.item_id,
        item_type=ItemType.BOOK.value,
        is_processed=False,
    )
    return reservation


async def _complete_room_return(
    db: AsyncSession,
    reservation: Reservation,
    actor: Profile,
) -> Reservation:
    if not await _set_slot_availability(db, reservation, True):
        logger.warning(f"Reservation {reservation.id}: room slot no longer in schedule, nothing to free")

    reservation.status = ReservationStatus.COMPLETED
    reservation.completed_at = datetime.now()
    await commit_changes(db)

    logger.info(f"Reservation {reservation.id} completed, room slot {reservation.slot_index} freed")

    await log_activity(
        db,
        actor,
        "return",
        f'returned room "{reservation.title}"',
        item_id=reservation.item_id,
        item_type=ItemType.ROOM.value,
    )
    return reservation


async def complete_book_return(db: AsyncSession, reservation_id: int, actor: Profile) -> Reservation:
    reservation = await _load_reservation(db, reservation_id)
    _ensure_owner_or_staff(reservation, actor)
    if reservation.item_type != ItemType.BOOK:
        raise InvalidTransition(f"Reservation {reservation_id} is not a book reservation")
    _require_status(reservation, ReservationStatus.APPROVED, "return")
    return await _complete_book_return(db, reservation, actor)


async def complete_room_return(db: AsyncSession, reservation_id: int, actor: Profile) -> Reservation:
    reservation = await _load_reservation(db, reservation_id)
    _ensure_owner_or_staff(reservation, actor)
    if reservation.item_type != ItemType.ROOM:
        raise InvalidTransition(f"Reservation {reservation_id} is not a room reservation")
    _require_status(reservation, ReservationStatus.APPROVED, "return")
    return await _complete_room_return(db, reservation, actor)


async def complete_return(db: AsyncSession, reservation_id: int, actor: Profile) -> Reservation:
    reservation = await _load_reservation(db, reservation_id)
    _ensure_owner_or_staff(reservation, actor)
    _require_status(reservation, ReservationStatus.APPROVED, "return")

    if reservation.item_type == ItemType.BOOK:
        return await _complete_book_return(db, reservation, actor)
    return await _complete_room_return(db, reservation, actor)


async def cancel_reservation(db: AsyncSession, reservation_id: int, actor: Profile) -> int:
    """Скасування: бронювання видаляється, закріплена одиниця звільняється."""

    reservation = await _load_reservation(db, reservation_id)
    _ensure_owner_or_staff(reservation, actor)

    if reservation.status not in ACTIVE_STATUSES:
        raise InvalidTransition("Only pending or approved reservations can be cancelled.")

    if reservation.status == ReservationStatus.APPROVED:
        if reservation.item_type == ItemType.BOOK:
            copy = reservation.copy
            if copy is not None and copy.status == CopyStatus.CHECKED_OUT:
                raise InvalidTransition(
                    "You cannot cancel this reservation because the book has already been "
                    "taken. Please return it instead.",
                )
            if copy is not None:
                copy.status = CopyStatus.AVAILABLE
        else:
            await _set_slot_availability(db, reservation, True)

    title = reservation.title
    item_id = reservation.item_id
    item_type = reservation.item_type.value
    owner_id = reservation.user_id

    await db.delete(reservation)
    await commit_changes(db)

    logger.info(f"Reservation {reservation_id} cancelled by {actor.id}")

    await log_activity(
        db,
        actor,
        "cancel",
        f'cancelled reservation of "{title}"',
        item_id=item_id,
        item_type=item_type,
    )
    if owner_id != actor.id:
        await create_notification(
            db,
            owner_id,
            "Reservation cancelled",
            f'Your reservation of "{title}" has been cancelled by the library.',
        )
    return reservation_id


async def _apply_batch(
    db: AsyncSession,
    reservation_ids: List[int],
    actor: Profile,
    operation: Callable[[AsyncSession, int, Profile], Awaitable[Reservation]],
) -> List[dict]:
    """Кожне бронювання обробляється в окремій сесії: відкат одного не зачіпає інші і сесію виклику."""
    results = []
    actor_id = actor.id
    for reservation_id in reservation_ids:
        async with side_session(db) as item_db:
            item_actor = await item_db.get(Profile, actor_id)
            try:
                reservation = await operation(item_db, reservation_id, item_actor)
            except HTTPException as e:
                await item_db.rollback()
                results.append(
                    {
                        "reservation_id": reservation_id,
                        "success": False,
                        "status": None,
                        "error": e.detail,
                    },
                )
                continue

            results.append(
                {
                    "reservation_id": reservation_id,
                    "success": True,
                    "status": ReservationStatus(reservation.status).value,
                    "error": None,
                },
            )

    failed = [r["reservation_id"] for r in results if not r["success"]]
    logger.info(
        f"Batch {operation.__name__}: {len(results) - len(failed)} succeeded, "
        f"{len(failed)} failed {failed}",
    )
    return results


async def batch_approve(db: AsyncSession, reservation_ids: List[int], actor: Profile) -> List[dict]:
    return await _apply_batch(db, reservation_ids, actor, approve)


async def batch_decline(db: AsyncSession, reservation_ids: List[int], actor: Profile) -> List[dict]:
    return await _apply_batch(db, reservation_ids, actor, decline)


async def reconcile_inventory(db: AsyncSession) -> dict:
    """
    Звіряє статуси інвентаря з підтвердженими бронюваннями:
    - примірник reserved/checked-out без підтвердженого бронювання -> available;
    - підтверджене бронювання, чий примірник available -> примірник reserved;
    - підтверджене бронювання кімнати, чий слот вільний -> слот зайнятий.
    """
    bound_copies = select(Reservation.copy_id).where(
        Reservation.status == ReservationStatus.APPROVED,
        Reservation.copy_id.is_not(None),
    )
    result = await db.execute(
        select(BookCopy).where(
            BookCopy.status.in_([CopyStatus.RESERVED, CopyStatus.CHECKED_OUT]),
            BookCopy.id.not_in(bound_copies),
        ),
    )
    freed_copies = []
    for copy in result.scalars().all():
        logger.warning(f"Copy {copy.id} was {copy.status.value} without an approved reservation")
        copy.status = CopyStatus.AVAILABLE
        freed_copies.append(copy.id)

    result = await db.execute(
        select(Reservation)
        .options(joinedload(Reservation.copy))
        .where(Reservation.status == ReservationStatus.APPROVED),
    )
    restored_copies = []
    restored_slots = []
    for reservation in result.scalars().all():
        if reservation.item_type == ItemType.BOOK:
            copy = reservation.copy
            if copy is not None and copy.status == CopyStatus.AVAILABLE:
                logger.warning(f"Copy {copy.id} was available while reservation {reservation.id} holds it")
                copy.status = CopyStatus.RESERVED
                restored_copies.append(copy.id)
            continue

        schedule = await get_room_schedule(db, reservation.item_id, reservation.start_date.date())
        slots = parse_slots(schedule.slots) if schedule else []
        index = reservation.slot_index
        if (
            index is not None
            and 0 <= index < len(slots)
            and slots[index]["isAvailable"]
            and slot_matches(reservation, slots[index])
        ):
            logger.warning(f"Slot {index} of room {reservation.item_id} was free while reservation {reservation.id} holds it")
            await _set_slot_availability(db, reservation, False)
            restored_slots.append(reservation.id)

    await commit_changes(db)

    if freed_copies or restored_copies or restored_slots:
        logger.info(
            f"Reconciliation repaired {len(freed_copies)} orphaned copies, "
            f"{len(restored_copies)} copies and {len(restored_slots)} room slots",
        )

    return {
        "freed_copies": freed_copies,
        "restored_copies": restored_copies,
        "restored_slots": restored_slots,
    }
