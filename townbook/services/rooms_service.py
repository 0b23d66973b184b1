import logging
from datetime import date
from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from townbook.exceptions.filters import apply_room_filters, contains_all
from townbook.exceptions.lifecycle import ItemNotFound, commit_changes
from townbook.models.profile import Profile
from townbook.models.reservation import ItemType, Reservation, ReservationStatus
from townbook.models.room import DEFAULT_ROOM_IMAGE, Room, RoomAmenity, RoomAvailability
from townbook.schemas.schemas import RoomAvailabilityUpdate, RoomCreate, RoomUpdate
from townbook.services.activity_service import log_activity
from townbook.services.availability_service import (
    get_room_schedule,
    has_active_reservations,
    parse_slots,
    slot_matches,
)

logger = logging.getLogger(__name__)


async def search_rooms(
    db: AsyncSession,
    query_text: Optional[str] = None,
    capacity: Optional[int] = None,
    amenities: Optional[List[str]] = None,
    available_on: Optional[date] = None,
) -> list[Room]:
    query = apply_room_filters(
        select(Room).options(selectinload(Room.availability)),
        query_text=query_text,
        capacity=capacity,
    )
    result = await db.execute(query)
    rooms = [r for r in result.scalars().all() if contains_all(r.amenities, amenities)]

    if available_on:
        rooms = [
            room
            for room in rooms
            if any(
                slot["isAvailable"]
                for schedule in room.availability
                if schedule.date == available_on
                for slot in parse_slots(schedule.slots)
            )
        ]
    return rooms


async def get_room(db: AsyncSession, room_id: int) -> Room:
    result = await db.execute(
        select(Room)
        .options(selectinload(Room.availability))
        .where(Room.id == room_id)
        .execution_options(populate_existing=True),
    )
    room = result.scalars().first()
    if not room:
        raise ItemNotFound("room", room_id)
    return room


async def get_all_amenities(db: AsyncSession) -> list[str]:
    result = await db.execute(select(Room.amenities))
    amenities = set()
    for row in result.scalars().all():
        amenities.update(row or [])

    if not amenities:
        return [amenity.value for amenity in RoomAmenity]
    return sorted(amenities)


def _room_values(data: RoomCreate | RoomUpdate) -> dict:
    values = data.model_dump(mode="json")
    values["images"] = values["images"] or [DEFAULT_ROOM_IMAGE]
    return values


async def create_room(db: AsyncSession, data: RoomCreate, actor: Profile) -> Room:
    room = Room(**_room_values(data))
    db.add(room)
    await commit_changes(db)

    logger.info(f"Room '{room.name}' created")
    await log_activity(db, actor, "create", f'added room "{room.name}"', room.id, ItemType.ROOM.value)

    return await get_room(db, room.id)


async def update_room(db: AsyncSession, room_id: int, data: RoomUpdate, actor: Profile) -> Room:
    room = await get_room(db, room_id)

    for key, value in _room_values(data).items():
        setattr(room, key, value)

    await commit_changes(db)
    await log_activity(db, actor, "update", f'updated room "{room.name}"', room.id, ItemType.ROOM.value)

    return await get_room(db, room.id)


async def delete_room(db: AsyncSession, room_id: int, actor: Profile):
    room = await get_room(db, room_id)

    if await has_active_reservations(db, ItemType.ROOM, room_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cannot delete a room with pending or approved reservations.",
        )

    name = room.name
    await db.delete(room)
    await commit_changes(db)

    logger.info(f"Room {room_id} '{name}' deleted")
    await log_activity(db, actor, "delete", f'deleted room "{name}"', room_id, ItemType.ROOM.value)


async def set_room_availability(
    db: AsyncSession,
    room_id: int,
    data: RoomAvailabilityUpdate,
    actor: Profile,
) -> RoomAvailability:
    """
    Створює або замінює розклад кімнати на дату. Слоти, які утримують
    підтверджені бронювання, мають лишитися на своєму місці, з тими самими
    годинами і зайнятими.
    """
    room = await get_room(db, room_id)
    new_slots = [slot.model_dump(by_alias=True) for slot in data.slots]

    result = await db.execute(
        select(Reservation).where(
            Reservation.item_type == ItemType.ROOM,
            Reservation.item_id == room_id,
            Reservation.status == ReservationStatus.APPROVED,
        ),
    )
    for reservation in result.scalars().all():
        if reservation.start_date.date() != data.date:
            continue
        index = reservation.slot_index
        if (
            index is None
            or index >= len(new_slots)
            or new_slots[index]["isAvailable"]
            or not slot_matches(reservation, new_slots[index])
        ):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Slot {index} is held by approved reservation {reservation.id}",
            )

    schedule = await get_room_schedule(db, room_id, data.date)
    if schedule is None:
        schedule = RoomAvailability(room_id=room_id, date=data.date, slots=new_slots)
        db.add(schedule)
    else:
        schedule.slots = new_slots

    await commit_changes(db)

    logger.info(f"Schedule of room {room_id} for {data.date} set to {len(new_slots)} slots")
    await log_activity(
        db,
        actor,
        "update",
        f'updated schedule of room "{room.name}" for {data.date}',
        room_id,
        ItemType.ROOM.value,
    )
    return schedule
