from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from townbook.dependencies.database import get_db
from townbook.exceptions.serialization import serialize_room
from townbook.models.profile import Profile
from townbook.schemas.schemas import (
    RoomAvailabilityResponse,
    RoomAvailabilityUpdate,
    RoomCreate,
    RoomResponse,
    RoomUpdate,
)
from townbook.services import rooms_service
from townbook.services.availability_service import parse_slots
from townbook.services.user_service import librarian_required

router = APIRouter(prefix="/rooms", tags=["Librarian Rooms"])


@router.post("", response_model=RoomResponse, status_code=status.HTTP_201_CREATED)
async def create_room(
    room_data: RoomCreate,
    db: AsyncSession = Depends(get_db),
    librarian: Profile = Depends(librarian_required),
):
    room = await rooms_service.create_room(db, room_data, librarian)
    return serialize_room(room)


@router.put("/{room_id}", response_model=RoomResponse)
async def update_room(
    room_id: int,
    room_data: RoomUpdate,
    db: AsyncSession = Depends(get_db),
    librarian: Profile = Depends(librarian_required),
):
    room = await rooms_service.update_room(db, room_id, room_data, librarian)
    return serialize_room(room)


@router.delete("/{room_id}", response_model=dict)
async def delete_room(
    room_id: int,
    db: AsyncSession = Depends(get_db),
    librarian: Profile = Depends(librarian_required),
):
    await rooms_service.delete_room(db, room_id, librarian)
    return {"message": "Room deleted successfully", "id": room_id}


@router.put("/{room_id}/availability", response_model=RoomAvailabilityResponse)
async def set_availability(
    room_id: int,
    data: RoomAvailabilityUpdate,
    db: AsyncSession = Depends(get_db),
    librarian: Profile = Depends(librarian_required),
):
    """Розклад кімнати на дату: створює новий або повністю замінює наявний."""
    schedule = await rooms_service.set_room_availability(db, room_id, data, librarian)
    return {"date": schedule.date, "slots": parse_slots(schedule.slots)}
