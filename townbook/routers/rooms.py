from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from townbook.dependencies.database import get_db
from townbook.exceptions.serialization import serialize_room
from townbook.schemas.schemas import FreeSlot, RoomResponse
from townbook.services.availability_service import get_free_slots
from townbook.services.rooms_service import get_all_amenities, get_room, search_rooms

router = APIRouter(prefix="/rooms", tags=["Rooms"])


@router.get("", response_model=list[RoomResponse])
async def list_rooms(
    db: AsyncSession = Depends(get_db),
    query: Optional[str] = Query(None, description="Пошук за назвою, описом, розташуванням"),
    capacity: Optional[int] = Query(None, ge=1),
    amenities: Optional[List[str]] = Query(None),
    available_on: Optional[date] = Query(None, alias="date"),
):
    rooms = await search_rooms(db, query, capacity, amenities, available_on)
    return [serialize_room(room) for room in rooms]


@router.get("/amenities", response_model=list[str])
async def list_amenities(db: AsyncSession = Depends(get_db)):
    return await get_all_amenities(db)


@router.get("/{room_id}", response_model=RoomResponse)
async def read_room(room_id: int, db: AsyncSession = Depends(get_db)):
    return serialize_room(await get_room(db, room_id))


@router.get("/{room_id}/free-slots", response_model=list[FreeSlot])
async def read_free_slots(
    room_id: int,
    day: date = Query(..., alias="date"),
    db: AsyncSession = Depends(get_db),
):
    await get_room(db, room_id)
    return await get_free_slots(db, room_id, day)
