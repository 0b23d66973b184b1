import logging

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

logger = logging.getLogger(__name__)


class ReservationNotFound(HTTPException):
    def __init__(self, reservation_id: int):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Reservation {reservation_id} not found",
        )


class ItemNotFound(HTTPException):
    def __init__(self, item_type: str, item_id: int):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{item_type.capitalize()} {item_id} not found",
        )


class ReservationForbidden(HTTPException):
    def __init__(self, detail: str = "You can only manage your own reservations"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class InvalidTransition(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class NoAvailableCopy(HTTPException):
    def __init__(self, book_id: int):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"No available copies of book {book_id}",
        )


class SlotConflict(HTTPException):
    def __init__(self, detail: str = "This time slot is already taken"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class ConcurrentUpdate(HTTPException):
    def __init__(self):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail="The record was changed by another request. Reload and try again.",
        )


class TransitionFailed(HTTPException):
    def __init__(self, detail: str = "The operation could not be saved. Nothing was changed."):
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)


async def commit_changes(db: AsyncSession):
    """Фіксує зміни разом або не фіксує нічого; конфлікт версій чи унікальності дає 409."""
    try:
        await db.commit()
    except (StaleDataError, IntegrityError) as e:
        await db.rollback()
        logger.warning(f"Concurrent update detected, changes rolled back: {e}")
        raise ConcurrentUpdate()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Changes rolled back after write failure: {e}")
        raise TransitionFailed()
