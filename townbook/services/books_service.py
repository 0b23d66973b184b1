import logging
from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy import exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from townbook.exceptions.filters import apply_book_filters, contains_all
from townbook.exceptions.lifecycle import ItemNotFound, commit_changes
from townbook.models.book import DEFAULT_COVER_IMAGE, Book, BookCopy, CopyStatus
from townbook.models.profile import Profile
from townbook.models.reservation import (
    ItemType,
    Reservation,
    ReservationStatus,
)
from townbook.schemas.schemas import BookCreate, BookUpdate, CopiesCreate, CopyUpdate
from townbook.services.activity_service import log_activity
from townbook.services.availability_service import has_active_reservations

logger = logging.getLogger(__name__)


async def search_books(
    db: AsyncSession,
    filters: dict,
    genres: Optional[List[str]],
    page: int,
    per_page: int,
) -> tuple[int, list[Book]]:
    query = apply_book_filters(select(Book).options(selectinload(Book.copies)), **filters)

    if genres:
        # жанри зберігаються JSON-списком, тому фільтруємо після вибірки
        result = await db.execute(query)
        books = [b for b in result.scalars().all() if contains_all(b.genres, genres)]
        offset = (page - 1) * per_page
        return len(books), books[offset : offset + per_page]

    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    result = await db.execute(query.limit(per_page).offset((page - 1) * per_page))
    return total, result.scalars().all()


async def get_book(db: AsyncSession, book_id: int) -> Book:
    result = await db.execute(
        select(Book)
        .options(selectinload(Book.copies))
        .where(Book.id == book_id)
        .execution_options(populate_existing=True),
    )
    book = result.scalars().first()
    if not book:
        raise ItemNotFound("book", book_id)
    return book


async def get_all_genres(db: AsyncSession) -> list[str]:
    result = await db.execute(select(Book.genres))
    genres = set()
    for row in result.scalars().all():
        genres.update(row or [])
    return sorted(genres)


async def create_book(db: AsyncSession, data: BookCreate, actor: Profile) -> Book:
    existing = await db.scalar(
        select(exists().where(Book.title == data.title, Book.author == data.author)),
    )
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A book with this title and author already exists.",
        )

    book = Book(**data.model_dump(exclude={"copies", "location", "condition"}))
    book.cover_image = book.cover_image or DEFAULT_COVER_IMAGE
    book.copies = [
        BookCopy(status=CopyStatus.AVAILABLE, location=data.location, condition=data.condition)
        for _ in range(data.copies)
    ]
    db.add(book)
    await commit_changes(db)

    logger.info(f"Book '{book.title}' added with {data.copies} copies")
    await log_activity(db, actor, "create", f'added book "{book.title}"', book.id, ItemType.BOOK.value)

    return await get_book(db, book.id)


async def update_book(db: AsyncSession, book_id: int, data: BookUpdate, actor: Profile) -> Book:
    book = await get_book(db, book_id)

    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(book, key, value)
    book.cover_image = book.cover_image or DEFAULT_COVER_IMAGE

    await commit_changes(db)
    await log_activity(db, actor, "update", f'updated book "{book.title}"', book.id, ItemType.BOOK.value)

    return await get_book(db, book.id)


async def delete_book(db: AsyncSession, book_id: int, actor: Profile):
    book = await get_book(db, book_id)

    if await has_active_reservations(db, ItemType.BOOK, book_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cannot delete a book with pending or approved reservations.",
        )

    title = book.title
    await db.delete(book)
    await commit_changes(db)

    logger.info(f"Book {book_id} '{title}' deleted")
    await log_activity(db, actor, "delete", f'deleted book "{title}"', book_id, ItemType.BOOK.value)


async def add_copies(db: AsyncSession, book_id: int, data: CopiesCreate, actor: Profile) -> Book:
    book = await get_book(db, book_id)

    for _ in range(data.count):
        book.copies.append(
            BookCopy(status=CopyStatus.AVAILABLE, location=data.location, condition=data.condition),
        )
    await commit_changes(db)

    await log_activity(
        db,
        actor,
        "update",
        f'added {data.count} copies of "{book.title}"',
        book.id,
        ItemType.BOOK.value,
    )
    return await get_book(db, book.id)


async def _get_copy(db: AsyncSession, copy_id: int) -> BookCopy:
    copy = await db.get(BookCopy, copy_id)
    if not copy:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Copy {copy_id} not found",
        )
    return copy


async def update_copy(db: AsyncSession, copy_id: int, data: CopyUpdate) -> BookCopy:
    """Змінюються тільки опис примірника; статус веде життєвий цикл бронювань."""
    copy = await _get_copy(db, copy_id)

    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(copy, key, value)

    await commit_changes(db)
    return copy


async def delete_copy(db: AsyncSession, copy_id: int, actor: Profile):
    copy = await _get_copy(db, copy_id)

    bound = await db.scalar(
        select(
            exists().where(
                Reservation.copy_id == copy_id,
                Reservation.status == ReservationStatus.APPROVED,
            ),
        ),
    )
    if bound or copy.status != CopyStatus.AVAILABLE:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cannot delete a copy that is reserved or checked out.",
        )

    book_id = copy.book_id
    await db.delete(copy)
    await commit_changes(db)

    await log_activity(db, actor, "update", f"removed copy {copy_id}", book_id, ItemType.BOOK.value)
