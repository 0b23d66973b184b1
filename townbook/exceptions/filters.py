from typing import List, Optional

from sqlalchemy.sql import Select, or_

from townbook.models.book import Book, BookCopy, CopyStatus
from townbook.models.room import Room

BOOK_SORT_COLUMNS = {
    "title": Book.title,
    "author": Book.author,
    "publicationYear": Book.publication_year,
    "addedDate": Book.added_date,
}


def apply_book_filters(
    query: Select,
    query_text: Optional[str] = None,
    language: Optional[str] = None,
    availability: Optional[CopyStatus] = None,
    sort_by: Optional[str] = None,
    sort_order: str = "asc",
) -> Select:
    if query_text:
        pattern = f"%{query_text}%"
        query = query.where(
            or_(
                Book.title.ilike(pattern),
                Book.author.ilike(pattern),
                Book.description.ilike(pattern),
                Book.isbn.ilike(pattern),
            ),
        )
    if language:
        query = query.where(Book.language.ilike(f"%{language}%"))
    if availability:
        query = query.where(
            Book.copies.any(BookCopy.status == availability),
        )

    column = BOOK_SORT_COLUMNS.get(sort_by or "title", Book.title)
    query = query.order_by(column.desc() if sort_order == "desc" else column.asc())

    return query


def apply_room_filters(
    query: Select,
    query_text: Optional[str] = None,
    capacity: Optional[int] = None,
) -> Select:
    if query_text:
        pattern = f"%{query_text}%"
        query = query.where(
            or_(
                Room.name.ilike(pattern),
                Room.description.ilike(pattern),
                Room.location.ilike(pattern),
            ),
        )
    if capacity:
        query = query.where(Room.capacity >= capacity)

    return query.order_by(Room.name)


def contains_all(values: Optional[List[str]], required: Optional[List[str]]) -> bool:
    """Фільтр для JSON-списків (жанри, зручності), перевіряється в Python."""
    if not required:
        return True
    return set(required).issubset(set(values or []))
