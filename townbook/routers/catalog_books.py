from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from townbook.dependencies.database import get_db
from townbook.exceptions.pagination import paginate_response
from townbook.exceptions.serialization import serialize_book
from townbook.models.book import CopyStatus
from townbook.schemas.schemas import AvailableCountResponse, BookResponse
from townbook.services.availability_service import get_available_book_copies_count
from townbook.services.books_service import get_all_genres, get_book, search_books

router = APIRouter(prefix="/books", tags=["Books"])


@router.get("", response_model=dict)
async def list_books(
    db: AsyncSession = Depends(get_db),
    query: Optional[str] = Query(None, description="Пошук за назвою, автором, описом, ISBN"),
    genres: Optional[List[str]] = Query(None),
    language: Optional[str] = Query(None),
    availability: Optional[CopyStatus] = Query(None),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: str = Query("asc", alias="sortOrder", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    per_page: int = Query(12, ge=1, le=100),
):
    filters = {
        "query_text": query,
        "language": language,
        "availability": availability,
        "sort_by": sort_by,
        "sort_order": sort_order,
    }
    total, books = await search_books(db, filters, genres, page, per_page)

    items = [
        BookResponse.model_validate(serialize_book(book)).model_dump(mode="json", by_alias=True)
        for book in books
    ]
    return paginate_response(total, page, per_page, items)


@router.get("/genres", response_model=list[str])
async def list_genres(db: AsyncSession = Depends(get_db)):
    return await get_all_genres(db)


@router.get("/{book_id}", response_model=BookResponse)
async def read_book(book_id: int, db: AsyncSession = Depends(get_db)):
    return serialize_book(await get_book(db, book_id))


@router.get("/{book_id}/available-count", response_model=AvailableCountResponse)
async def read_available_count(book_id: int, db: AsyncSession = Depends(get_db)):
    await get_book(db, book_id)
    available = await get_available_book_copies_count(db, book_id)
    return {"book_id": book_id, "available": available}
