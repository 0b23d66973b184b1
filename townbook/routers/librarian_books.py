from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from townbook.dependencies.database import get_db
from townbook.exceptions.serialization import serialize_book, serialize_copy
from townbook.models.profile import Profile
from townbook.schemas.schemas import (
    BookCopyResponse,
    BookCreate,
    BookResponse,
    BookUpdate,
    CopiesCreate,
    CopyUpdate,
)
from townbook.services import books_service
from townbook.services.user_service import librarian_required

router = APIRouter(prefix="/books", tags=["Librarian Books"])


@router.post("", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
async def create_book(
    book_data: BookCreate,
    db: AsyncSession = Depends(get_db),
    librarian: Profile = Depends(librarian_required),
):
    book = await books_service.create_book(db, book_data, librarian)
    return serialize_book(book)


@router.put("/{book_id}", response_model=BookResponse)
async def update_book(
    book_id: int,
    book_data: BookUpdate,
    db: AsyncSession = Depends(get_db),
    librarian: Profile = Depends(librarian_required),
):
    """Оновлення книги (тільки бібліотекар)."""
    book = await books_service.update_book(db, book_id, book_data, librarian)
    return serialize_book(book)


@router.delete("/{book_id}", response_model=dict)
async def delete_book(
    book_id: int,
    db: AsyncSession = Depends(get_db),
    librarian: Profile = Depends(librarian_required),
):
    """🗑 Видалення книги разом з усіма примірниками."""
    await books_service.delete_book(db, book_id, librarian)
    return {"message": "Book deleted successfully", "id": book_id}


@router.post("/{book_id}/copies", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
async def add_copies(
    book_id: int,
    data: CopiesCreate,
    db: AsyncSession = Depends(get_db),
    librarian: Profile = Depends(librarian_required),
):
    book = await books_service.add_copies(db, book_id, data, librarian)
    return serialize_book(book)


@router.patch("/copies/{copy_id}", response_model=BookCopyResponse)
async def update_copy(
    copy_id: int,
    data: CopyUpdate,
    db: AsyncSession = Depends(get_db),
    _: Profile = Depends(librarian_required),
):
    copy = await books_service.update_copy(db, copy_id, data)
    return serialize_copy(copy)


@router.delete("/copies/{copy_id}", response_model=dict)
async def delete_copy(
    copy_id: int,
    db: AsyncSession = Depends(get_db),
    librarian: Profile = Depends(librarian_required),
):
    await books_service.delete_copy(db, copy_id, librarian)
    return {"message": "Copy deleted successfully", "id": copy_id}
