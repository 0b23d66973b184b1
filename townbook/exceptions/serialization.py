from townbook.models.book import Book, BookCopy, CopyStatus
from townbook.models.room import Room
from townbook.services.availability_service import parse_slots


def serialize_copy(copy: BookCopy) -> dict:
    return {
        "id": copy.id,
        "book_id": copy.book_id,
        "status": copy.status,
        "location": copy.location,
        "condition": copy.condition,
    }


def serialize_book(book: Book) -> dict:
    """Книга разом із примірниками. `book.copies` має бути завантажено."""
    copies = list(book.copies)
    return {
        "id": book.id,
        "title": book.title,
        "author": book.author,
        "cover_image": book.cover_image,
        "description": book.description,
        "page_count": book.page_count,
        "publication_year": book.publication_year,
        "publisher": book.publisher,
        "genres": book.genres or [],
        "isbn": book.isbn,
        "language": book.language,
        "rating": book.rating or 0.0,
        "added_date": book.added_date,
        "copies": [serialize_copy(copy) for copy in copies],
        "total_copies": len(copies),
        "available_copies": sum(1 for c in copies if c.status == CopyStatus.AVAILABLE),
    }


def serialize_room(room: Room, with_schedule: bool = True) -> dict:
    data = {
        "id": room.id,
        "name": room.name,
        "description": room.description,
        "capacity": room.capacity,
        "location": room.location,
        "amenities": room.amenities or [],
        "images": room.images or [],
        "floor_map_position": room.floor_map_position or {"x": 0, "y": 0},
        "availability_schedule": [],
    }
    if with_schedule:
        data["availability_schedule"] = [
            {"date": schedule.date, "slots": parse_slots(schedule.slots)}
            for schedule in room.availability
        ]
    return data
