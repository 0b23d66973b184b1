from enum import Enum as PyEnum

from sqlalchemy import JSON, Column, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from townbook.dependencies.database import Base

DEFAULT_COVER_IMAGE = (
    "https://images.unsplash.com/photo-1544947950-fa07a98d237f?q=80&w=200&auto=format"
)


class CopyStatus(str, PyEnum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    CHECKED_OUT = "checked-out"


class Book(Base):
    __tablename__ = "books"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False, index=True)
    author = Column(String, nullable=False, index=True)
    cover_image = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    page_count = Column(Integer, nullable=True)
    publication_year = Column(Integer, nullable=True, index=True)
    publisher = Column(String, nullable=True)
    genres = Column(JSON, nullable=False, default=list)
    isbn = Column(String, nullable=True, index=True)
    language = Column(String, nullable=True, default="English")
    rating = Column(Float, nullable=True, default=0.0)
    added_date = Column(DateTime, server_default=func.now())

    copies = relationship(
        "BookCopy",
        back_populates="book",
        cascade="all, delete-orphan",
        order_by="BookCopy.id",
    )


class BookCopy(Base):
    """Фізичний примірник книги: одиниця інвентаря з власним статусом."""

    __tablename__ = "book_copies"

    id = Column(Integer, primary_key=True, index=True)
    book_id = Column(
        Integer,
        ForeignKey("books.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status = Column(
        SAEnum(CopyStatus, native_enum=False),
        default=CopyStatus.AVAILABLE,
        nullable=False,
        index=True,
    )
    location = Column(String, nullable=True)
    condition = Column(String, nullable=True)
    version_id = Column(Integer, nullable=False)

    book = relationship("Book", back_populates="copies")

    __mapper_args__ = {"version_id_col": version_id}
