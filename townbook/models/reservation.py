from enum import Enum as PyEnum

from sqlalchemy import Column, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from townbook.dependencies.database import Base


class ReservationStatus(str, PyEnum):
    PENDING = "Pending"
    APPROVED = "Approved"
    DECLINED = "Declined"
    COMPLETED = "Completed"


class ItemType(str, PyEnum):
    BOOK = "book"
    ROOM = "room"


TERMINAL_STATUSES = (ReservationStatus.DECLINED, ReservationStatus.COMPLETED)
ACTIVE_STATUSES = (ReservationStatus.PENDING, ReservationStatus.APPROVED)


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer,
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # book -> books.id, room -> rooms.id
    item_id = Column(Integer, nullable=False, index=True)
    item_type = Column(SAEnum(ItemType, native_enum=False), nullable=False)
    title = Column(String, nullable=False)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False, index=True)
    status = Column(
        SAEnum(ReservationStatus, native_enum=False),
        default=ReservationStatus.PENDING,
        nullable=False,
        index=True,
    )
    notes = Column(Text, nullable=True)

    # Примірник, закріплений за бронюванням під час підтвердження
    copy_id = Column(
        Integer,
        ForeignKey("book_copies.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    # Індекс слоту в розкладі кімнати на дату start_date
    slot_index = Column(Integer, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    completed_at = Column(DateTime, nullable=True)
    version_id = Column(Integer, nullable=False)

    user = relationship("Profile", back_populates="reservations")
    copy = relationship("BookCopy")

    __mapper_args__ = {"version_id_col": version_id}
