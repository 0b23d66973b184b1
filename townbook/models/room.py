from enum import Enum as PyEnum

from sqlalchemy import JSON, Column, Date, ForeignKey, Integer, String, Text
from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import relationship

from townbook.dependencies.database import Base

DEFAULT_ROOM_IMAGE = "https://images.pexels.com/photos/1329571/pexels-photo-1329571.jpeg"


class RoomAmenity(str, PyEnum):
    WIFI = "wifi"
    PROJECTOR = "projector"
    WHITEBOARD = "whiteboard"
    COMPUTERS = "computers"
    VIDEOCONFERENCING = "videoconferencing"
    PRINTER = "printer"
    STUDY_PODS = "study-pods"
    SILENCE = "silence"


class Room(Base):
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=True)
    capacity = Column(Integer, nullable=False)
    location = Column(String, nullable=True)
    amenities = Column(JSON, nullable=False, default=list)
    images = Column(JSON, nullable=False, default=list)
    floor_map_position = Column(JSON, nullable=True)

    availability = relationship(
        "RoomAvailability",
        back_populates="room",
        cascade="all, delete-orphan",
        order_by="RoomAvailability.date",
    )


class RoomAvailability(Base):
    """Розклад кімнати на одну дату: список слотів {startTime, endTime, isAvailable}."""

    __tablename__ = "room_availability"

    id = Column(Integer, primary_key=True, index=True)
    room_id = Column(
        Integer,
        ForeignKey("rooms.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    date = Column(Date, nullable=False, index=True)
    slots = Column(JSON, nullable=False, default=list)
    version_id = Column(Integer, nullable=False)

    room = relationship("Room", back_populates="availability")

    __table_args__ = (
        UniqueConstraint("room_id", "date", name="uq_room_availability_room_date"),
    )
    __mapper_args__ = {"version_id_col": version_id}
