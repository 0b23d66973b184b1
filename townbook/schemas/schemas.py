import re
from datetime import date, datetime, time
from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, EmailStr, Field, computed_field, field_validator

from townbook.models.book import CopyStatus
from townbook.models.profile import UserRole
from townbook.models.reservation import ItemType, ReservationStatus
from townbook.models.room import RoomAmenity
from townbook.oauth2 import validate_password_schema
from townbook.services.availability_service import display_status, is_overdue


# Базова схема для автоматичної конвертації в camelCase
class BaseSchema(BaseModel):
    class Config:
        @staticmethod
        def alias_generator(string: str) -> str:
            """Конвертує snake_case → camelCase"""
            return "".join(
                word.capitalize() if i else word
                for i, word in enumerate(string.split("_"))
            )

        populate_by_name = True
        from_attributes = True


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileCreate(BaseSchema):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=100)
    confirm_password: str = Field(..., min_length=8, max_length=100)
    secret_code: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, email: str):
        """Перевіряємо email додатково через regex"""
        pattern = (
            r"^(?!\.)(?!.*\.\.)[a-zA-Z0-9._%+-]+@[a-zA-Z0-9-]{2,63}\.[a-zA-Z]{2,63}$"
        )
        if not re.match(pattern, email):
            raise ValueError("Invalid email format")
        return email

    @field_validator("password")
    @classmethod
    def validate_password(cls, password: str):
        return validate_password_schema(password)

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, confirm_password: str, values):
        """Перевіряємо, чи `password` і `confirmPassword` співпадають."""
        if values.data.get("password") and confirm_password != values.data["password"]:
            raise ValueError("Passwords do not match")
        return confirm_password


class ProfileResponse(BaseSchema):
    id: int
    name: str
    email: EmailStr
    role: UserRole
    created_at: Optional[datetime] = None


class MemberResponse(ProfileResponse):
    books_read: int = 0
    active_reservations: int = 0


class ProfileUpdate(BaseSchema):
    name: Annotated[Optional[str], Field(min_length=2, max_length=100)] = None
    role: Optional[UserRole] = None


class SelfProfileUpdate(BaseSchema):
    name: str = Field(..., min_length=2, max_length=100)


class BookCopyResponse(BaseSchema):
    id: int
    book_id: int
    status: CopyStatus
    location: Optional[str] = None
    condition: Optional[str] = None


class BookBase(BaseSchema):
    title: str = Field(..., min_length=1, max_length=255)
    author: str = Field(..., min_length=1, max_length=255)
    cover_image: Optional[str] = None
    description: Optional[str] = None
    page_count: Optional[int] = Field(None, ge=0)
    publication_year: Optional[int] = None
    publisher: Optional[str] = None
    genres: List[str] = []
    isbn: Optional[str] = None
    language: Optional[str] = "English"

    @field_validator("genres", mode="before")
    def ensure_list(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v


class BookCreate(BookBase):
    copies: int = Field(1, ge=0, le=100)
    location: Optional[str] = None
    condition: Optional[str] = None


class BookUpdate(BookBase):
    rating: Optional[float] = Field(None, ge=0, le=5)


class BookResponse(BookBase):
    id: int
    rating: Optional[float] = 0.0
    added_date: Optional[datetime] = None
    copies: List[BookCopyResponse] = []
    total_copies: int = 0
    available_copies: int = 0


class CopiesCreate(BaseSchema):
    count: int = Field(1, ge=1, le=100)
    location: Optional[str] = None
    condition: Optional[str] = None


class CopyUpdate(BaseSchema):
    location: Optional[str] = None
    condition: Optional[str] = None


class AvailableCountResponse(BaseSchema):
    book_id: int
    available: int


class TimeSlot(BaseSchema):
    start_time: str
    end_time: str
    is_available: bool = True

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str):
        try:
            time.fromisoformat(value)
        except ValueError:
            raise ValueError("Time must be in HH:MM format")
        return value


class FreeSlot(TimeSlot):
    index: int


class RoomAvailabilityResponse(BaseSchema):
    date: date
    slots: List[TimeSlot]


class RoomAvailabilityUpdate(BaseSchema):
    date: date
    slots: List[TimeSlot]

    @field_validator("slots")
    @classmethod
    def validate_slots(cls, slots: List[TimeSlot]):
        for slot in slots:
            if time.fromisoformat(slot.start_time) >= time.fromisoformat(slot.end_time):
                raise ValueError("Slot start time must be before its end time")
        return slots


class FloorMapPosition(BaseModel):
    x: float = 0
    y: float = 0


class RoomBase(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    capacity: int = Field(..., ge=1)
    location: Optional[str] = None
    amenities: List[RoomAmenity] = []
    images: List[str] = []
    floor_map_position: FloorMapPosition = FloorMapPosition()


class RoomCreate(RoomBase):
    pass


class RoomUpdate(RoomBase):
    pass


class RoomResponse(RoomBase):
    id: int
    availability_schedule: List[RoomAvailabilityResponse] = []


class ReservationCreate(BaseSchema):
    item_type: ItemType
    item_id: int
    start_date: datetime
    end_date: Optional[datetime] = None
    slot_index: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("start_date", "end_date")
    @classmethod
    def to_local_naive(cls, value: Optional[datetime]):
        """Дати з часовою зоною (`...Z` з браузера) переводимо в локальний час без зони, як у БД."""
        if value is not None and value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        return value


class ReservationResponse(BaseSchema):
    id: int
    user_id: int
    item_id: int
    item_type: ItemType
    title: str
    start_date: datetime
    end_date: datetime
    status: ReservationStatus
    notes: Optional[str] = None
    copy_id: Optional[int] = None
    slot_index: Optional[int] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @computed_field
    @property
    def overdue(self) -> bool:
        return is_overdue(self)

    @computed_field
    @property
    def display_status(self) -> str:
        return display_status(self)


class ReservationWithUserResponse(ReservationResponse):
    user: Optional[ProfileResponse] = None


class ApproveRequest(BaseSchema):
    copy_id: Optional[int] = None


class BulkUpdateRequest(BaseModel):
    ids: List[int] = Field(..., min_length=1)


class BatchItemResult(BaseSchema):
    reservation_id: int
    success: bool
    status: Optional[ReservationStatus] = None
    error: Optional[Any] = None


class ReconciliationReport(BaseSchema):
    freed_copies: List[int]
    restored_copies: List[int]
    restored_slots: List[int]


class ActivityResponse(BaseSchema):
    id: int
    user_id: Optional[int] = None
    user_name: str
    action: str
    description: str
    item_id: Optional[int] = None
    item_type: Optional[str] = None
    timestamp: Optional[datetime] = None
    is_processed: bool


class UserHistoryResponse(BaseSchema):
    activities: List[ActivityResponse]
    reservations: List[ReservationResponse]


class NotificationResponse(BaseSchema):
    id: int
    user_id: int
    title: str
    message: str
    is_read: bool
    related_reservation_id: Optional[int] = None
    created_at: Optional[datetime] = None
