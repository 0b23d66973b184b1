# Import all models here
# This way when we import Base to alembic env.py all models are also will be imported
# and changes applied to migration script

from townbook.dependencies.database import Base
from .activity import Activity
from .book import Book, BookCopy, CopyStatus
from .notification import Notification
from .profile import Profile, UserRole
from .reservation import ItemType, Reservation, ReservationStatus
from .room import Room, RoomAmenity, RoomAvailability
