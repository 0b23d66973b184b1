import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["SECRET_LIBRARIAN_CODE"] = "shelf-keeper"
os.environ["COOKIE_SECURE"] = "false"
os.environ["ADMIN_EMAIL"] = ""
os.environ["ADMIN_PASS"] = ""

from datetime import date, datetime, time, timedelta  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from townbook.dependencies.cache import get_redis  # noqa: E402
from townbook.dependencies.database import Base, get_db  # noqa: E402
from townbook.main import app  # noqa: E402
from townbook.models import (  # noqa: E402
    Book,
    BookCopy,
    CopyStatus,
    ItemType,
    Profile,
    Room,
    RoomAvailability,
    UserRole,
)
from townbook.schemas.schemas import ReservationCreate  # noqa: E402

DAY = date(2025, 6, 1)


class FakeRedis:
    """Мінімальна заміна клієнта Redis для тестів, з керованим годинником для TTL."""

    def __init__(self):
        self.store = {}
        self.expires_at = {}
        self.now = 0.0

    def advance(self, seconds):
        self.now += seconds

    def _alive(self, key):
        expires_at = self.expires_at.get(key)
        if expires_at is not None and self.now >= expires_at:
            self.store.pop(key, None)
            self.expires_at.pop(key, None)
        return key in self.store

    def ttl(self, key):
        if not self._alive(key):
            return -2
        if key not in self.expires_at:
            return -1
        return self.expires_at[key] - self.now

    async def get(self, key):
        return self.store.get(key) if self._alive(key) else None

    async def set(self, key, value, ex=None):
        self.store[key] = value
        if ex is None:
            self.expires_at.pop(key, None)
        else:
            self.expires_at[key] = self.now + ex

    async def setex(self, key, seconds, value):
        await self.set(key, value, ex=seconds)

    async def exists(self, key):
        return int(self._alive(key))


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'townbook.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
async def client(session_factory, fake_redis):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_redis():
        return fake_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def make_profile(db, name="Olena", role=UserRole.MEMBER, email=None) -> Profile:
    profile = Profile(
        name=name,
        email=email or f"{name.lower()}@example.com",
        hashed_password="not-a-real-hash",
        role=role,
    )
    db.add(profile)
    await db.commit()
    await db.refresh(profile)
    return profile


async def make_book(db, copies=1, title="Kobzar", author="Taras Shevchenko", genres=None) -> Book:
    book = Book(title=title, author=author, genres=genres or ["Poetry"], language="Ukrainian")
    book.copies = [BookCopy(status=CopyStatus.AVAILABLE) for _ in range(copies)]
    db.add(book)
    await db.commit()
    await db.refresh(book)
    return book


async def make_room(db, day=DAY, slots=None, name="Reading Room") -> Room:
    room = Room(name=name, capacity=6, amenities=["wifi", "whiteboard"], images=[])
    db.add(room)
    await db.flush()
    db.add(
        RoomAvailability(
            room_id=room.id,
            date=day,
            slots=slots or [{"startTime": "10:00", "endTime": "11:00", "isAvailable": True}],
        ),
    )
    await db.commit()
    await db.refresh(room)
    return room


def book_request(book_id: int, **kwargs) -> ReservationCreate:
    return ReservationCreate(
        item_type=ItemType.BOOK,
        item_id=book_id,
        start_date=kwargs.pop("start_date", datetime.now()),
        **kwargs,
    )


def room_request(room_id: int, slot_index: int = 0, day=DAY) -> ReservationCreate:
    return ReservationCreate(
        item_type=ItemType.ROOM,
        item_id=room_id,
        start_date=datetime.combine(day, time(10)),
        slot_index=slot_index,
    )


@pytest.fixture
async def member(db):
    return await make_profile(db, "Olena")


@pytest.fixture
async def librarian(db):
    return await make_profile(db, "Mykola", role=UserRole.LIBRARIAN)


def overdue_window():
    start = datetime.now() - timedelta(days=20)
    return {"start_date": start, "end_date": start + timedelta(days=14)}
