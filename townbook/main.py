import logging
from contextlib import asynccontextmanager
from logging.config import dictConfig

from fastapi import FastAPI
from redis.exceptions import RedisError

from townbook.config import LogConfig
from townbook.dependencies.cache import redis_client
from townbook.dependencies.database import SessionLocal, init_db
from townbook.middlewares.middlewares import setup_middlewares
from townbook.roles import create_admin
from townbook.routers import (
    activities,
    auth,
    catalog_books,
    librarian_books,
    librarian_reservations,
    librarian_rooms,
    members,
    notifications,
    realtime,
    reservations,
    rooms,
    statistics,
)
from townbook.websockets import change_feed  # noqa: F401  реєструє слухачі подій ORM

dictConfig(LogConfig().model_dump())
logger = logging.getLogger("townbook")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управління ресурсами під час життєвого циклу API"""

    try:
        await init_db()  # Створення таблиць БД

        async with SessionLocal() as db:
            await create_admin(db)  # Створення адміна

        try:
            await redis_client.ping()
            logger.info("✅ Redis успішно підключено")
        except RedisError as e:
            logger.error(f"❌ Не вдалося підключитися до Redis: {e}")

        yield

    except Exception as e:
        logger.error(f"❌ Помилка при запуску сервера: {e}")
        raise e

    finally:
        await redis_client.aclose()
        logger.info("🔴 Підключення до Redis закрито")


app = FastAPI(
    lifespan=lifespan,
    title="TownBook API",
    description="API бібліотеки: каталог книг, кімнати та бронювання",
    version="1.0",
    swagger_ui_parameters={"persistAuthorization": True},
)

setup_middlewares(app)

app.include_router(auth.router, prefix="/api/v1")
app.include_router(catalog_books.router, prefix="/api/v1")
app.include_router(librarian_books.router, prefix="/api/v1")
app.include_router(rooms.router, prefix="/api/v1")
app.include_router(librarian_rooms.router, prefix="/api/v1")
app.include_router(reservations.router, prefix="/api/v1")
app.include_router(librarian_reservations.router, prefix="/api/v1")
app.include_router(activities.router, prefix="/api/v1")
app.include_router(notifications.router, prefix="/api/v1")
app.include_router(members.router, prefix="/api/v1")
app.include_router(statistics.router, prefix="/api/v1")
app.include_router(realtime.router, prefix="/api/v1")


logger.info("✅ TownBook API успішно запущено!")
