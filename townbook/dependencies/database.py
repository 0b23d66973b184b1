from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from townbook.config import config

engine = create_async_engine(
    config.DATABASE_URL,
    echo=config.DATABASE_ECHO,
    future=True,
    connect_args={"ssl": True} if config.DATABASE_SSL else {},
    execution_options={"compiled_cache": None},
)

SessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()


async def get_db():
    async with SessionLocal() as session:
        yield session


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def side_session(db: AsyncSession):
    """Окрема сесія на тому ж engine для записів поза транзакцією основної операції."""
    async with AsyncSession(db.bind, expire_on_commit=False) as session:
        yield session
