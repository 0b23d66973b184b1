import os
from logging.config import fileConfig

from dotenv import load_dotenv
from sqlalchemy import create_engine

from alembic import context
from townbook.dependencies.database import Base
from townbook.models import (  # noqa: F401
    Activity,
    Book,
    BookCopy,
    Notification,
    Profile,
    Reservation,
    Room,
    RoomAvailability,
)

load_dotenv()
ALEMBIC_DATABASE_URL = os.getenv("ALEMBIC_DATABASE_URL")
if not ALEMBIC_DATABASE_URL:
    raise ValueError("❌ ALEMBIC_DATABASE_URL is not set in the environment variables!")

config = context.config

config.set_main_option("sqlalchemy.url", ALEMBIC_DATABASE_URL)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

if os.getenv("DATABASE_SSL", "false").lower() == "true" and "sslmode" not in ALEMBIC_DATABASE_URL:
    separator = "&" if "?" in ALEMBIC_DATABASE_URL else "?"
    ALEMBIC_DATABASE_URL += f"{separator}sslmode=require"


def run_migrations_offline() -> None:
    """Генерує SQL без підключення до бази."""
    context.configure(
        url=ALEMBIC_DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(
        ALEMBIC_DATABASE_URL,
        poolclass=None,
        execution_options={"compiled_cache": None},
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
