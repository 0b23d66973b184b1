import logging

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from townbook.config import config
from townbook.models.profile import Profile, UserRole
from townbook.oauth2 import hash_password
from townbook.schemas.schemas import ProfileCreate
from townbook.services.user_service import get_user_by_email

logger = logging.getLogger("townbook")


async def create_admin(db: AsyncSession):
    """Функція для створення адміністратора під час запуску сервера."""

    if not config.ADMIN_EMAIL or not config.ADMIN_PASS:
        logger.warning(
            "⚠️ ADMIN_EMAIL або ADMIN_PASS не встановлені в .env! Пропускаємо створення адміністратора.",
        )
        return

    if await get_user_by_email(db, config.ADMIN_EMAIL):
        logger.info(f"✅ Адміністратор {config.ADMIN_NAME} вже існує. Пропускаємо створення.")
        return

    admin = Profile(
        name=config.ADMIN_NAME,
        email=config.ADMIN_EMAIL.lower(),
        hashed_password=hash_password(config.ADMIN_PASS),
        role=UserRole.ADMIN,
    )
    db.add(admin)
    await db.commit()
    logger.info(f"🆕 Адміністратор {config.ADMIN_NAME} створений успішно!")


def resolve_sign_up_role(secret_code: str | None) -> UserRole:
    """Правильний секретний код дає роль бібліотекаря, інакше учасника."""
    if config.SECRET_LIBRARIAN_CODE and secret_code == config.SECRET_LIBRARIAN_CODE:
        return UserRole.LIBRARIAN
    return UserRole.MEMBER


async def create_user(db: AsyncSession, user_data: ProfileCreate, role: UserRole) -> Profile:
    """Створення профілю без явної валідації пароля (бо вона вже в `ProfileCreate`)."""

    if await get_user_by_email(db, user_data.email):
        raise HTTPException(status_code=400, detail="Email already registered")

    user = Profile(
        name=user_data.name.strip(),
        email=user_data.email.lower(),
        hashed_password=hash_password(user_data.password),
        role=role,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user
