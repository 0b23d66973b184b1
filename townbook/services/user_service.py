from http.cookies import SimpleCookie

from fastapi import Depends, HTTPException, Request, WebSocket, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from townbook.dependencies.database import get_db
from townbook.models.profile import STAFF_ROLES, Profile, UserRole
from townbook.oauth2 import verify_password
from townbook.utils import decode_jwt_token


# Отримати профіль за email
async def get_user_by_email(db: AsyncSession, email: str) -> Profile | None:
    result = await db.execute(select(Profile).where(Profile.email == email.lower()))
    return result.scalar_one_or_none()


async def get_current_user_id(request: Request) -> int:
    """Отримуємо user_id з JWT токена в куці"""
    token = request.cookies.get("access_token")
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    token_data = decode_jwt_token(token)
    return int(token_data["id"])


async def get_current_user(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Profile:
    user = await db.get(Profile, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


# Аутентифікація користувача
async def authenticate_user(db: AsyncSession, email: str, password: str) -> Profile | None:
    user = await get_user_by_email(db, email)
    if not user or not verify_password(password, user.hashed_password):
        return None
    return user


async def librarian_required(user: Profile = Depends(get_current_user)) -> Profile:
    """Роль перевіряється по базі, а не по токену: її могли змінити після входу."""
    if user.role not in STAFF_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied: Librarian role required",
        )
    return user


async def admin_required(user: Profile = Depends(get_current_user)) -> Profile:
    if user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied: Admin role required",
        )
    return user


def get_ws_token_data(websocket: WebSocket) -> dict | None:
    # Спочатку намагаємось дістати куку через стандартний метод
    token = websocket.cookies.get("access_token")

    # Якщо не спрацювало, парсимо вручну з headers
    if not token:
        parsed = SimpleCookie()
        parsed.load(websocket.headers.get("cookie", ""))
        token = parsed["access_token"].value if "access_token" in parsed else None

    if not token:
        return None

    try:
        return decode_jwt_token(token)
    except HTTPException:
        return None
