import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from townbook.config import config
from townbook.dependencies.cache import get_redis
from townbook.dependencies.database import get_db
from townbook.models.profile import Profile
from townbook.roles import create_user, resolve_sign_up_role
from townbook.schemas.schemas import LoginRequest, ProfileCreate, ProfileResponse
from townbook.services.user_service import authenticate_user, get_current_user
from townbook.utils import create_access_token, create_refresh_token, decode_jwt_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])

ACCESS_MAX_AGE = config.ACCESS_TOKEN_EXPIRE_MINUTES * 60
REFRESH_MAX_AGE = config.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60


def set_auth_cookies(response: Response, profile: Profile):
    response.set_cookie(
        key="access_token",
        value=create_access_token(profile),
        httponly=True,
        secure=config.COOKIE_SECURE,
        samesite="Lax",
        max_age=ACCESS_MAX_AGE,
    )
    response.set_cookie(
        key="refresh_token",
        value=create_refresh_token(profile),
        httponly=True,
        secure=config.COOKIE_SECURE,
        samesite="Lax",
        max_age=REFRESH_MAX_AGE,
    )


# Реєстрація користувача
@router.post("/sign-up", status_code=status.HTTP_201_CREATED)
async def sign_up(user: ProfileCreate, db: AsyncSession = Depends(get_db)):
    role = resolve_sign_up_role(user.secret_code.strip() if user.secret_code else None)
    created_user = await create_user(db, user, role)

    logger.info(f"Profile {created_user.id} signed up as {role.value}")

    user_data = ProfileResponse.model_validate(created_user).model_dump(mode="json", by_alias=True)
    response = JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"message": "Registration successful", "user": user_data},
    )
    set_auth_cookies(response, created_user)
    return response


# 🔑 Логін користувача
@router.post("/sign-in", status_code=status.HTTP_200_OK)
async def sign_in(login_data: LoginRequest, db: AsyncSession = Depends(get_db)):
    """🔐 Вхід користувача, токени в HTTP-only cookies"""

    user = await authenticate_user(db, str(login_data.email), login_data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "Invalid Credentials",
                "message": "Invalid email or password. Please check your credentials and try again.",
            },
        )

    user_data = ProfileResponse.model_validate(user).model_dump(mode="json", by_alias=True)
    response = JSONResponse(content={"message": "Login successful", "user": user_data})
    set_auth_cookies(response, user)
    return response


@router.post("/logout", status_code=200)
async def logout(request: Request, response: Response, redis=Depends(get_redis)):
    """🔓 Вихід: видалення HTTP-only cookies та відкликання refresh_token"""

    refresh_token = request.cookies.get("refresh_token")
    if refresh_token:
        # Додаємо у Redis blacklist
        await redis.setex(f"blacklist:{refresh_token}", REFRESH_MAX_AGE, "revoked")

    response.delete_cookie("access_token")
    response.delete_cookie("refresh_token")

    return {"message": "Successfully logged out"}


@router.post("/refresh-token", status_code=200)
async def refresh_token(
    request: Request,
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """Оновлення access_token з HTTP-only refresh_token cookie"""

    refresh_token = request.cookies.get("refresh_token")
    if not refresh_token:
        raise HTTPException(status_code=401, detail="Missing refresh token")

    if await redis.exists(f"blacklist:{refresh_token}"):
        raise HTTPException(status_code=401, detail="Refresh token is revoked")

    token_data = decode_jwt_token(refresh_token, token_type="refresh")

    user = await db.get(Profile, int(token_data["id"]))
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    response = JSONResponse(content={"message": "Access token refreshed"})
    set_auth_cookies(response, user)
    return response


@router.get("/me", response_model=ProfileResponse)
async def read_me(user: Profile = Depends(get_current_user)):
    return user
