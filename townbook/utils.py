from datetime import datetime, timedelta

from fastapi import HTTPException, status
from jose import ExpiredSignatureError, JWTError, jwt

from townbook.config import config
from townbook.models.profile import Profile


def _encode_profile(profile: Profile, expires_delta: timedelta, token_type: str) -> str:
    to_encode = {
        "id": str(profile.id),
        "name": profile.name,
        "email": profile.email,
        "role": profile.role.value,
        "type": token_type,
        "exp": datetime.now() + expires_delta,
    }
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


# Створення JWT токена
def create_access_token(profile: Profile):
    """Створює JWT-токен з основними даними профілю."""
    return _encode_profile(
        profile,
        timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES),
        "access",
    )


# Створення refresh JWT токена
def create_refresh_token(profile: Profile):
    return _encode_profile(
        profile,
        timedelta(days=config.REFRESH_TOKEN_EXPIRE_DAYS),
        "refresh",
    )


# Єдина функція для декодування токенів (access і refresh)
def decode_jwt_token(token: str, token_type: str = "access"):
    """Розшифровує JWT-токен та повертає всі його дані"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate token",
        headers={"WWW-Authenticate": "cookie"},
    )

    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired")
    except JWTError:
        raise credentials_exception

    token_data = {
        "id": payload.get("id"),
        "name": payload.get("name"),
        "email": payload.get("email"),
        "role": payload.get("role"),
        "exp": payload.get("exp"),
    }

    # Переконуємось, що всі ключові поля є в токені
    if None in token_data.values() or payload.get("type") != token_type:
        raise credentials_exception

    return token_data
