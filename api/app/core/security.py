import uuid
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from app.core.config import settings


# ─── JWT tokens ────────────────────────────────────────
def _encode(data: dict, token_type: str, expires_delta: timedelta) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode.update({"exp": expire, "type": token_type, "jti": uuid.uuid4().hex})
    return jwt.encode(to_encode, settings.api_secret_key, algorithm=settings.algorithm)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    return _encode(
        data,
        "access",
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes),
    )


def create_refresh_token(data: dict) -> str:
    return _encode(data, "refresh", timedelta(days=settings.refresh_token_expire_days))


def create_magic_token(email: str) -> str:
    """Single-use sign-in token mailed to the user; `sub` is the email address."""
    return _encode(
        {"sub": email.lower()},
        "magic",
        timedelta(minutes=settings.magic_link_expire_minutes),
    )


def decode_token(token: str) -> dict | None:
    try:
        return jwt.decode(token, settings.api_secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None


def seconds_until_expiry(token_data: dict) -> int:
    exp = token_data.get("exp", 0)
    return max(0, int(exp - datetime.now(timezone.utc).timestamp()))
