"""
Passwordless sign-in.

  POST /auth/sign-in  → mails a single-use link (always 202)
  POST /auth/verify   → consumes the link, provisions the user, sets cookies
  POST /auth/refresh  → rotates the cookie pair
  POST /auth/logout   → revokes the refresh token and clears cookies

Sessions live in two httpOnly cookies; `app.core.deps` also accepts the
access token as a Bearer header for API clients.
"""
import asyncio
import logging
import uuid

from fastapi import APIRouter, Depends, Request, Response
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.deps import get_current_user
from app.core.errors import Unauthenticated
from app.core.redis import blacklist_token, consume_magic_token, is_blacklisted
from app.core.security import (
    create_access_token,
    create_magic_token,
    create_refresh_token,
    decode_token,
    seconds_until_expiry,
)
from app.models.user import User, UserRole
from app.schemas.user import SignInRequest, UserResponse, VerifyRequest
from app.services.notifications import dispatch_notifications, sign_in_notice

logger = logging.getLogger(__name__)

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.rate_limit_storage_uri,
    enabled=settings.rate_limit_enabled,
)

router = APIRouter(prefix="/auth", tags=["auth"])

_COOKIES = {
    "access_token": (create_access_token, settings.access_token_expire_minutes * 60),
    "refresh_token": (create_refresh_token, settings.refresh_token_expire_days * 86400),
}


def _issue_session(response: Response, user: User) -> None:
    # Lax in development so the frontend on another localhost port still gets them
    dev = settings.environment == "development"
    for key, (make_token, max_age) in _COOKIES.items():
        response.set_cookie(
            key=key,
            value=make_token({"sub": str(user.id)}),
            httponly=True,
            secure=not dev,
            samesite="lax" if dev else "strict",
            max_age=max_age,
            path="/",
        )


def _role_for(email: str) -> UserRole:
    bookkeepers = {e.lower() for e in settings.bookkeeper_emails}
    return UserRole.BOOKKEEPER if email in bookkeepers else UserRole.CLIENT


async def provision_user(db: AsyncSession, email: str) -> User:
    """Return the user for an email, creating it on first sign-in."""
    email = email.lower()
    lookup = select(User).where(User.email == email)
    user = (await db.execute(lookup)).scalar_one_or_none()
    if user is not None:
        return user

    user = User(email=email, role=_role_for(email))
    db.add(user)
    try:
        await db.flush()
    except IntegrityError:
        # Two verify requests for a brand-new address; the other one created it
        await db.rollback()
        return (await db.execute(lookup)).scalar_one()
    await db.refresh(user)
    logger.info("Provisioned %s user %s", user.role.value, user.id)
    return user


@router.post("/sign-in", status_code=202)
@limiter.limit("5/minute;20/hour")
async def sign_in(request: Request, payload: SignInRequest):
    """Email a sign-in link. The answer never reveals whether the address is known."""
    link = f"{settings.app_url}/auth/verify?token={create_magic_token(payload.email)}"
    if settings.environment == "development":
        logger.info("Sign-in link for %s: %s", payload.email, link)
    await asyncio.to_thread(dispatch_notifications, [sign_in_notice(payload.email, link)])
    return {"ok": True}


@router.post("/verify", response_model=UserResponse)
@limiter.limit("10/minute;30/hour")
async def verify(
    request: Request,
    payload: VerifyRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    claims = decode_token(payload.token)
    if not claims or claims.get("type") != "magic" or not claims.get("sub"):
        raise Unauthenticated("Invalid or expired sign-in link")
    if not await consume_magic_token(claims["jti"], seconds_until_expiry(claims)):
        raise Unauthenticated("Sign-in link has already been used")

    user = await provision_user(db, claims["sub"])
    await db.commit()
    _issue_session(response, user)
    return user


@router.post("/refresh")
async def refresh(request: Request, response: Response, db: AsyncSession = Depends(get_db)):
    claims = decode_token(request.cookies.get("refresh_token") or "")
    if not claims or claims.get("type") != "refresh":
        raise Unauthenticated("Invalid refresh token")

    jti = claims.get("jti")
    if jti and await is_blacklisted(jti):
        raise Unauthenticated("Token has been revoked")

    try:
        user = await db.get(User, uuid.UUID(str(claims.get("sub"))))
    except ValueError:
        user = None
    if user is None:
        raise Unauthenticated()

    # Rotation: the presented refresh token is dead from here on
    if jti:
        await blacklist_token(jti, seconds_until_expiry(claims))
    _issue_session(response, user)
    return {"ok": True}


@router.post("/logout", status_code=204)
async def logout(request: Request, response: Response):
    claims = decode_token(request.cookies.get("refresh_token") or "")
    if claims and claims.get("jti"):
        await blacklist_token(claims["jti"], seconds_until_expiry(claims))
    for key in _COOKIES:
        response.delete_cookie(key=key, path="/")


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)):
    return user
