import uuid

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.errors import Unauthenticated
from app.core.security import decode_token
from app.models.user import User, UserRole
from app.services.scoping import Caller


def _token_from_request(request: Request) -> str | None:
    token = request.cookies.get("access_token")
    if token:
        return token
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return None


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    token = _token_from_request(request)
    if not token:
        raise Unauthenticated()

    token_data = decode_token(token)
    if token_data is None or token_data.get("type") != "access":
        raise Unauthenticated()

    try:
        user_id = uuid.UUID(str(token_data.get("sub")))
    except ValueError:
        raise Unauthenticated()

    user = await db.get(User, user_id)
    if user is None:
        raise Unauthenticated()
    return user


async def get_caller(user: User = Depends(get_current_user)) -> Caller:
    return Caller.from_user(user)


async def require_client(caller: Caller = Depends(get_caller)) -> Caller:
    caller.require(UserRole.CLIENT)
    return caller


async def require_bookkeeper(caller: Caller = Depends(get_caller)) -> Caller:
    caller.require(UserRole.BOOKKEEPER)
    return caller
