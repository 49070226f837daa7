"""
Authorization and ownership scoping.

A `Caller` is resolved once per request (see `app.core.deps`) and passed
explicitly into every service call.  Lookups by id always re-query with the
scope folded into the WHERE clause, so an id that exists outside the caller's
scope is indistinguishable from one that does not exist at all.

Scope rules
───────────
  client     : packages where package.user_id == caller.id
  bookkeeper : packages of any client, keyed by the client id in the request
"""
import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.errors import Forbidden, NotFound
from app.models.monthly_package import MonthlyPackage, Statement
from app.models.user import User, UserRole


@dataclass(frozen=True)
class Caller:
    id: uuid.UUID
    role: UserRole

    @classmethod
    def from_user(cls, user: User) -> "Caller":
        return cls(id=user.id, role=UserRole(user.role))

    @property
    def is_bookkeeper(self) -> bool:
        return self.role == UserRole.BOOKKEEPER

    def require(self, role: UserRole) -> None:
        if self.role != role:
            raise Forbidden()


async def find_package(db: AsyncSession, *criteria) -> MonthlyPackage:
    result = await db.execute(
        select(MonthlyPackage)
        .where(*criteria)
        .options(selectinload(MonthlyPackage.statements))
        .execution_options(populate_existing=True)
    )
    pkg = result.scalar_one_or_none()
    if pkg is None:
        raise NotFound()
    return pkg


async def get_owned_package(
    db: AsyncSession, caller: Caller, package_id: uuid.UUID
) -> MonthlyPackage:
    """Client scope: the package must belong to the caller."""
    caller.require(UserRole.CLIENT)
    return await find_package(
        db, MonthlyPackage.id == package_id, MonthlyPackage.user_id == caller.id
    )


async def get_client_package(
    db: AsyncSession, caller: Caller, client_id: uuid.UUID, package_id: uuid.UUID
) -> MonthlyPackage:
    """Bookkeeper scope: the package must belong to the named client."""
    caller.require(UserRole.BOOKKEEPER)
    return await find_package(
        db, MonthlyPackage.id == package_id, MonthlyPackage.user_id == client_id
    )


async def get_package_statement(
    db: AsyncSession, package: MonthlyPackage, statement_id: uuid.UUID
) -> Statement:
    result = await db.execute(
        select(Statement).where(
            Statement.id == statement_id,
            Statement.monthly_package_id == package.id,
        )
    )
    stmt = result.scalar_one_or_none()
    if stmt is None:
        raise NotFound("Statement not found")
    return stmt
