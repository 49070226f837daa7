"""Client directory queries: the bookkeeper's client list and a client's institutions."""
import logging

from sqlalchemy import desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.monthly_package import MonthlyPackage, PackageStatus, Statement
from app.models.user import User, UserRole
from app.schemas.monthly_package import ClientSummary
from app.services.scoping import Caller

logger = logging.getLogger(__name__)

# Filters that aren't a plain status match
FILTER_NO_UPLOADS = "no_uploads"
FILTER_INCOMPLETE = "incomplete"


def _matches_filter(entry: ClientSummary, status_filter: str) -> bool:
    if status_filter == FILTER_NO_UPLOADS:
        return entry.statement_count == 0
    if status_filter == FILTER_INCOMPLETE:
        return entry.latest_package_status == PackageStatus.NEED_STATEMENTS
    latest = entry.latest_package_status
    return latest is not None and latest.value == status_filter


async def list_clients(
    db: AsyncSession,
    caller: Caller,
    search: str | None = None,
    status_filter: str | None = None,
) -> list[ClientSummary]:
    """All clients with statement counts and their latest month's status.

    Sorted by latest activity (newest package first); clients with no
    packages come last.
    """
    caller.require(UserRole.BOOKKEEPER)

    query = (
        select(
            User.id,
            User.name,
            User.email,
            User.company_name,
            func.count(Statement.id).label("statement_count"),
        )
        .outerjoin(MonthlyPackage, MonthlyPackage.user_id == User.id)
        .outerjoin(Statement, Statement.monthly_package_id == MonthlyPackage.id)
        .where(User.role == UserRole.CLIENT)
        .group_by(User.id)
    )
    # Literal substring match: % and _ typed by the user are not wildcards
    search = (search or "").strip().lower()
    if search:
        query = query.where(
            or_(
                func.lower(User.name).contains(search, autoescape=True),
                func.lower(User.email).contains(search, autoescape=True),
                func.lower(User.company_name).contains(search, autoescape=True),
            )
        )
    rows = (await db.execute(query)).all()
    if not rows:
        return []

    # Latest package per client, by period (year, month)
    latest: dict = {}
    pkg_rows = await db.execute(
        select(
            MonthlyPackage.user_id,
            MonthlyPackage.status,
            MonthlyPackage.created_at,
        )
        .where(MonthlyPackage.user_id.in_([r.id for r in rows]))
        .order_by(desc(MonthlyPackage.year), desc(MonthlyPackage.month))
    )
    for user_id, status, created_at in pkg_rows:
        latest.setdefault(user_id, (status, created_at))

    result: list[ClientSummary] = []
    for row in rows:
        status, created_at = latest.get(row.id, (None, None))
        entry = ClientSummary(
            id=row.id,
            name=row.name,
            email=row.email,
            company_name=row.company_name,
            latest_activity=created_at,
            latest_package_status=status,
            statement_count=row.statement_count,
        )
        if status_filter and not _matches_filter(entry, status_filter):
            continue
        result.append(entry)

    with_activity = [c for c in result if c.latest_activity is not None]
    without_activity = [c for c in result if c.latest_activity is None]
    with_activity.sort(key=lambda c: c.latest_activity, reverse=True)
    return with_activity + without_activity


async def list_institutions(db: AsyncSession, caller: Caller) -> list[str]:
    """Distinct institution names across the caller's own statements."""
    caller.require(UserRole.CLIENT)
    result = await db.execute(
        select(Statement.institution_name)
        .join(MonthlyPackage, Statement.monthly_package_id == MonthlyPackage.id)
        .where(MonthlyPackage.user_id == caller.id)
        .distinct()
        .order_by(Statement.institution_name)
    )
    return list(result.scalars().all())
