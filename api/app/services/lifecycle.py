"""
Monthly package lifecycle.

  need_statements → categorizing → categorized → reconciling → reconciled → finished

A client has exactly one transition available: submit, which is legal only
from need_statements and only with at least one statement.  A bookkeeper may
assign any status from any status (operational override).  Statements can be
added or removed only while the package is in need_statements; that gate is
the only thing freezing a submitted package's evidence.

Operations that should notify someone return PendingNotification values
alongside the result; the caller dispatches them after commit.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import desc, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    Conflict,
    Forbidden,
    InvalidState,
    InvalidTransition,
    NotFound,
    PreconditionFailed,
)
from app.models.monthly_package import MonthlyPackage, PackageStatus, Statement
from app.models.user import User, UserRole
from app.schemas.monthly_package import PackageSummary, StatementMetadata
from app.services.blob_store import BlobStore
from app.services.notifications import (
    PendingNotification,
    completion_notice,
    submission_notice,
)
from app.services.scoping import (
    Caller,
    find_package,
    get_client_package,
    get_owned_package,
    get_package_statement,
)
from app.services.uploads import StatementUpload

logger = logging.getLogger(__name__)

INITIAL_STATUS = PackageStatus.NEED_STATEMENTS
TERMINAL_STATUS = PackageStatus.FINISHED


def _require_mutable(package: MonthlyPackage, action: str) -> None:
    if package.status != PackageStatus.NEED_STATEMENTS:
        raise InvalidState(f"Cannot {action} statements in current status")


# ─── Create / read ────────────────────────────────────────────────────────────

async def create_package(
    db: AsyncSession, caller: Caller, month: int, year: int
) -> MonthlyPackage:
    """Create the caller's package for a month; Conflict if it already exists."""
    caller.require(UserRole.CLIENT)
    key = (
        MonthlyPackage.user_id == caller.id,
        MonthlyPackage.month == month,
        MonthlyPackage.year == year,
    )

    existing = (await db.execute(select(MonthlyPackage.id).where(*key))).scalar_one_or_none()
    if existing is not None:
        raise Conflict(await find_package(db, *key))

    pkg = MonthlyPackage(user_id=caller.id, month=month, year=year, status=INITIAL_STATUS)
    db.add(pkg)
    try:
        await db.flush()
    except IntegrityError:
        # Lost the race on user_month_year_idx to a concurrent request
        await db.rollback()
        raise Conflict(await find_package(db, *key))

    logger.info("Created package %s for user %s (%02d/%d)", pkg.id, caller.id, month, year)
    return await get_owned_package(db, caller, pkg.id)


async def ensure_package(
    db: AsyncSession, caller: Caller, month: int, year: int
) -> tuple[MonthlyPackage, bool]:
    """Create-or-get. Returns (package, created)."""
    try:
        return await create_package(db, caller, month, year), True
    except Conflict as exc:
        return exc.existing, False


async def list_packages(
    db: AsyncSession, caller: Caller, client_id: uuid.UUID | None = None
) -> list[PackageSummary]:
    """Package summaries, newest month first.

    Clients always see their own packages; bookkeepers must name the client.
    """
    if caller.is_bookkeeper:
        if client_id is None:
            raise NotFound()
        user_id = client_id
    else:
        if client_id is not None and client_id != caller.id:
            raise NotFound()
        user_id = caller.id

    rows = await db.execute(
        select(
            MonthlyPackage.id,
            MonthlyPackage.month,
            MonthlyPackage.year,
            MonthlyPackage.status,
            func.count(Statement.id).label("statement_count"),
        )
        .outerjoin(Statement, Statement.monthly_package_id == MonthlyPackage.id)
        .where(MonthlyPackage.user_id == user_id)
        .group_by(MonthlyPackage.id)
        .order_by(desc(MonthlyPackage.year), desc(MonthlyPackage.month))
    )
    return [PackageSummary.model_validate(row._mapping) for row in rows]


async def get_package_detail(
    db: AsyncSession,
    caller: Caller,
    package_id: uuid.UUID,
    client_id: uuid.UUID | None = None,
) -> MonthlyPackage:
    if caller.is_bookkeeper:
        if client_id is None:
            raise NotFound()
        return await get_client_package(db, caller, client_id, package_id)
    return await get_owned_package(db, caller, package_id)


# ─── Statement mutation (status-gated) ────────────────────────────────────────

async def add_statement(
    db: AsyncSession,
    caller: Caller,
    blob_store: BlobStore,
    package_id: uuid.UUID,
    metadata: StatementMetadata,
    upload: StatementUpload,
) -> Statement:
    pkg = await get_owned_package(db, caller, package_id)
    _require_mutable(pkg, "upload")

    path = f"statements/{caller.id}/{pkg.id}/{uuid.uuid4()}_{upload.file_name}"
    file_url = await blob_store.put(path, upload.content)

    stmt = Statement(
        monthly_package_id=pkg.id,
        institution_name=metadata.institution_name,
        account_last4=metadata.account_last4,
        institution_type=metadata.institution_type,
        file_url=file_url,
        file_name=upload.file_name,
        file_size=upload.size,
    )
    db.add(stmt)
    try:
        await db.flush()
    except Exception:
        # Don't leave an unreferenced blob behind
        try:
            await blob_store.delete(file_url)
        except Exception as exc:
            logger.warning("Failed to clean up blob %s: %s", file_url, exc)
        raise
    await db.refresh(stmt)

    logger.info("Added statement %s (%s) to package %s", stmt.id, stmt.file_name, pkg.id)
    return stmt


async def remove_statement(
    db: AsyncSession,
    caller: Caller,
    blob_store: BlobStore,
    package_id: uuid.UUID,
    statement_id: uuid.UUID,
) -> None:
    pkg = await get_owned_package(db, caller, package_id)
    _require_mutable(pkg, "delete")
    stmt = await get_package_statement(db, pkg, statement_id)

    try:
        await blob_store.delete(stmt.file_url)
    except Exception as exc:
        logger.warning("Failed to delete blob %s for statement %s: %s", stmt.file_url, stmt.id, exc)

    await db.delete(stmt)
    await db.flush()
    logger.info("Removed statement %s from package %s", statement_id, pkg.id)


# ─── Transitions ──────────────────────────────────────────────────────────────

async def submit_package(
    db: AsyncSession, caller: Caller, package_id: uuid.UUID
) -> tuple[MonthlyPackage, list[PendingNotification]]:
    """Client hand-off: need_statements → categorizing."""
    pkg = await get_owned_package(db, caller, package_id)
    if pkg.status != PackageStatus.NEED_STATEMENTS:
        raise InvalidTransition("Package already submitted")
    if not pkg.statements:
        raise PreconditionFailed("At least one statement is required")

    # Conditional on the current status so two concurrent submits can't both win
    result = await db.execute(
        update(MonthlyPackage)
        .where(
            MonthlyPackage.id == pkg.id,
            MonthlyPackage.status == PackageStatus.NEED_STATEMENTS,
        )
        .values(status=PackageStatus.CATEGORIZING, submitted_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise InvalidTransition("Package already submitted")
    await db.refresh(pkg, attribute_names=["status", "submitted_at"])

    pending: list[PendingNotification] = []
    user = await db.get(User, caller.id)
    if user is not None:
        pending.append(submission_notice(user, pkg, list(pkg.statements)))

    logger.info("Package %s submitted with %d statement(s)", pkg.id, len(pkg.statements))
    return pkg, pending


async def set_package_status(
    db: AsyncSession,
    caller: Caller,
    client_id: uuid.UUID,
    package_id: uuid.UUID,
    status: PackageStatus,
) -> tuple[MonthlyPackage, list[PendingNotification]]:
    """Bookkeeper override: any status from any status."""
    if not caller.is_bookkeeper:
        raise Forbidden()
    pkg = await get_client_package(db, caller, client_id, package_id)
    previous = pkg.status
    pkg.status = status
    await db.flush()

    pending: list[PendingNotification] = []
    if status == TERMINAL_STATUS:
        user = await db.get(User, client_id)
        if user is not None:
            pending.append(completion_notice(user, pkg))

    logger.info(
        "Bookkeeper %s set package %s status %s → %s",
        caller.id, pkg.id, previous.value, status.value,
    )
    return pkg, pending
