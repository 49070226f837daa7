"""
Statement bundling: builds the zip a bookkeeper downloads for one month.

Files are fetched from the blob store concurrently.  Each fetch has its own
timeout and the whole fan-out has an overall deadline; a file that fails or
times out is logged and left out.  The bundle only fails when the package has
no statements (EmptyPackage) or when none of its files could be fetched
(BundlingFailed).  Bundles are generated per request and never stored.
"""

import asyncio
import io
import logging
import re
import uuid
import zipfile
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import BundlingFailed, EmptyPackage
from app.models.monthly_package import Statement
from app.models.user import User
from app.services.blob_store import BlobStore
from app.services.scoping import Caller, get_client_package

logger = logging.getLogger(__name__)

MONTH_ABBRS = [
    "jan", "feb", "mar", "apr", "may", "jun",
    "jul", "aug", "sep", "oct", "nov", "dec",
]

_WHITESPACE = re.compile(r"\s+")


@dataclass
class Bundle:
    filename: str
    content: bytes
    entries: list[str]


def archive_name(client_name: str | None, month: int, year: int) -> str:
    """e.g. ("Sarah Johnson", 1, 2026) → "sarah-johnson-stmts-jan-2026.zip"."""
    slug = _WHITESPACE.sub("-", (client_name or "client").lower())
    month_str = MONTH_ABBRS[month - 1] if 1 <= month <= 12 else "unknown"
    return f"{slug}-stmts-{month_str}-{year}.zip"


async def _fetch_one(blob_store: BlobStore, stmt: Statement, timeout: float) -> bytes | None:
    try:
        return await asyncio.wait_for(blob_store.fetch(stmt.file_url), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Timed out fetching %s (statement %s)", stmt.file_name, stmt.id)
    except Exception as exc:
        logger.warning("Could not fetch %s (statement %s): %s", stmt.file_name, stmt.id, exc)
    return None


async def fetch_files(
    blob_store: BlobStore,
    statements: list[Statement],
    per_file_timeout: float | None = None,
    total_timeout: float | None = None,
) -> dict[str, bytes]:
    """Fetch all statement files concurrently. Returns {file_name: content}.

    Statements sharing a file_name collapse to one entry; the later statement
    in the list wins.
    """
    per_file_timeout = per_file_timeout or settings.bundle_fetch_timeout_seconds
    total_timeout = total_timeout or settings.bundle_total_timeout_seconds
    if not statements:
        return {}

    tasks = [
        asyncio.create_task(_fetch_one(blob_store, stmt, per_file_timeout))
        for stmt in statements
    ]
    done, pending = await asyncio.wait(tasks, timeout=total_timeout)
    for task in pending:
        task.cancel()
    if pending:
        logger.warning(
            "Bundle deadline of %.0fs reached; dropping %d unfinished file(s)",
            total_timeout, len(pending),
        )
        await asyncio.gather(*pending, return_exceptions=True)

    files: dict[str, bytes] = {}
    for stmt, task in zip(statements, tasks):
        if task in done and not task.cancelled():
            content = task.result()
            if content is not None:
                files[stmt.file_name] = content
    return files


def zip_files(files: dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buf.getvalue()


async def build_bundle(
    db: AsyncSession,
    caller: Caller,
    blob_store: BlobStore,
    client_id: uuid.UUID,
    package_id: uuid.UUID,
) -> Bundle:
    pkg = await get_client_package(db, caller, client_id, package_id)
    statements = list(pkg.statements)
    if not statements:
        raise EmptyPackage()

    client = await db.get(User, client_id)
    filename = archive_name(client.name if client else None, pkg.month, pkg.year)

    files = await fetch_files(blob_store, statements)
    if not files:
        logger.error("No files retrievable for package %s (%d statements)", pkg.id, len(statements))
        raise BundlingFailed()

    logger.info("Bundled %d/%d file(s) for package %s", len(files), len(statements), pkg.id)
    return Bundle(filename=filename, content=zip_files(files), entries=list(files))
